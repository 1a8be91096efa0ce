"""Create faceted box-plot distributions for the all regulator comparison."""

from __future__ import annotations

import logging

import pandas as pd
import plotly.express as px
from plotly.graph_objects import Figure

from .plot_formatter import plot_formatter

logger = logging.getLogger("shiny")


def create_distribution_plot(
    df: pd.DataFrame,
    y_column: str,
    y_axis_title: str,
    *,
    tick_format: str | None = None,
    height: int = 520,
) -> Figure:
    """
    Create a box-plot of *y_column* by binding source, one facet per perturbation
    source.

    Category orders and colors come from the values present in *df*, so a filtered
    frame never shows empty categories.

    :param df: Must contain ``binding_source``, ``expression_source`` and
        *y_column*. Source columns should already hold display labels.
    :param y_column: Numeric column to plot on the y-axis.
    :param y_axis_title: Display label for the y-axis.
    :param tick_format: d3 format for the y-axis ticks, e.g. ``".0%"``.
    :param height: Figure height in pixels.
    :return: A styled Plotly :class:`Figure`.
    :raises ValueError: If a required column is missing.
    :raises TypeError: If *y_column* is not numeric.

    """
    required = {y_column, "binding_source", "expression_source"}
    missing = required - set(df.columns)
    if missing:
        raise ValueError(f"DataFrame missing required columns: {sorted(missing)}")

    if not pd.api.types.is_numeric_dtype(df[y_column]):
        raise TypeError(f"Column {y_column} must be numeric")

    binding_levels = sorted(df["binding_source"].unique().tolist())
    perturbation_levels = sorted(df["expression_source"].unique().tolist())

    palette = px.colors.qualitative.Vivid
    color_discrete_map = {
        name: palette[i % len(palette)] for i, name in enumerate(binding_levels)
    }

    fig = px.box(
        df,
        x="binding_source",
        y=y_column,
        color="binding_source",
        facet_col="expression_source",
        facet_col_spacing=0.04,
        points="outliers",
        category_orders={
            "binding_source": binding_levels,
            "expression_source": perturbation_levels,
        },
        color_discrete_map=color_discrete_map,
    )
    logger.debug(
        "Distribution plot of %s: %d values, %d facets",
        y_column,
        len(df),
        len(perturbation_levels),
    )

    # facet titles arrive as "expression_source=<label>"
    fig.for_each_annotation(lambda a: a.update(text=a.text.split("=")[-1]))
    fig.update_xaxes(title_text="Binding Data Source")
    fig.update_yaxes(title_text=y_axis_title, col=1)
    if tick_format:
        fig.update_yaxes(tickformat=tick_format)

    return plot_formatter(fig, height=height)
