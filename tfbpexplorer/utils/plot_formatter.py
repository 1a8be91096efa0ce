"""Shared Plotly figure formatting."""

from __future__ import annotations

from plotly.graph_objects import Figure


def plot_formatter(
    fig: Figure,
    *,
    height: int = 500,
    legend_title: str | None = "Binding Source",
) -> Figure:
    """
    Apply consistent styling to a dashboard figure.

    - Sets layout height and margins.
    - Uses a clean white background.
    - Places the legend below the plot area so long replicate names do not squeeze
      the axes.

    """
    fig.update_layout(
        height=height,
        plot_bgcolor="white",
        legend=dict(orientation="h", yanchor="top", y=-0.2, x=0),
        legend_title_text=legend_title,
    )
    fig.update_xaxes(showline=True, linecolor="lightgray", gridcolor="#eeeeee")
    fig.update_yaxes(showline=True, linecolor="lightgray", gridcolor="#eeeeee")
    return fig
