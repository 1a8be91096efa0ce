"""
Server and UI components for the rank response replicate plots.

The figures are built from a regulator payload that the individual regulator tab
has already fetched. Output ids are registered dynamically, one per expression
experiment, because the number of experiments differs between regulators.

"""

import re
from logging import Logger

from shiny import Inputs, Outputs, Session, module, reactive, render, ui
from shinywidgets import output_widget, render_plotly

from ..utils.plot_formatter import plot_formatter
from ..utils.rank_response_replicate_plot_utils import (
    apply_trace_selection,
    create_rank_response_figures,
)


def plot_output_id(expression_source: str, expression_id: str) -> str:
    """Shiny-safe output id for one expression experiment's figure."""
    return re.sub(r"[^A-Za-z0-9_]", "_", f"plot_{expression_source}_{expression_id}")


@module.ui
def rank_response_replicate_plot_tfko_ui():
    return ui.output_ui("tfko_expression_container")


@module.ui
def rank_response_replicate_plot_overexpression_ui():
    return ui.output_ui("overexpression_expression_container")


@module.ui
def rank_response_replicate_plot_degron_ui():
    return ui.output_ui("degron_expression_container")


@module.server
def rank_response_replicate_plot_server(
    input: Inputs,
    output: Outputs,
    session: Session,
    *,
    regulator_payload: reactive.calc,
    selected_replicate_ids: reactive.value,
    max_rank: int,
    logger: Logger,
):
    """
    This function produces the reactive/render functions necessary to producing the
    rank response replicate plots. All arguments must be passed as keyword arguments.

    :param regulator_payload: Reactive calc returning the regulator payload, or None
        while nothing has loaded
    :param selected_replicate_ids: Reactive value holding the replicate record ids
        selected in the replicate selection table
    :param max_rank: Upper bound of the rank axis
    :param logger: A logger object

    """

    @reactive.calc
    def figures_by_source():
        payload = regulator_payload()
        if not payload:
            return {}
        figures = create_rank_response_figures(payload["expression_groups"], max_rank)
        logger.info(
            "Prepared rank response figures for %s: %s",
            payload["regulator"]["label"],
            {source: len(figs) for source, figs in figures.items()},
        )
        return figures

    def prepare_source_ui(expression_source: str):
        payload = regulator_payload()
        if not payload:
            return ui.p("Select a regulator to load rank response plots.")

        figures = figures_by_source().get(expression_source, {})
        if not figures:
            return ui.p("No data available for this perturbation source.")

        return ui.div(
            *[
                output_widget(plot_output_id(expression_source, expression_id))
                for expression_id in figures
            ]
        )

    def register_plot_output(plot_id, fig):
        @output(id=plot_id)
        @render_plotly
        def _():
            return plot_formatter(fig)

    @output
    @render.ui
    def tfko_expression_container():
        return prepare_source_ui("kemmeren_tfko")

    @output
    @render.ui
    def overexpression_expression_container():
        return prepare_source_ui("mcisaac_oe")

    @output
    @render.ui
    def degron_expression_container():
        return prepare_source_ui("hahn_degron")

    # Render plots dynamically
    @reactive.effect
    def _():
        figures = figures_by_source()
        if not figures:
            return

        selected = selected_replicate_ids.get()
        for source, figs in figures.items():
            for expression_id, fig in figs.items():
                register_plot_output(
                    plot_output_id(source, expression_id),
                    apply_trace_selection(fig, selected),
                )
        logger.debug("Rank response plots rendered; selected replicates: %s", selected)
