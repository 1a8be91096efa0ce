from logging import Logger

from faicons import icon_svg
from shiny import Inputs, Outputs, Session, module, reactive, render, req, ui
from shinywidgets import output_widget, render_plotly

from ..queries import DashboardQueries, QueryResult
from ..utils.create_correlation_heatmap import create_correlation_heatmap


def describe_cache(result: QueryResult) -> str:
    """One-line cache provenance, e.g. ``"hit (12s old)"``."""
    if result.cache_status is None:
        return "not cached"
    age = result.cache_age or 0.0
    return f"{result.cache_status.value} ({age:.0f}s old)"


def query_error_ui(result: QueryResult):
    """Actionable error message for a failed query."""
    error = result.error
    return ui.div(
        ui.tags.strong(f"Unable to load data ({error.kind.value.replace('_', ' ')})"),
        ui.p(error.message),
        ui.p(error.detail, style="font-family: monospace; font-size: 0.8em;")
        if error.detail
        else None,
        ui.p("Use the refresh button to try again."),
        class_="alert alert-danger",
    )


@module.ui
def correlation_ui(title: str, description: str):
    return ui.card(
        ui.card_header(
            ui.div(
                ui.span(title),
                ui.input_action_button(
                    "refresh",
                    "Refresh",
                    icon=icon_svg("arrows-rotate"),
                    class_="btn-sm btn-outline-primary",
                ),
                class_="d-flex justify-content-between align-items-center",
            )
        ),
        ui.p(description),
        ui.output_ui("status"),
        output_widget("heatmap"),
        full_screen=True,
    )


@module.server
def correlation_server(
    input: Inputs,
    output: Outputs,
    session: Session,
    *,
    source_name: str,
    queries: DashboardQueries,
    logger: Logger,
) -> None:
    """
    Load and render the correlation heatmap for one source.

    :param source_name: ``"binding"`` or ``"perturbation"``
    :param queries: The shared query surface
    :param logger: A logger object

    """

    @reactive.extended_task
    async def fetch_matrix(force_refresh: bool) -> QueryResult:
        return await queries.get_correlation_matrix(
            source_name, force_refresh=force_refresh
        )

    @reactive.effect
    def _():
        fetch_matrix(False)

    @reactive.effect
    @reactive.event(input.refresh)
    def _():
        logger.info("Refreshing %s correlation matrix", source_name)
        fetch_matrix(True)

    @render.ui
    def status():
        if fetch_matrix.status() in ("initial", "running"):
            return ui.p("Loading correlation matrix...", class_="text-muted")
        if fetch_matrix.status() == "error":
            return ui.div("Unexpected error while loading.", class_="alert alert-danger")

        result = fetch_matrix.result()
        if result.error is not None:
            return query_error_ui(result)

        payload = result.data
        if not payload["labels"]:
            return ui.p("No datasets found for this source.", class_="text-muted")

        return ui.p(
            f"{len(payload['labels'])} datasets; "
            f"r between {payload['min']:.3f} and {payload['max']:.3f}; "
            f"cache: {describe_cache(result)}",
            class_="text-muted small",
        )

    @render_plotly
    def heatmap():
        req(fetch_matrix.status() == "success")
        result = fetch_matrix.result()
        req(result.error is None)
        return create_correlation_heatmap(result.data)
