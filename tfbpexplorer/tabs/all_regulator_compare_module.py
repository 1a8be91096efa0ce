from collections.abc import Collection, Iterable
from logging import Logger

import numpy as np
import pandas as pd
from faicons import icon_svg
from plotly.graph_objects import Figure
from shiny import Inputs, Outputs, Session, module, reactive, render, req, ui
from shinywidgets import output_widget, render_plotly

from ..queries import DashboardQueries, QueryResult
from ..utils.create_distribution_plot import create_distribution_plot
from ..utils.numeric import neg_log10
from .correlation_module import describe_cache, query_error_ui

# metadata field -> (y-axis title, tick format, message when nothing matches)
DISTRIBUTION_METRICS = {
    "rank_25": (
        "Responsive Fraction (Top 25 Targets)",
        ".0%",
        "No rank response values matched the selected datasets. "
        "Try broadening your filters.",
    ),
    "dto_empirical_pvalue": (
        "-log10(DTO Empirical P-value)",
        ".2f",
        "No DTO empirical p-values are available for the current selection.",
    ),
    "univariate_pvalue": (
        "Univariate P-value",
        ".2e",
        "No univariate p-values matched the selected datasets. "
        "Adjust filters to see more results.",
    ),
}

# plotted on a significance scale
_LOG_SCALED_METRICS = frozenset({"dto_empirical_pvalue"})


def source_options(rows: Iterable[dict], kind: str) -> dict[str, str]:
    """
    Checkbox choices ``{source_id: label}`` for the sources present in *rows*,
    sorted by label.

    :param kind: ``"binding"`` or ``"expression"``.

    """
    options: dict[str, str] = {}
    for row in rows:
        source_id = row[f"{kind}_source"]
        if source_id and source_id not in options:
            options[source_id] = row[f"{kind}_source_label"] or source_id
    return dict(sorted(options.items(), key=lambda item: item[1]))


def filter_comparison_rows(
    rows: list[dict],
    binding_sources: Collection[str],
    perturbation_sources: Collection[str],
    only_shared_regulators: bool,
) -> list[dict]:
    """
    Keep the rows whose binding and perturbation sources are both selected.

    With *only_shared_regulators*, rows are further restricted to regulators present
    in every (binding source, perturbation source) combination that has data, so
    each box summarizes the same set of TFs.

    """
    selected = [
        row
        for row in rows
        if row["binding_source"] in binding_sources
        and row["expression_source"] in perturbation_sources
    ]
    if not selected or not only_shared_regulators:
        return selected

    regulators_by_pair: dict[tuple[str, str], set[str]] = {}
    for row in selected:
        pair = (row["binding_source"], row["expression_source"])
        regulators_by_pair.setdefault(pair, set()).add(row["regulator_symbol"])
    shared = set.intersection(*regulators_by_pair.values())
    return [row for row in selected if row["regulator_symbol"] in shared]


def distribution_frame(rows: list[dict], metric: str) -> pd.DataFrame:
    """
    Tabulate *metric* with display-label source columns, dropping missing values.

    DTO empirical p-values are transformed with :func:`neg_log10`.

    """
    frame = pd.DataFrame(
        {
            "binding_source": [row["binding_source_label"] for row in rows],
            "expression_source": [row["expression_source_label"] for row in rows],
            metric: np.array(
                [np.nan if row[metric] is None else row[metric] for row in rows],
                dtype=float,
            ),
        }
    )
    if metric in _LOG_SCALED_METRICS:
        frame[metric] = neg_log10(frame[metric])
    return frame[np.isfinite(frame[metric])].reset_index(drop=True)


def create_metric_figure(rows: list[dict], metric: str) -> Figure | None:
    """Box-plot figure of *metric* over *rows*, or ``None`` when no value remains."""
    frame = distribution_frame(rows, metric)
    if frame.empty:
        return None
    y_axis_title, tick_format, _ = DISTRIBUTION_METRICS[metric]
    return create_distribution_plot(
        frame, metric, y_axis_title, tick_format=tick_format
    )


def _metric_panel(label: str, metric: str) -> ui.nav_panel:
    return ui.nav_panel(
        label,
        ui.output_ui(f"{metric}_message"),
        output_widget(f"{metric}_plot"),
    )


@module.ui
def all_regulator_compare_ui():
    return ui.layout_sidebar(
        ui.sidebar(
            ui.accordion(
                ui.accordion_panel(
                    "General",
                    ui.input_switch(
                        "only_shared_regulators",
                        label="Only Show Shared Regulators",
                        value=True,
                    ),
                    ui.input_action_button(
                        "refresh",
                        "Refresh",
                        icon=icon_svg("arrows-rotate"),
                        class_="btn-outline-primary mt-2",
                        style="width: 100%;",
                    ),
                ),
                ui.accordion_panel(
                    "Binding Data Sources",
                    ui.input_checkbox_group(
                        "binding_sources", label="Select binding sources:", choices=[]
                    ),
                ),
                ui.accordion_panel(
                    "Perturbation Response Sources",
                    ui.input_checkbox_group(
                        "perturbation_sources",
                        label="Select perturbation sources:",
                        choices=[],
                    ),
                ),
                id=module.resolve_id("filter_accordion"),
                open=True,
                multiple=True,
            ),
            ui.output_ui("metadata_status"),
            width="300px",
        ),
        ui.div(
            ui.h3("All Regulator Comparison"),
            ui.p(
                "Distributions of three summaries of how well binding predicts "
                "perturbation response, one value per replicate comparison. Use the "
                "sidebar to choose binding and perturbation response sources, and "
                "optionally restrict the view to regulators shared by every selected "
                "combination."
            ),
            ui.tags.ul(
                ui.tags.li(
                    ui.strong("Rank Response: "),
                    "the fraction of the 25 most strongly bound genes that respond "
                    "to the perturbation.",
                ),
                ui.tags.li(
                    ui.strong("DTO empirical p-value: "),
                    "dual threshold optimization picks the binding and response rank "
                    "thresholds whose overlap has the smallest hypergeometric "
                    "p-value; the empirical p-value compares that overlap to "
                    "permuted rankings.",
                ),
                ui.tags.li(
                    ui.strong("Univariate p-value: "),
                    "from an ordinary least squares model predicting perturbation "
                    "response from the regulator's binding score.",
                ),
            ),
            ui.navset_tab(
                _metric_panel("Rank Response", "rank_25"),
                _metric_panel("DTO", "dto_empirical_pvalue"),
                _metric_panel("Univariate P-value", "univariate_pvalue"),
                id="metric_tabs",
            ),
        ),
    )


@module.server
def all_regulator_compare_server(
    input: Inputs,
    output: Outputs,
    session: Session,
    *,
    queries: DashboardQueries,
    logger: Logger,
) -> None:
    """
    Distribution plots of rank response, DTO and univariate summaries across every
    regulator in the rank response metadata.

    :param queries: The shared query surface
    :param logger: A logger object

    """

    @reactive.extended_task
    async def fetch_metadata(force_refresh: bool) -> QueryResult:
        return await queries.get_rank_response_metadata(force_refresh=force_refresh)

    @reactive.effect
    def _():
        fetch_metadata(False)

    @reactive.effect
    @reactive.event(input.refresh)
    def _():
        logger.info("Refreshing rank response metadata for all regulator comparison")
        fetch_metadata(True)

    @reactive.calc
    def metadata_rows() -> list:
        if fetch_metadata.status() != "success":
            return []
        result = fetch_metadata.result()
        if result.error is not None:
            return []
        return result.data["metadata"]

    @reactive.effect
    def _():
        """Offer the sources present in the metadata, all selected on first load."""
        rows = metadata_rows()
        if not rows:
            return
        for input_id, kind in (
            ("binding_sources", "binding"),
            ("perturbation_sources", "expression"),
        ):
            choices = source_options(rows, kind)
            with reactive.isolate():
                current = [value for value in input[input_id]() if value in choices]
            ui.update_checkbox_group(
                input_id, choices=choices, selected=current or list(choices)
            )

    @reactive.calc
    def has_selections() -> bool:
        return bool(input.binding_sources()) and bool(input.perturbation_sources())

    @reactive.calc
    def comparison_rows() -> list:
        if not has_selections():
            return []
        rows = filter_comparison_rows(
            metadata_rows(),
            set(input.binding_sources()),
            set(input.perturbation_sources()),
            input.only_shared_regulators(),
        )
        logger.debug("All regulator comparison: %d rows after filtering", len(rows))
        return rows

    @reactive.calc
    def figures() -> dict[str, Figure | None]:
        rows = comparison_rows()
        return {metric: create_metric_figure(rows, metric) for metric in DISTRIBUTION_METRICS}

    def _message(metric: str):
        status = fetch_metadata.status()
        if status in ("initial", "running"):
            return ui.p("Loading metadata...", class_="text-muted")
        if status == "error":
            return ui.div("Unexpected error while loading.", class_="alert alert-danger")
        result = fetch_metadata.result()
        if result.error is not None:
            return query_error_ui(result)
        if not has_selections():
            return ui.p(
                "Select at least one binding and one perturbation source.",
                class_="text-muted",
            )
        if figures()[metric] is None:
            return ui.p(DISTRIBUTION_METRICS[metric][2], class_="text-muted")
        return None

    @render.ui
    def metadata_status():
        if fetch_metadata.status() != "success":
            return None
        result = fetch_metadata.result()
        if result.error is not None:
            return None
        return ui.p(
            f"{len(comparison_rows())} of {len(result.data['metadata'])} rows shown; "
            f"cache: {describe_cache(result)}",
            class_="text-muted small",
        )

    @render.ui
    def rank_25_message():
        return _message("rank_25")

    @render.ui
    def dto_empirical_pvalue_message():
        return _message("dto_empirical_pvalue")

    @render.ui
    def univariate_pvalue_message():
        return _message("univariate_pvalue")

    @render_plotly
    def rank_25_plot():
        fig = figures()["rank_25"]
        req(fig is not None)
        return fig

    @render_plotly
    def dto_empirical_pvalue_plot():
        fig = figures()["dto_empirical_pvalue"]
        req(fig is not None)
        return fig

    @render_plotly
    def univariate_pvalue_plot():
        fig = figures()["univariate_pvalue"]
        req(fig is not None)
        return fig
