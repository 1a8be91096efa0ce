from logging import Logger

from faicons import icon_svg
from shiny import Inputs, Outputs, Session, module, reactive, render, ui

from ..queries import DashboardQueries, QueryResult
from ..rank_response.replicate_plot_module import (
    rank_response_replicate_plot_degron_ui,
    rank_response_replicate_plot_overexpression_ui,
    rank_response_replicate_plot_server,
    rank_response_replicate_plot_tfko_ui,
)
from ..rank_response.replicate_selection_table_module import (
    DEFAULT_REPLICATE_SELECTION_TABLE_GENERAL_QC_COLUMNS,
    DEFAULT_REPLICATE_SELECTION_TABLE_RANK_COLUMNS,
    REPLICATE_SELECTION_TABLE_GENERAL_QC_CHOICES_DICT,
    REPLICATE_SELECTION_TABLE_INSERT_CHOICES_DICT,
    REPLICATE_SELECTION_TABLE_RANK_CHOICES_DICT,
    replicate_selection_table_server,
    replicate_selection_table_ui,
)
from ..utils.numeric import ensure_string
from .correlation_module import describe_cache, query_error_ui


def rr_plot_panel(label: str, output_id: str) -> ui.nav_panel:
    """Create a panel for rank response plots with a specific label and output ID."""
    return ui.nav_panel(
        label,
        ui.div(
            ui.output_ui(output_id),
            style="max-width: 100%; overflow-x: auto;",
        ),
    )


def regulator_choices(metadata_rows: list, use_locus_tag: bool) -> dict[str, str]:
    """
    Selector choices ``{regulator_id: label}`` sorted by label.

    Labels are regulator symbols, or locus tags when *use_locus_tag* is set (falling
    back to the symbol when a row has no locus tag).

    """
    labels: dict[str, str] = {}
    for row in metadata_rows:
        regulator_id = ensure_string(row["regulator_id"])
        if regulator_id is None or regulator_id in labels:
            continue
        if use_locus_tag:
            labels[regulator_id] = row["regulator_locus_tag"] or row["regulator_symbol"]
        else:
            labels[regulator_id] = row["regulator_symbol"]
    return dict(sorted(labels.items(), key=lambda item: item[1]))


@module.ui
def individual_regulator_compare_ui():
    general_ui_panel = ui.accordion_panel(
        "General",
        ui.input_switch(
            "symbol_locus_tag_switch",
            label="Use Systematic Gene Names",
            value=False,
        ),
        ui.input_select(
            "regulator",
            label="Select Regulator",
            selectize=True,
            selected=None,
            choices=[],
        ),
        ui.input_action_button(
            "refresh",
            "Refresh",
            icon=icon_svg("arrows-rotate"),
            class_="btn-outline-primary mt-2",
            style="width: 100%;",
        ),
    )

    replicate_selection_table_columns_panel = ui.accordion_panel(
        "Replicate Selection Table Columns",
        ui.input_checkbox_group(
            "replicate_selection_table_general_qc_columns",
            label="General QC Metrics",
            choices=REPLICATE_SELECTION_TABLE_GENERAL_QC_CHOICES_DICT,
            selected=DEFAULT_REPLICATE_SELECTION_TABLE_GENERAL_QC_COLUMNS,
        ),
        ui.input_checkbox_group(
            "replicate_selection_table_rank_columns",
            label="Rank Response Metrics",
            choices=REPLICATE_SELECTION_TABLE_RANK_CHOICES_DICT,
            selected=DEFAULT_REPLICATE_SELECTION_TABLE_RANK_COLUMNS,
        ),
        ui.input_checkbox_group(
            "replicate_selection_table_insert_table_columns",
            label="Calling Cards QC Metrics",
            choices=REPLICATE_SELECTION_TABLE_INSERT_CHOICES_DICT,
            selected=[],
        ),
    )

    return ui.layout_sidebar(
        ui.sidebar(
            ui.accordion(
                general_ui_panel,
                replicate_selection_table_columns_panel,
                id=module.resolve_id("input_accordion"),
                open=None,
                multiple=True,
            ),
            ui.output_ui("metadata_status"),
            width="300px",
        ),
        ui.div(
            ui.p(
                "This page shows comparisons between binding locations "
                "and perturbation responses for individual TFs. Use the sidebar "
                "to type in the name of a TF or select it from a drop-down menu.",
            ),
            ui.accordion(
                ui.accordion_panel(
                    "Rank Response Plots Description",
                    ui.p(
                        ui.tags.strong("Overview:"),
                        ui.br(),
                        "Each solid line on a rank response plot shows a "
                        "comparison of one binding dataset to one perturbation "
                        "dataset. The genes are first ranked according to the "
                        "strength of the perturbed TF's binding signal in their "
                        "regulatory DNA.",
                    ),
                    ui.p(
                        ui.tags.strong("Plot Axes:"),
                        ui.br(),
                        "The vertical axis shows the fraction of most "
                        "strongly bound genes that are responsive to the "
                        "perturbation. The horizontal axis indicates the number of "
                        "most strongly bound genes considered.",
                    ),
                    ui.p(
                        ui.tags.strong("Reference Lines:"),
                        ui.br(),
                        "The dashed horizontal line shows the random expectation, "
                        "the fraction of all genes that are responsive. The gray "
                        "area shows a 95% confidence interval for the null "
                        "hypothesis that the bound genes are no more responsive "
                        "than the random expectation.",
                    ),
                ),
                id="rank_response_plots_accordion",
                open=False,
            ),
            ui.output_ui("regulator_status"),
            ui.row(
                ui.column(
                    7,
                    ui.card(
                        ui.card_header("Rank Response Plots"),
                        ui.navset_tab(
                            rr_plot_panel("TFKO", "tfko_plots"),
                            rr_plot_panel("Overexpression", "overexpression_plots"),
                            rr_plot_panel("Degron", "degron_plots"),
                            id="plot_tabs",
                        ),
                    ),
                ),
                ui.column(
                    5,
                    ui.card(
                        ui.card_header("Replicate Selection Table"),
                        ui.div(
                            replicate_selection_table_ui("replicate_selection_table"),
                            style="overflow: auto; width: 100%;",
                        ),
                        ui.card_footer(
                            ui.p(
                                ui.tags.b("How to use: "),
                                "Select rows in this table to highlight the "
                                "corresponding replicates in the plots. Multiple rows "
                                "can be selected by holding Ctrl/Cmd while clicking.",
                                style="margin: 0; font-size: 0.9em; "
                                "color: #666; padding: 10px;",
                            )
                        ),
                    ),
                ),
                style="min-height: 600px; margin-bottom: 20px;",
            ),
        ),
    )


@module.server
def individual_regulator_compare_server(
    input: Inputs,
    output: Outputs,
    session: Session,
    *,
    queries: DashboardQueries,
    logger: Logger,
) -> None:
    """
    This function produces the reactive/render functions necessary to producing the
    individual_regulator_compare module which includes the regulator selector, the
    rank response plots and the replicate selection table.

    :param queries: The shared query surface
    :param logger: A logger object

    """
    selected_replicate_ids_reactive: reactive.value[set] = reactive.Value(set())

    @reactive.extended_task
    async def fetch_metadata(force_refresh: bool) -> QueryResult:
        return await queries.get_rank_response_metadata(force_refresh=force_refresh)

    @reactive.extended_task
    async def fetch_regulator(regulator_id: str, force_refresh: bool) -> QueryResult:
        with ui.Progress(min=0, max=1) as p:
            p.set(
                0.5,
                message="Pulling rank response data",
                detail="This may take a while...",
            )
            return await queries.get_regulator_rank_response(
                regulator_id, force_refresh=force_refresh
            )

    @reactive.effect
    def _():
        fetch_metadata(False)

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
        """Update the regulator drop down from the rank response metadata."""
        rows = metadata_rows()
        if not rows:
            return
        use_locus_tag = input.symbol_locus_tag_switch.get()
        choices = regulator_choices(rows, use_locus_tag)
        logger.debug("Regulator choices: %d (locus tags: %s)", len(choices), use_locus_tag)
        with reactive.isolate():
            current = input.regulator()
        ui.update_select(
            "regulator",
            choices=choices,
            selected=current if current in choices else None,
        )

    @reactive.effect
    @reactive.event(input.regulator)
    def _():
        regulator_id = input.regulator()
        if not regulator_id:
            return
        logger.info("Selected regulator for rank response plots: %s", regulator_id)
        selected_replicate_ids_reactive.set(set())
        fetch_regulator(regulator_id, False)

    @reactive.effect
    @reactive.event(input.refresh)
    def _():
        fetch_metadata(True)
        regulator_id = input.regulator()
        if regulator_id:
            logger.info("Refreshing rank response data for %s", regulator_id)
            fetch_regulator(regulator_id, True)

    @reactive.calc
    def regulator_payload():
        if fetch_regulator.status() != "success":
            return None
        result = fetch_regulator.result()
        if result.error is not None:
            return None
        return result.data

    @reactive.calc
    def regulator_metadata() -> list:
        payload = regulator_payload()
        return payload["metadata"] if payload else []

    @render.ui
    def metadata_status():
        status = fetch_metadata.status()
        if status in ("initial", "running"):
            return ui.p("Loading regulators...", class_="text-muted small")
        if status == "error":
            return ui.div("Unexpected error while loading.", class_="alert alert-danger")
        result = fetch_metadata.result()
        if result.error is not None:
            return query_error_ui(result)
        timestamp = result.data["source_timestamp"]
        return ui.p(
            f"{len(result.data['metadata'])} metadata rows; "
            f"cache: {describe_cache(result)}"
            + (f"; updated {timestamp}" if timestamp else ""),
            class_="text-muted small",
        )

    @render.ui
    def regulator_status():
        status = fetch_regulator.status()
        if status == "initial":
            return None
        if status == "running":
            return ui.p("Loading rank response data...", class_="text-muted")
        if status == "error":
            return ui.div("Unexpected error while loading.", class_="alert alert-danger")
        result = fetch_regulator.result()
        if result.error is not None:
            return query_error_ui(result)
        payload = result.data
        n_traces = sum(
            len(group["traces"])
            for groups in payload["expression_groups"].values()
            for group in groups
        )
        if not n_traces:
            return ui.div(
                f"No rank response curves available for {payload['regulator']['label']}.",
                class_="alert alert-secondary",
            )
        return ui.p(
            f"{payload['regulator']['label']}: {n_traces} curves; "
            f"cache: {describe_cache(result)}",
            class_="text-muted small",
        )

    @reactive.calc
    def selected_replicate_selection_table_columns_calc():
        return [
            *input.replicate_selection_table_general_qc_columns(),
            *input.replicate_selection_table_rank_columns(),
            *input.replicate_selection_table_insert_table_columns(),
        ]

    rank_response_replicate_plot_server(
        "rank_response_replicate_plot",
        regulator_payload=regulator_payload,
        selected_replicate_ids=selected_replicate_ids_reactive,
        max_rank=queries.settings.rank_bins,
        logger=logger,
    )

    selected_replicate_ids = replicate_selection_table_server(
        "replicate_selection_table",
        rr_metadata=regulator_metadata,
        selected_columns=selected_replicate_selection_table_columns_calc,
        logger=logger,
    )

    # Update the reactive value when replicate selection table selection changes
    @reactive.effect
    def _():
        selected_replicate_ids_reactive.set(selected_replicate_ids())
        logger.debug(
            "selected_replicate_ids_reactive: %s", selected_replicate_ids_reactive()
        )

    @render.ui
    def tfko_plots():
        return rank_response_replicate_plot_tfko_ui("rank_response_replicate_plot")

    @render.ui
    def overexpression_plots():
        return rank_response_replicate_plot_overexpression_ui(
            "rank_response_replicate_plot"
        )

    @render.ui
    def degron_plots():
        return rank_response_replicate_plot_degron_ui("rank_response_replicate_plot")
