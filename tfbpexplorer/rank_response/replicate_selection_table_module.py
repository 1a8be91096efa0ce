from logging import Logger

import pandas as pd
from shiny import Inputs, Outputs, Session, module, reactive, render, req, ui

from ..utils.table_formatting import (
    apply_column_names,
    rename_dataframe_data_sources,
    safe_percentage_format,
    safe_sci_notation,
)
from .metadata import metadata_to_frame

# Replicate selection table column metadata for selection
REPLICATE_SELECTION_TABLE_GENERAL_QC_COLUMN_METADATA = {
    "binding_source": (
        "Binding Source",
        "Source of the binding data.",
    ),
    "expression_source": (
        "Perturbation Source",
        "Source of the perturbation response data.",
    ),
    "rank_response_status": (
        "Rank Response Status",
        "Quality control status for rank response analysis.",
    ),
    "dto_status": (
        "DTO Status",
        "Quality control status for DTO analysis.",
    ),
}

REPLICATE_SELECTION_TABLE_RANK_COLUMN_METADATA = {
    "rank_25": (
        "Top 25 Responsive",
        "Fraction of the 25 most strongly bound genes that are responsive.",
    ),
    "rank_50": (
        "Top 50 Responsive",
        "Fraction of the 50 most strongly bound genes that are responsive.",
    ),
    "dto_empirical_pvalue": (
        "DTO p-value",
        "Empirical p-value of the dual threshold optimization.",
    ),
    "univariate_pvalue": (
        "Univariate p-value",
        "p-value of the linear model of response on binding strength.",
    ),
    "binding_rank_threshold": (
        "Binding Rank Threshold",
        "Binding rank threshold chosen by DTO.",
    ),
    "perturbation_rank_threshold": (
        "Perturbation Rank Threshold",
        "Perturbation rank threshold chosen by DTO.",
    ),
}

REPLICATE_SELECTION_TABLE_INSERT_COLUMN_METADATA = {
    "genomic_inserts": (
        "Genomic insertions",
        "Number of genomic inserts.",
    ),
    "mito_inserts": (
        "Mitochondrial insertions",
        "Number of mitochondrial inserts.",
    ),
    "plasmid_inserts": (
        "Plasmid insertions",
        "Number of plasmid inserts.",
    ),
}

REPLICATE_SELECTION_TABLE_COLUMN_METADATA = {
    **REPLICATE_SELECTION_TABLE_GENERAL_QC_COLUMN_METADATA,
    **REPLICATE_SELECTION_TABLE_RANK_COLUMN_METADATA,
    **REPLICATE_SELECTION_TABLE_INSERT_COLUMN_METADATA,
}

PERCENTAGE_COLUMNS = ("rank_25", "rank_50")
SCI_NOTATION_COLUMNS = ("dto_empirical_pvalue", "univariate_pvalue")


def _choices(metadata: dict[str, tuple[str, str]]) -> dict:
    # {value: HTML label}
    return {key: ui.span(label, title=desc) for key, (label, desc) in metadata.items()}


REPLICATE_SELECTION_TABLE_GENERAL_QC_CHOICES_DICT = _choices(
    REPLICATE_SELECTION_TABLE_GENERAL_QC_COLUMN_METADATA
)
REPLICATE_SELECTION_TABLE_RANK_CHOICES_DICT = _choices(
    REPLICATE_SELECTION_TABLE_RANK_COLUMN_METADATA
)
REPLICATE_SELECTION_TABLE_INSERT_CHOICES_DICT = _choices(
    REPLICATE_SELECTION_TABLE_INSERT_COLUMN_METADATA
)

# Default selection for replicate selection table columns
DEFAULT_REPLICATE_SELECTION_TABLE_GENERAL_QC_COLUMNS = [
    "binding_source",
    "expression_source",
    "rank_response_status",
]
DEFAULT_REPLICATE_SELECTION_TABLE_RANK_COLUMNS = ["rank_25", "rank_50"]


def build_replicate_selection_frame(
    metadata_rows: list, selected_columns: list[str]
) -> pd.DataFrame:
    """
    Tabulate one row per replicate record with the requested columns.

    The first two columns are always the record ``id`` (used for selection) and the
    ``promotersetsig``. Rank fractions are shown as percentages and p-values in
    scientific notation.

    """
    frame = metadata_to_frame(metadata_rows)
    columns = ["id", "promotersetsig"] + [
        column
        for column in selected_columns
        if column in frame.columns and column not in ("id", "promotersetsig")
    ]
    table = frame[columns].drop_duplicates(subset="id").copy()

    for column in PERCENTAGE_COLUMNS:
        if column in table.columns:
            table[column] = table[column].map(safe_percentage_format)
    for column in SCI_NOTATION_COLUMNS:
        if column in table.columns:
            table[column] = table[column].map(safe_sci_notation)

    table = rename_dataframe_data_sources(table)
    table = table.rename(columns={"id": "record"})
    table = apply_column_names(table, REPLICATE_SELECTION_TABLE_COLUMN_METADATA)
    return table.sort_values(by="record").reset_index(drop=True)


@module.ui
def replicate_selection_table_ui():
    return ui.output_data_frame("replicate_selection_table")


@module.server
def replicate_selection_table_server(
    input: Inputs,
    output: Outputs,
    session: Session,
    *,
    rr_metadata: reactive.calc,
    selected_columns: reactive.calc,
    logger: Logger,
) -> reactive.calc:
    """
    Replicate selection table server showing one row per replicate with QC, rank
    response and insert columns.

    :param rr_metadata: Reactive calc returning the regulator's metadata rows
    :param selected_columns: Reactive calc containing selected columns to display
    :param logger: Logger object
    :return: Reactive calc returning the set of selected replicate record ids

    """

    df_local_reactive: reactive.value = reactive.Value(pd.DataFrame())

    @render.data_frame
    def replicate_selection_table():
        rows = rr_metadata()
        req(rows)
        table = build_replicate_selection_frame(rows, list(selected_columns()))
        logger.debug("Replicate selection table has %d rows", table.shape[0])
        df_local_reactive.set(table)
        return render.DataGrid(table, selection_mode="rows")

    @reactive.calc
    def get_selected_replicate_ids():
        """
        A reactive calc that gets from the replicate selection table the selected rows,
        and returns the set of record ids corresponding to those rows.

        """
        df_local = df_local_reactive.get()
        if df_local.empty:
            return set()
        selected_rows = replicate_selection_table.cell_selection()["rows"]
        if not selected_rows:
            return set()
        return {str(value) for value in df_local.loc[list(selected_rows), "record"]}

    return get_selected_replicate_ids
