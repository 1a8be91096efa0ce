"""Display helpers for metadata tables."""

from __future__ import annotations

import math
from collections.abc import Mapping
from typing import Any

import pandas as pd

from .numeric import parse_numeric
from .source_name_lookup import get_binding_source_label, get_perturbation_source_label


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def safe_sci_notation(value: Any) -> Any:
    """Format a number as ``1.23e-04``; missing or non-numeric values pass through."""
    if _is_missing(value):
        return value
    numeric = parse_numeric(value)
    if numeric is None:
        return value
    return f"{numeric:.2e}"


def safe_percentage_format(value: Any) -> Any:
    """Format a fraction as a rounded percentage, ``0.256`` -> ``"26%"``."""
    if _is_missing(value):
        return value
    numeric = parse_numeric(value)
    if numeric is None:
        return value
    return f"{round(numeric * 100)}%"


def rename_dataframe_data_sources(df: pd.DataFrame) -> pd.DataFrame:
    """Replace binding/expression source ids with their display labels."""
    renamed = df.copy()
    if "binding_source" in renamed.columns:
        renamed["binding_source"] = renamed["binding_source"].map(
            get_binding_source_label
        )
    if "expression_source" in renamed.columns:
        renamed["expression_source"] = renamed["expression_source"].map(
            get_perturbation_source_label
        )
    return renamed


def apply_column_names(
    df: pd.DataFrame,
    column_metadata: Mapping[str, tuple[str, str]],
    promotersetsig_name: str = "id",
) -> pd.DataFrame:
    """
    Rename columns to their display labels.

    :param df: Table to rename.
    :param column_metadata: ``{column: (label, description)}``.
    :param promotersetsig_name: New name for the ``promotersetsig`` column.
    :return: A renamed copy; columns without metadata keep their name.

    """
    mapping = {column: label for column, (label, _) in column_metadata.items()}
    mapping["promotersetsig"] = promotersetsig_name
    return df.rename(columns=mapping)
