"""Parse rank response metadata exports into normalized rows."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, TypedDict

import pandas as pd

from ..utils.numeric import ensure_string, parse_boolean, parse_numeric
from ..utils.source_name_lookup import (
    get_binding_source_label,
    get_perturbation_source_label,
)
from ..utils.tables import read_delimited_text
from .archive import gunzip_or_passthrough

logger = logging.getLogger("shiny")


class RankResponseMetadataRow(TypedDict):
    id: str
    binding_source: str
    binding_source_label: str
    expression_source: str
    expression_source_label: str
    promotersetsig: str | None
    expression_id: str | None
    expression_time: float | None
    expression_mechanism: str | None
    regulator_id: float | None
    regulator_symbol: str
    regulator_locus_tag: str | None
    random_expectation: float | None
    rank_25: float | None
    rank_50: float | None
    dto_empirical_pvalue: float | None
    dto_fdr: float | None
    univariate_pvalue: float | None
    univariate_rsquared: float | None
    binding_rank_threshold: float | None
    perturbation_rank_threshold: float | None
    binding_set_size: float | None
    perturbation_set_size: float | None
    dto_status: str | None
    rank_response_status: str | None
    passing: bool | None
    single_binding: float | None
    composite_binding: float | None
    genomic_inserts: float | None
    mito_inserts: float | None
    plasmid_inserts: float | None


# field -> accepted input columns, first present wins
_NUMERIC_FIELDS: dict[str, tuple[str, ...]] = {
    "expression_time": ("expression_time", "expressionTime"),
    "regulator_id": ("regulator_id", "regulatorId"),
    "random_expectation": ("random_expectation", "randomExpectation"),
    "rank_25": ("rank_25", "rank25"),
    "rank_50": ("rank_50", "rank50"),
    "dto_empirical_pvalue": ("dto_empirical_pvalue", "dtoEmpiricalPvalue"),
    "dto_fdr": ("dto_fdr", "dtoFdr"),
    "univariate_pvalue": ("univariate_pvalue", "univariatePvalue"),
    "univariate_rsquared": ("univariate_rsquared", "univariateRsquared"),
    "binding_rank_threshold": ("binding_rank_threshold", "bindingRankThreshold"),
    "perturbation_rank_threshold": (
        "perturbation_rank_threshold",
        "perturbationRankThreshold",
    ),
    "binding_set_size": ("binding_set_size", "bindingSetSize"),
    "perturbation_set_size": ("perturbation_set_size", "perturbationSetSize"),
    "single_binding": ("single_binding", "singleBinding"),
    "composite_binding": ("composite_binding", "compositeBinding"),
    "genomic_inserts": ("genomic_inserts", "genomicInserts"),
    "mito_inserts": ("mito_inserts", "mitoInserts"),
    "plasmid_inserts": ("plasmid_inserts", "plasmidInserts"),
}

_STRING_FIELDS: dict[str, tuple[str, ...]] = {
    "promotersetsig": ("promotersetsig",),
    "expression_id": ("expression", "expression_id", "expressionId"),
    "expression_mechanism": ("expression_mechanism", "expressionMechanism"),
    "regulator_locus_tag": ("regulator_locus_tag", "regulatorLocusTag"),
    "dto_status": ("dto_status", "dtoStatus"),
    "rank_response_status": ("rank_response_status", "rankResponseStatus"),
}


def _first_string(row: Mapping[str, Any], keys: Iterable[str]) -> str | None:
    for key in keys:
        value = ensure_string(row.get(key))
        if value is not None:
            return value
    return None


def _first_numeric(row: Mapping[str, Any], keys: Iterable[str]) -> float | None:
    for key in keys:
        value = parse_numeric(row.get(key))
        if value is not None:
            return value
    return None


def normalize_metadata_row(row: Mapping[str, Any]) -> RankResponseMetadataRow | None:
    """
    Normalize one raw metadata record.

    :param row: Raw record, snake_case or camelCase keys.
    :return: The normalized row, or ``None`` if the binding or expression source is
        missing.

    """
    binding_source = _first_string(row, ("binding_source", "bindingSource"))
    expression_source = _first_string(row, ("expression_source", "expressionSource"))
    if binding_source is None or expression_source is None:
        return None

    regulator_symbol = (
        _first_string(row, ("regulator_symbol", "regulatorSymbol")) or "Unknown"
    )
    record_id = _first_string(row, ("id", "pk")) or f"{regulator_symbol}-{binding_source}"

    normalized: dict[str, Any] = {
        "id": record_id,
        "binding_source": binding_source,
        "binding_source_label": get_binding_source_label(binding_source),
        "expression_source": expression_source,
        "expression_source_label": get_perturbation_source_label(expression_source),
        "regulator_symbol": regulator_symbol,
        "passing": parse_boolean(row.get("passing")),
    }
    for field, keys in _STRING_FIELDS.items():
        normalized[field] = _first_string(row, keys)
    for field, keys in _NUMERIC_FIELDS.items():
        normalized[field] = _first_numeric(row, keys)

    return normalized  # type: ignore[return-value]


def parse_metadata_rows(records: Iterable[Mapping[str, Any]]) -> list[RankResponseMetadataRow]:
    rows = []
    dropped = 0
    for record in records:
        row = normalize_metadata_row(record)
        if row is None:
            dropped += 1
            continue
        rows.append(row)
    if dropped:
        logger.debug("Dropped %d metadata rows without binding/expression source", dropped)
    return rows


def parse_metadata_export(content: bytes) -> list[RankResponseMetadataRow]:
    """
    Parse the body of an ``export/`` response.

    The body is normally gzipped CSV; a body that is not gzip is read as plain text.

    """
    text = gunzip_or_passthrough(content).decode("utf-8", errors="replace")
    table = read_delimited_text(text, label="rank response metadata")
    return parse_metadata_rows(table.to_dict(orient="records"))


def metadata_to_frame(rows: list[RankResponseMetadataRow]) -> pd.DataFrame:
    """Tabulate metadata rows, one column per field, for display."""
    if not rows:
        return pd.DataFrame(columns=list(RankResponseMetadataRow.__annotations__))
    return pd.DataFrame.from_records(rows)


def derive_regulator_options(
    rows: Iterable[RankResponseMetadataRow],
) -> dict[str, str]:
    """
    Map regulator ids to selector labels.

    :return: ``{regulator_id: "SYMBOL (LOCUS)"}`` in order of first appearance,
        falling back to whichever of symbol or locus tag is known. Rows without a
        regulator id are skipped.

    """
    options: dict[str, str] = {}
    for row in rows:
        regulator_id = ensure_string(row["regulator_id"])
        if regulator_id is None or regulator_id in options:
            continue
        options[regulator_id] = regulator_label(
            row["regulator_symbol"], row["regulator_locus_tag"]
        )
    return options


def regulator_label(symbol: str | None, locus_tag: str | None) -> str:
    if symbol and locus_tag:
        return f"{symbol} ({locus_tag})"
    return symbol or locus_tag or "Unknown"
