"""
Assemble the rank response payload for one regulator.

Metadata scoped to the regulator is fetched first. Every distinct replicate it
references is then downloaded, unpacked and turned into a curve, a few at a time.
Replicates that fail are logged and skipped; the rest are grouped by perturbation
source and experiment in metadata order.

"""

from __future__ import annotations

import asyncio
import logging
from typing import TypedDict

import httpx

from ..concurrency import gather_bounded
from .archive import extract_replicate_csv
from .client import RankResponseClient
from .curves import DEFAULT_RANK_BINS, ProcessedPlotData, parse_replicate_csv, process_plot_data
from .metadata import RankResponseMetadataRow, parse_metadata_export, regulator_label

logger = logging.getLogger("shiny")


class RegulatorInfo(TypedDict):
    id: str
    symbol: str
    locus_tag: str | None
    label: str


class RankResponseReplicateTrace(TypedDict):
    id: str
    promotersetsig: str
    binding_source: str
    binding_source_label: str
    expression_id: str | None
    data: ProcessedPlotData


class RankResponseExpressionGroup(TypedDict):
    expression_id: str
    expression_source: str
    expression_source_label: str
    expression_time: float | None
    random: float
    traces: list[RankResponseReplicateTrace]


class RankResponseRegulatorPayload(TypedDict):
    regulator: RegulatorInfo
    metadata: list[RankResponseMetadataRow]
    expression_groups: dict[str, list[RankResponseExpressionGroup]]


def build_trace(
    row: RankResponseMetadataRow, plot_data: ProcessedPlotData
) -> RankResponseReplicateTrace:
    return {
        "id": row["id"],
        "promotersetsig": row["promotersetsig"] or row["id"],
        "binding_source": row["binding_source"],
        "binding_source_label": row["binding_source_label"] or row["binding_source"],
        "expression_id": row["expression_id"],
        "data": plot_data,
    }


def group_by_expression_source(
    metadata: list[RankResponseMetadataRow],
    plots: dict[str, ProcessedPlotData],
) -> dict[str, list[RankResponseExpressionGroup]]:
    """
    Group replicate curves by perturbation source, then by expression experiment.

    Iteration follows *metadata*, so the result does not depend on the order in
    which replicate fetches completed. Rows without an expression id or without a
    curve are skipped.

    """
    grouped: dict[str, list[RankResponseExpressionGroup]] = {}
    index: dict[tuple[str, str], RankResponseExpressionGroup] = {}

    for row in metadata:
        expression_id = row["expression_id"]
        plot_data = plots.get(row["id"])
        if not expression_id or plot_data is None:
            continue

        key = (row["expression_source"], expression_id)
        group = index.get(key)
        if group is None:
            group = {
                "expression_id": expression_id,
                "expression_source": row["expression_source"],
                "expression_source_label": row["expression_source_label"]
                or row["expression_source"],
                "expression_time": row["expression_time"],
                "random": plot_data["random"][0] if plot_data["random"] else 0.0,
                "traces": [],
            }
            index[key] = group
            grouped.setdefault(row["expression_source"], []).append(group)

        group["traces"].append(build_trace(row, plot_data))

    return grouped


def build_regulator_payload(
    regulator_id: str,
    metadata: list[RankResponseMetadataRow],
    plots: dict[str, ProcessedPlotData],
) -> RankResponseRegulatorPayload:
    if not metadata:
        return {
            "regulator": {
                "id": regulator_id,
                "symbol": "Unknown",
                "locus_tag": None,
                "label": "Unknown",
            },
            "metadata": [],
            "expression_groups": {},
        }

    representative = metadata[0]
    symbol = representative["regulator_symbol"]
    locus_tag = representative["regulator_locus_tag"]
    return {
        "regulator": {
            "id": regulator_id,
            "symbol": symbol,
            "locus_tag": locus_tag,
            "label": regulator_label(symbol, locus_tag),
        },
        "metadata": metadata,
        "expression_groups": group_by_expression_source(metadata, plots),
    }


class RegulatorRankResponseLoader:
    """
    Load :class:`RankResponseRegulatorPayload` objects from the rank response API.

    :param base_url: Rank response API base URL.
    :param token: API token.
    :param concurrency: Maximum replicate archives fetched at once.
    :param n_bins: Largest rank bin kept from each replicate.
    :param timeout: Per-request timeout in seconds.
    :param transport: Optional ``httpx`` transport for tests.

    """

    def __init__(
        self,
        base_url: str | None,
        token: str | None,
        *,
        concurrency: int = 4,
        n_bins: int = DEFAULT_RANK_BINS,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.token = token
        self.concurrency = concurrency
        self.n_bins = n_bins
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> RankResponseClient:
        return RankResponseClient(
            self.base_url, self.token, timeout=self.timeout, transport=self.transport
        )

    async def _load_replicate(
        self, client: RankResponseClient, row: RankResponseMetadataRow
    ) -> ProcessedPlotData | None:
        archive = await client.fetch_replicate_archive(row["id"])
        # decompression, parsing and binomial bands are CPU bound
        return await asyncio.to_thread(self._curve_from_archive, archive, row["id"])

    def _curve_from_archive(
        self, archive: bytes, record_id: str
    ) -> ProcessedPlotData | None:
        csv_text = extract_replicate_csv(archive, record_id)
        return process_plot_data(parse_replicate_csv(csv_text, self.n_bins))

    async def fetch_replicate_curves(
        self, client: RankResponseClient, metadata: list[RankResponseMetadataRow]
    ) -> dict[str, ProcessedPlotData]:
        unique_rows = list({row["id"]: row for row in metadata}.values())

        def _skip(row: RankResponseMetadataRow, exc: Exception) -> None:
            logger.warning("Skipping replicate %s: %s", row["id"], exc)

        results = await gather_bounded(
            unique_rows,
            lambda row: self._load_replicate(client, row),
            limit=self.concurrency,
            on_error=_skip,
        )
        return {row["id"]: curve for row, curve in results if curve is not None}

    async def load(self, regulator_id: str) -> RankResponseRegulatorPayload:
        async with self._client() as client:
            payload = await client.fetch_metadata(regulator_id=regulator_id)
            metadata = await asyncio.to_thread(parse_metadata_export, payload.content)
            if not metadata:
                logger.info("No rank response metadata for regulator %s", regulator_id)
                return build_regulator_payload(regulator_id, [], {})

            plots = await self.fetch_replicate_curves(client, metadata)

        logger.info(
            "Regulator %s: %d of %d replicates produced curves",
            regulator_id,
            len(plots),
            len({row["id"] for row in metadata}),
        )
        return build_regulator_payload(regulator_id, metadata, plots)
