"""Tests for per-regulator rank response assembly."""

import logging
import threading

import pytest

from tfbpexplorer.rank_response import orchestrator
from tfbpexplorer.rank_response.archive import extract_replicate_csv
from tfbpexplorer.rank_response.metadata import parse_metadata_rows
from tfbpexplorer.rank_response.orchestrator import (
    RegulatorRankResponseLoader,
    build_regulator_payload,
    group_by_expression_source,
)

BASE_URL = "https://tfbp.test/api/rankresponse/"
TOKEN = "test-token"


def _curve(random: float = 0.2) -> dict:
    return {
        "x": [1, 2],
        "y": [1.0, 0.5],
        "random": [random, random],
        "ci_lower": [0.0, 0.0],
        "ci_upper": [1.0, 1.0],
        "pvalue": [0.4, 0.6],
    }


@pytest.fixture
def loader(transport):
    return RegulatorRankResponseLoader(
        BASE_URL, TOKEN, concurrency=2, transport=transport
    )


@pytest.fixture
def serve_regulator(router, make_metadata_export, make_tar_gz, make_replicate_csv):
    """Register metadata and replicate archives; ``failing`` ids answer 404."""

    def _serve(rows, failing=()):
        router.metadata_body = make_metadata_export(rows)
        for index, row in enumerate(rows):
            if row["id"] in failing:
                router.archive_status[row["id"]] = 404
                continue
            csv = make_replicate_csv({1, index + 2}).encode()
            router.archives[row["id"]] = make_tar_gz({f"{row['id']}.csv": csv})

    return _serve


class TestGroupByExpressionSource:
    def test_groups_follow_metadata_order(self, metadata_rows):
        rows = parse_metadata_rows(metadata_rows)
        # completion order of replicate fetches must not matter
        plots = {row_id: _curve() for row_id in ["105", "103", "101", "102"]}

        grouped = group_by_expression_source(rows, plots)

        assert list(grouped) == ["kemmeren_tfko", "mcisaac_oe"]
        tfko = grouped["kemmeren_tfko"]
        assert len(tfko) == 1
        assert tfko[0]["expression_id"] == "7"
        assert [trace["id"] for trace in tfko[0]["traces"]] == ["101", "102"]

        overexpression = grouped["mcisaac_oe"][0]
        assert overexpression["expression_time"] == 15.0
        assert overexpression["expression_source_label"] == "Overexpression"
        assert [trace["id"] for trace in overexpression["traces"]] == ["103", "105"]
        assert overexpression["traces"][0]["binding_source_label"] == "ChIP-chip"
        assert overexpression["traces"][1]["promotersetsig"] == "9003"

    def test_group_random_from_first_curve(self, metadata_rows):
        rows = parse_metadata_rows(metadata_rows[:2])
        grouped = group_by_expression_source(
            rows, {"101": _curve(0.3), "102": _curve(0.9)}
        )
        assert grouped["kemmeren_tfko"][0]["random"] == 0.3

    def test_rows_without_expression_id_are_skipped(self, metadata_rows):
        raw = [{**metadata_rows[0], "expression": ""}]
        grouped = group_by_expression_source(parse_metadata_rows(raw), {"101": _curve()})
        assert grouped == {}


class TestBuildRegulatorPayload:
    def test_empty_metadata(self):
        payload = build_regulator_payload("42", [], {})
        assert payload["regulator"] == {
            "id": "42",
            "symbol": "Unknown",
            "locus_tag": None,
            "label": "Unknown",
        }
        assert payload["metadata"] == []
        assert payload["expression_groups"] == {}

    def test_regulator_from_first_row(self, metadata_rows):
        rows = parse_metadata_rows(metadata_rows)
        payload = build_regulator_payload("42", rows, {})
        assert payload["regulator"]["label"] == "GAL4 (YPL248C)"
        assert payload["metadata"] == rows


class TestRegulatorRankResponseLoader:
    @pytest.mark.asyncio
    async def test_failed_replicates_are_skipped(
        self, loader, router, serve_regulator, metadata_rows, caplog
    ):
        serve_regulator(metadata_rows, failing={"102", "104"})

        with caplog.at_level(logging.WARNING, logger="shiny"):
            payload = await loader.load("42")

        groups = payload["expression_groups"]
        traces = [
            trace["id"]
            for source_groups in groups.values()
            for group in source_groups
            for trace in group["traces"]
        ]
        assert traces == ["101", "103", "105"]
        assert len(payload["metadata"]) == 5
        assert "Skipping replicate 102" in caplog.text
        assert "Skipping replicate 104" in caplog.text

        metadata_request = router.requests[0]
        assert metadata_request.url.params["regulator_id"] == "42"
        archive_ids = sorted(
            request.url.params["id"]
            for request in router.requests
            if request.url.path.endswith("/record_table_and_files/")
        )
        assert archive_ids == ["101", "102", "103", "104", "105"]

    @pytest.mark.asyncio
    async def test_curves_are_computed_from_archives(
        self, loader, serve_regulator, metadata_rows
    ):
        serve_regulator(metadata_rows[:1])
        payload = await loader.load("42")

        trace = payload["expression_groups"]["kemmeren_tfko"][0]["traces"][0]
        # responsive at bins 1 and 2 out of 5
        assert trace["data"]["x"] == [1, 2, 3, 4, 5]
        assert trace["data"]["y"] == pytest.approx([1.0, 1.0, 2 / 3, 0.5, 0.4])
        assert payload["expression_groups"]["kemmeren_tfko"][0]["random"] == pytest.approx(0.2)

    @pytest.mark.asyncio
    async def test_duplicate_ids_are_fetched_once(
        self, loader, router, serve_regulator, metadata_rows
    ):
        serve_regulator([metadata_rows[0], metadata_rows[0]])
        await loader.load("42")
        archive_requests = [
            request
            for request in router.requests
            if request.url.path.endswith("/record_table_and_files/")
        ]
        assert len(archive_requests) == 1

    @pytest.mark.asyncio
    async def test_no_metadata(self, loader, router, make_metadata_export):
        router.metadata_body = make_metadata_export([])
        payload = await loader.load("999")

        assert payload["regulator"]["label"] == "Unknown"
        assert payload["expression_groups"] == {}
        assert len(router.requests) == 1

    @pytest.mark.asyncio
    async def test_archive_without_member_is_skipped(
        self, loader, router, make_metadata_export, make_tar_gz, metadata_rows
    ):
        router.metadata_body = make_metadata_export(metadata_rows[:1])
        router.archives["101"] = make_tar_gz({"other.csv": b"rank_bin\n1\n"})

        payload = await loader.load("42")
        assert payload["expression_groups"] == {}
        assert len(payload["metadata"]) == 1

    @pytest.mark.asyncio
    async def test_archives_are_unpacked_off_the_event_loop(
        self, loader, serve_regulator, metadata_rows, monkeypatch
    ):
        serve_regulator(metadata_rows[:1])
        threads = []

        def _recording_extract(archive, record_id):
            threads.append(threading.get_ident())
            return extract_replicate_csv(archive, record_id)

        monkeypatch.setattr(orchestrator, "extract_replicate_csv", _recording_extract)
        payload = await loader.load("42")

        assert payload["expression_groups"]
        assert threads and threading.get_ident() not in threads
