"""Tests for locating, computing and fetching correlation matrices."""

import httpx
import pytest

from tfbpexplorer.correlation.loader import (
    CORRELATION_SOURCES,
    fetch_correlation_from_api,
    load_correlation_payload,
    load_local_correlation,
    locate_data_file,
)
from tfbpexplorer.errors import (
    DataFileNotFoundError,
    MalformedPayloadError,
    UpstreamError,
)

API_URL = "https://correlation.test/binding"

BINDING_CSV = (
    "target_symbol,red_median,ds_b,ds_a\n"
    "YAL001C,5,2,1\n"
    "YAL002W,4,4,2\n"
    "YAL003W,3,6,3\n"
    "YAL004W,9,NA,4\n"
)

REMOTE_PAYLOAD = {
    "labels": ["z", "a"],
    "matrix": [[1.0, -0.5], [-0.5, 1.0]],
    "min": -0.5,
    "max": -0.5,
}


def _json_transport(status: int, body, calls: list) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if isinstance(body, (str, bytes)):
            return httpx.Response(status, content=body)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


class TestLocateDataFile:
    def test_first_directory_with_file_wins(self, tmp_path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()
        (second / "data.csv").write_text("x")

        assert locate_data_file("data.csv", [tmp_path / "absent", first, second]) == (
            second / "data.csv"
        )

    def test_missing_everywhere(self, tmp_path):
        with pytest.raises(DataFileNotFoundError, match="data.csv"):
            locate_data_file("data.csv", [tmp_path])

    def test_directory_with_the_same_name_is_skipped(self, tmp_path):
        (tmp_path / "data.csv").mkdir()
        with pytest.raises(DataFileNotFoundError):
            locate_data_file("data.csv", [tmp_path])


class TestLoadLocalCorrelation:
    def test_binding_snapshot(self, tmp_path):
        (tmp_path / "cc_predictors_normalized.csv").write_text(BINDING_CSV)
        payload = load_local_correlation(CORRELATION_SOURCES["binding"], [tmp_path])

        assert payload["labels"] == ["ds_a", "ds_b"]
        assert payload["matrix"][0][0] == 1.0
        assert payload["matrix"][0][1] == pytest.approx(1.0)

    def test_perturbation_keeps_every_dataset_column(self, tmp_path):
        (tmp_path / "response_data.csv").write_text(
            "target_symbol,kemmeren,hu,mcisaac\n"
            "g1,1,3,0.5\ng2,2,1,0.1\ng3,3,2,0.9\n"
        )
        payload = load_local_correlation(CORRELATION_SOURCES["perturbation"], [tmp_path])
        assert payload["labels"] == ["hu", "kemmeren", "mcisaac"]
        assert payload["min"] <= payload["max"]


class TestFetchCorrelationFromApi:
    @pytest.mark.asyncio
    async def test_sorts_remote_payload(self):
        calls = []
        payload = await fetch_correlation_from_api(
            API_URL, transport=_json_transport(200, REMOTE_PAYLOAD, calls)
        )
        assert payload["labels"] == ["a", "z"]
        assert payload["matrix"] == [[1.0, -0.5], [-0.5, 1.0]]
        assert calls == [API_URL]

    @pytest.mark.asyncio
    async def test_non_success_status(self):
        with pytest.raises(UpstreamError) as excinfo:
            await fetch_correlation_from_api(
                API_URL, transport=_json_transport(503, "unavailable", [])
            )
        assert excinfo.value.status_code == 503
        assert excinfo.value.detail == "unavailable"

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        with pytest.raises(MalformedPayloadError):
            await fetch_correlation_from_api(
                API_URL, transport=_json_transport(200, "<html>", [])
            )

    @pytest.mark.asyncio
    async def test_wrong_shape(self):
        with pytest.raises(MalformedPayloadError, match="expected format"):
            await fetch_correlation_from_api(
                API_URL,
                transport=_json_transport(200, {"labels": [], "matrix": []}, []),
            )

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(UpstreamError, match="Failed to reach"):
            await fetch_correlation_from_api(
                API_URL, transport=httpx.MockTransport(handler)
            )


class TestLoadCorrelationPayload:
    @pytest.mark.asyncio
    async def test_local_snapshot_is_preferred(self, tmp_path):
        (tmp_path / "cc_predictors_normalized.csv").write_text(BINDING_CSV)
        calls = []
        payload = await load_correlation_payload(
            CORRELATION_SOURCES["binding"],
            [tmp_path],
            API_URL,
            transport=_json_transport(200, REMOTE_PAYLOAD, calls),
        )
        assert payload["labels"] == ["ds_a", "ds_b"]
        assert calls == []

    @pytest.mark.asyncio
    async def test_falls_back_to_api(self, tmp_path):
        calls = []
        payload = await load_correlation_payload(
            CORRELATION_SOURCES["binding"],
            [tmp_path],
            API_URL,
            transport=_json_transport(200, REMOTE_PAYLOAD, calls),
        )
        assert payload["labels"] == ["a", "z"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_all_sources_failing_raises_last_error(self, tmp_path):
        with pytest.raises(MalformedPayloadError):
            await load_correlation_payload(
                CORRELATION_SOURCES["binding"],
                [tmp_path],
                API_URL,
                transport=_json_transport(200, {"labels": "oops"}, []),
            )

    @pytest.mark.asyncio
    async def test_no_api_configured(self, tmp_path):
        with pytest.raises(DataFileNotFoundError):
            await load_correlation_payload(
                CORRELATION_SOURCES["perturbation"], [tmp_path], None
            )

    @pytest.mark.asyncio
    async def test_undecodable_snapshot_falls_back_to_api(self, tmp_path):
        (tmp_path / "response_data.csv").write_bytes(
            "target_symbol,M\xe9nard,other\ng1,1,2\ng2,2,4\n".encode("latin-1")
        )
        calls = []
        payload = await load_correlation_payload(
            CORRELATION_SOURCES["perturbation"],
            [tmp_path],
            API_URL,
            transport=_json_transport(200, REMOTE_PAYLOAD, calls),
        )
        assert payload["labels"] == ["a", "z"]
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_undecodable_snapshot_without_api_is_malformed(self, tmp_path):
        (tmp_path / "response_data.csv").write_bytes(
            "target_symbol,M\xe9nard\ng1,1\n".encode("latin-1")
        )
        with pytest.raises(MalformedPayloadError, match="response_data.csv"):
            await load_correlation_payload(
                CORRELATION_SOURCES["perturbation"], [tmp_path], None
            )

    @pytest.mark.asyncio
    async def test_remote_rows_that_are_not_lists_are_rejected(self, tmp_path):
        body = {"labels": ["a", "b"], "matrix": [{"a": 1}, {"b": 2}], "min": 0, "max": 1}
        with pytest.raises(MalformedPayloadError, match="expected format"):
            await load_correlation_payload(
                CORRELATION_SOURCES["binding"],
                [tmp_path],
                API_URL,
                transport=_json_transport(200, body, []),
            )
