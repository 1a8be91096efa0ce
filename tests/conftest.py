"""Pytest configuration and shared fixtures for tfbpexplorer tests."""

import gzip
import io
import tarfile
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from tfbpexplorer.config import Settings

BASE_URL = "https://tfbp.test/api/rankresponse/"
TOKEN = "test-token"

METADATA_COLUMNS = [
    "id",
    "regulator_id",
    "regulator_symbol",
    "regulator_locus_tag",
    "binding_source",
    "expression_source",
    "expression",
    "expression_time",
    "promotersetsig",
    "rank_25",
    "rank_50",
    "dto_empirical_pvalue",
    "univariate_pvalue",
    "random_expectation",
    "passing",
]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _csv(columns: list[str], rows: list[dict]) -> str:
    lines = [",".join(columns)]
    for row in rows:
        lines.append(",".join("" if row.get(c) is None else str(row[c]) for c in columns))
    return "\n".join(lines) + "\n"


def _tar_gz(members: dict[str, bytes], compress: bool = True) -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, content in members.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    data = buffer.getvalue()
    return gzip.compress(data) if compress else data


def _replicate_csv(successes: set[int], n_bins: int = 5, random: float = 0.2) -> str:
    rows = [
        {
            "rank_bin": rank,
            "responsive": "True" if rank in successes else "False",
            "random": random,
        }
        for rank in range(1, n_bins + 1)
    ]
    return _csv(["rank_bin", "responsive", "random"], rows)


@pytest.fixture
def make_csv() -> Callable[[list[str], list[dict]], str]:
    """Build CSV text from column names and row dicts (None -> empty cell)."""
    return _csv


@pytest.fixture
def make_tar_gz() -> Callable[..., bytes]:
    """Build a (gzipped) tar archive from ``{member_name: bytes}``."""
    return _tar_gz


@pytest.fixture
def make_replicate_csv() -> Callable[..., str]:
    """Replicate CSV with bins 1..n_bins, responsive at *successes*."""
    return _replicate_csv


@pytest.fixture
def make_metadata_export() -> Callable[[list[dict]], bytes]:
    """Gzipped metadata export body as served by ``export/``."""

    def _build(rows: list[dict]) -> bytes:
        return gzip.compress(_csv(METADATA_COLUMNS, rows).encode("utf-8"))

    return _build


@pytest.fixture
def metadata_rows() -> list[dict]:
    """Five replicates of regulator 42 across two perturbation experiments."""
    base = {
        "regulator_id": "42",
        "regulator_symbol": "GAL4",
        "regulator_locus_tag": "YPL248C",
        "random_expectation": "0.2",
        "passing": "true",
    }
    return [
        {**base, "id": "101", "binding_source": "harbison_chip",
         "expression_source": "kemmeren_tfko", "expression": "7",
         "expression_time": "", "promotersetsig": "9001", "rank_25": "0.4"},
        {**base, "id": "102", "binding_source": "brent_nf_cc",
         "expression_source": "kemmeren_tfko", "expression": "7",
         "expression_time": "", "promotersetsig": "9002", "rank_25": "0.36"},
        {**base, "id": "103", "binding_source": "harbison_chip",
         "expression_source": "mcisaac_oe", "expression": "8",
         "expression_time": "15", "promotersetsig": "9001", "rank_25": "0.2"},
        {**base, "id": "104", "binding_source": "brent_nf_cc",
         "expression_source": "mcisaac_oe", "expression": "8",
         "expression_time": "15", "promotersetsig": "9002", "rank_25": "NA"},
        {**base, "id": "105", "binding_source": "chipexo_pugh_allevents",
         "expression_source": "mcisaac_oe", "expression": "8",
         "expression_time": "15", "promotersetsig": "9003", "rank_25": ""},
    ]


# ---------------------------------------------------------------------------
# Upstream mocks
# ---------------------------------------------------------------------------


class UpstreamRouter:
    """
    ``httpx.MockTransport`` handler serving canned rank response API answers.

    Every request is recorded in ``requests``.

    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.metadata_body: bytes = b""
        self.metadata_status: int = 200
        self.last_modified: str | None = None
        self.archives: dict[str, bytes] = {}
        self.archive_status: dict[str, int] = {}
        self.json_routes: dict[str, tuple[int, object]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        location = f"{request.url.scheme}://{request.url.host}{path}"
        if location in self.json_routes:
            status, body = self.json_routes[location]
            if isinstance(body, (bytes, str)):
                return httpx.Response(status, content=body)
            return httpx.Response(status, json=body)

        if path.endswith("/export/"):
            headers = {"last-modified": self.last_modified} if self.last_modified else {}
            return httpx.Response(
                self.metadata_status, content=self.metadata_body, headers=headers
            )

        if path.endswith("/record_table_and_files/"):
            record_id = request.url.params.get("id", "")
            status = self.archive_status.get(record_id, 200)
            if status != 200:
                return httpx.Response(status, text=f"record {record_id} not found")
            if record_id not in self.archives:
                return httpx.Response(404, text="unknown record")
            return httpx.Response(200, content=self.archives[record_id])

        return httpx.Response(404, text="no route")

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]


@pytest.fixture
def router() -> UpstreamRouter:
    return UpstreamRouter()


@pytest.fixture
def transport(router: UpstreamRouter) -> httpx.MockTransport:
    return httpx.MockTransport(router)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        rankresponse_url=BASE_URL,
        api_token=TOKEN,
        data_directories=(tmp_path / "missing", tmp_path),
        cache_ttl_seconds=300.0,
        replicate_concurrency=2,
    )
