"""TF Binding and Perturbation Explorer: Shiny app shell and module orchestration."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from shiny import App, ui

from tfbpexplorer.config import describe_environment, load_settings
from tfbpexplorer.queries import DashboardQueries
from tfbpexplorer.tabs.all_regulator_compare_module import (
    all_regulator_compare_server,
    all_regulator_compare_ui,
)
from tfbpexplorer.tabs.correlation_module import correlation_server, correlation_ui
from tfbpexplorer.tabs.home_module import home_ui
from tfbpexplorer.tabs.individual_regulator_compare_module import (
    individual_regulator_compare_server,
    individual_regulator_compare_ui,
)
from tfbpexplorer.utils.configure_logger import configure_logger

# ---------------------------------------------------------------------------
# Environment / logging
# ---------------------------------------------------------------------------

if not os.getenv("DOCKER_ENV"):
    load_dotenv(dotenv_path=Path(".env"))

settings = load_settings()

logger = configure_logger(
    "shiny",
    level=settings.log_level,
    handler_type=settings.log_handler,
    log_file=f"tfbpexplorer_{time.strftime('%Y%m%d-%H%M%S')}.log",
)
logger.info(describe_environment()["summary"])

# One query surface per process so that every session shares the caches
queries = DashboardQueries(settings)

# ---------------------------------------------------------------------------
# UI
# ---------------------------------------------------------------------------

app_ui = ui.page_navbar(
    ui.nav_panel("Home", home_ui("home")),
    ui.nav_panel(
        "Binding",
        correlation_ui(
            "binding_correlation",
            title="Binding Dataset Correlations",
            description=(
                "Pearson correlation of binding scores between each pair of "
                "binding datasets, over the target genes measured in both."
            ),
        ),
    ),
    ui.nav_panel(
        "Perturbation Response",
        correlation_ui(
            "perturbation_correlation",
            title="Perturbation Response Dataset Correlations",
            description=(
                "Pearson correlation of response values between each pair of "
                "perturbation response datasets, over the target genes measured "
                "in both."
            ),
        ),
    ),
    ui.nav_panel(
        "All Regulator Compare",
        all_regulator_compare_ui("all_regulator_compare"),
    ),
    ui.nav_panel(
        "Individual Regulator",
        individual_regulator_compare_ui("individual_regulator_compare"),
    ),
    title="TF Binding and Perturbation Explorer",
    id="tab",
)

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


def app_server(
    input: Any,
    output: Any,
    session: Any,
) -> None:
    """Call all module servers with the shared query surface."""
    correlation_server(
        "binding_correlation",
        source_name="binding",
        queries=queries,
        logger=logger,
    )
    correlation_server(
        "perturbation_correlation",
        source_name="perturbation",
        queries=queries,
        logger=logger,
    )
    all_regulator_compare_server(
        "all_regulator_compare",
        queries=queries,
        logger=logger,
    )
    individual_regulator_compare_server(
        "individual_regulator_compare",
        queries=queries,
        logger=logger,
    )


# ---------------------------------------------------------------------------
# App instance
# ---------------------------------------------------------------------------

app = App(ui=app_ui, server=app_server)
