"""Prometheus metrics for the HTTP layer."""

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator


def setup_monitoring(app: FastAPI) -> None:
    """Instrument every route and expose /metrics.

    Set ENABLE_METRICS=true to turn collection on; /metrics and /health are
    left out so scrapers and probes do not dominate the request counts.
    """
    Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        should_respect_env_var=True,
        env_var_name="ENABLE_METRICS",
        should_instrument_requests_inprogress=True,
        inprogress_name="game_grid_requests_inprogress",
        inprogress_labels=True,
        excluded_handlers=["/metrics", "/health"],
    ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
