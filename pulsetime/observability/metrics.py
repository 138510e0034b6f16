"""
Prometheus metrics configuration for Pulsetime.
"""
from prometheus_client import Counter
from prometheus_fastapi_instrumentator import Instrumentator

from pulsetime.config import settings


# Custom metrics
pulse_transitions_total = Counter(
    "pulse_transitions_total",
    "Total number of committed pulse state transitions",
    ["transition"],
)

pulse_conflicts_total = Counter(
    "pulse_conflicts_total",
    "Total number of rejected pulse transitions (state conflicts and lost races)",
    ["operation"],
)

tracked_minutes_total = Counter(
    "tracked_minutes_total",
    "Gross minutes accumulated into projects by completed pulses",
)


def setup_metrics(app, enabled: bool | None = None):
    """
    Setup Prometheus metrics for FastAPI app.
    Only enables if METRICS_ENABLED is set.

    Args:
        app: FastAPI application instance
        enabled: overrides the METRICS_ENABLED setting when given
    """
    if not (settings.METRICS_ENABLED if enabled is None else enabled):
        return

    instrumentator = Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=False,
        should_respect_env_var=False,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/metrics"],
        inprogress_name="http_requests_inprogress",
        inprogress_labels=True,
    )

    instrumentator.instrument(app).expose(app, include_in_schema=True, tags=["observability"])
