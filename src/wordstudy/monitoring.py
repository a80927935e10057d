"""Monitoring configuration for the study engine."""
from prometheus_client import Counter, Histogram, start_http_server

# Session metrics
sessions_started = Counter(
    "wordstudy_sessions_started_total",
    "Total number of study sessions started or resumed",
    ["kind"],  # started, resumed
)

sessions_completed = Counter(
    "wordstudy_sessions_completed_total",
    "Total number of study sessions finished",
    ["kind"],  # completed, force_terminated
)

stale_sessions_removed = Counter(
    "wordstudy_stale_sessions_removed_total",
    "Total number of abandoned sessions removed by the maintenance sweep",
)

# Evaluation metrics
evaluations = Counter(
    "wordstudy_evaluations_total",
    "Total number of word evaluations",
    ["outcome"],
)

evaluation_duration = Histogram(
    "wordstudy_evaluation_duration_seconds",
    "Duration of a single evaluation including persistence",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
)

# Access gate metrics
access_denials = Counter(
    "wordstudy_access_denials_total",
    "Total number of requests refused by the access gate",
    ["reason"],
)

unit_unlocks = Counter(
    "wordstudy_unit_unlocks_total",
    "Total number of timed group unlocks granted",
)

# Database metrics
db_errors = Counter(
    "wordstudy_db_errors_total",
    "Total number of database errors",
    ["operation"],
)


def start_monitoring(port: int = 9090) -> None:
    """Start the Prometheus metrics server."""
    start_http_server(port)
