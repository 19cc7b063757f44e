from __future__ import annotations

from collections import defaultdict
from typing import Dict

from prometheus_client import Counter, Histogram

_WEBHOOK_REQUESTS = Counter(
    "deploy_hooks_webhook_requests_total",
    "Webhook requests by endpoint and outcome",
    labelnames=["endpoint", "outcome"],
)
_DISPATCH_TOTAL = Counter(
    "deploy_hooks_dispatch_total",
    "Commands written to the command pipe by status",
    labelnames=["status"],
)
_DISPATCH_DURATION = Histogram(
    "deploy_hooks_dispatch_duration_ms",
    "Time spent writing a command to the pipe in ms",
    buckets=(1, 5, 10, 50, 100, 250, 500, 1000, 2000),
)
_SCRIPT_RUNS = Counter(
    "deploy_hooks_script_runs_total",
    "Deploy script executions by project and status",
    labelnames=["project", "status"],
)
_SCRIPT_DURATION = Histogram(
    "deploy_hooks_script_duration_ms",
    "Deploy script duration in ms",
    labelnames=["project"],
    buckets=(100, 500, 1000, 5000, 10000, 30000, 60000, 300000, 600000),
)


class DeployMetrics:
    """Records webhook, dispatch and script metrics.

    Keeps small in-memory mirrors so that summaries are available without
    scraping Prometheus.
    """

    def __init__(self) -> None:
        self._requests: Dict[str, int] = defaultdict(int)
        self._dispatches: Dict[str, int] = defaultdict(int)
        self._script_runs: Dict[str, int] = defaultdict(int)

    def record_request(self, endpoint: str, outcome: str) -> None:
        _WEBHOOK_REQUESTS.labels(endpoint=endpoint, outcome=outcome).inc()
        self._requests[outcome] += 1

    def record_dispatch(self, status: str, duration_ms: float) -> None:
        _DISPATCH_TOTAL.labels(status=status).inc()
        _DISPATCH_DURATION.observe(duration_ms)
        self._dispatches[status] += 1

    def record_script_run(self, project: str, status: str, duration_ms: float) -> None:
        _SCRIPT_RUNS.labels(project=project, status=status).inc()
        _SCRIPT_DURATION.labels(project=project).observe(duration_ms)
        self._script_runs[status] += 1

    def summary(self) -> Dict[str, Dict[str, int]]:
        return {
            "requests": dict(self._requests),
            "dispatches": dict(self._dispatches),
            "script_runs": dict(self._script_runs),
        }
