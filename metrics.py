"""Prometheus textfile metrics export for Agents suite session summaries.

Besides pass/fail counters the export carries how redirect-aware actions were
classified, which shows when fast redirects start dominating save outcomes.
A fresh registry is built per write so repeated local runs in one process do
not share metric state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from prometheus_client import CollectorRegistry, Gauge, generate_latest

from pages.actions import ActionStatus


@dataclass(frozen=True)
class SessionMetrics:
    """Aggregate session counters exported at pytest session finish."""

    total: int
    passed: int
    failed: int
    skipped: int
    duration_seconds: float
    flaky: int = 0
    actions: dict[str, int] = field(default_factory=dict)


def merge_action_counts(totals: dict[str, int], counts: dict[str, int]) -> None:
    for outcome, count in counts.items():
        totals[outcome] = totals.get(outcome, 0) + count


@dataclass
class SessionTally:
    """Running per-session counters fed from test reports and page objects."""

    results: dict[str, int] = field(
        default_factory=lambda: {"passed": 0, "failed": 0, "skipped": 0}
    )
    actions: dict[str, int] = field(default_factory=dict)
    rerun: set[str] = field(default_factory=set)
    counted: set[str] = field(default_factory=set)

    def record(self, report) -> None:
        """Count one outcome per nodeid: the call phase, or a skip during setup."""
        if report.outcome == "rerun":
            self.rerun.add(report.nodeid)
            return
        decisive = report.when == "call" or (report.when == "setup" and report.skipped)
        if not decisive or report.nodeid in self.counted:
            return
        self.counted.add(report.nodeid)
        self.results[report.outcome] = self.results.get(report.outcome, 0) + 1

    def summary(self, total: int, duration_seconds: float) -> SessionMetrics:
        return SessionMetrics(
            total=total,
            passed=self.results["passed"],
            failed=self.results["failed"],
            skipped=self.results["skipped"],
            duration_seconds=duration_seconds,
            flaky=len(self.rerun),
            actions=dict(self.actions),
        )


def write_metrics(path: str, summary: SessionMetrics) -> None:
    """Write metrics atomically to the Prometheus textfile collector path."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    registry = CollectorRegistry()
    gauges = {
        "total": Gauge("agents_e2e_tests_total", "Total tests collected", registry=registry),
        "passed": Gauge("agents_e2e_tests_passed", "Passed tests", registry=registry),
        "failed": Gauge("agents_e2e_tests_failed", "Failed tests", registry=registry),
        "skipped": Gauge("agents_e2e_tests_skipped", "Skipped tests", registry=registry),
        "flaky": Gauge("agents_e2e_tests_flaky", "Tests that required reruns", registry=registry),
        "duration": Gauge(
            "agents_e2e_session_duration_seconds",
            "Total pytest session duration in seconds",
            registry=registry,
        ),
    }
    actions = Gauge(
        "agents_e2e_actions",
        "Redirect-aware UI actions by classified outcome",
        ["outcome"],
        registry=registry,
    )

    gauges["total"].set(summary.total)
    gauges["passed"].set(summary.passed)
    gauges["failed"].set(summary.failed)
    gauges["skipped"].set(summary.skipped)
    gauges["flaky"].set(summary.flaky)
    gauges["duration"].set(summary.duration_seconds)
    # Export every status, including zeros, so dashboards see a stable series set.
    for status in ActionStatus:
        actions.labels(outcome=status.value).set(summary.actions.get(status.value, 0))

    # Write-then-rename avoids partially written files being scraped by Prometheus.
    tmp_path = target.with_suffix(f"{target.suffix}.tmp")
    tmp_path.write_bytes(generate_latest(registry))
    tmp_path.replace(target)
