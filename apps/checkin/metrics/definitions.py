"""Metric definitions used across the check-in service."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

ADMISSIONS_TOTAL = "admission_accepted_total"
REJECTIONS_TOTAL = "admission_rejections_total"
NOT_FOUND_TOTAL = "admission_not_found_total"
RETRIES_TOTAL = "admission_cas_retries_total"
CONFLICTS_TOTAL = "admission_conflicts_total"
LEDGER_FAILURES_TOTAL = "admission_ledger_failures_total"
DURATION_SECONDS = "admission_duration_seconds"


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a metric that should exist in the registry."""

    name: str
    metric_type: str
    description: str
    label_names: Tuple[str, ...] = ()


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name=ADMISSIONS_TOTAL,
        metric_type="counter",
        description="Scans and sales accepted by the admission engine.",
        label_names=("action",),
    ),
    MetricDefinition(
        name=REJECTIONS_TOTAL,
        metric_type="counter",
        description="Scans and sales refused by the state machine.",
        label_names=("action", "reason"),
    ),
    MetricDefinition(
        name=NOT_FOUND_TOTAL,
        metric_type="counter",
        description="Scans and sales for unknown ticket numbers.",
        label_names=("action",),
    ),
    MetricDefinition(
        name=RETRIES_TOTAL,
        metric_type="counter",
        description="Compare-and-swap updates lost to a concurrent writer.",
    ),
    MetricDefinition(
        name=CONFLICTS_TOTAL,
        metric_type="counter",
        description="Admissions abandoned after exhausting optimistic retries.",
    ),
    MetricDefinition(
        name=LEDGER_FAILURES_TOTAL,
        metric_type="counter",
        description="Ledger appends that failed after a status update; must stay at zero.",
    ),
    MetricDefinition(
        name=DURATION_SECONDS,
        metric_type="distribution",
        description="Duration of admission attempts in seconds.",
        label_names=("action",),
    ),
)
