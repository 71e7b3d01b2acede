import pytest

from apps.checkin.metrics import MetricsRegistry, PrometheusExporter, register_default_metrics, track_duration
from apps.checkin.metrics import definitions as metric_names


def test_default_metrics_are_registered(registry):
    names = {metric.name for metric in registry.metrics()}

    assert {definition.name for definition in metric_names.DEFAULT_METRIC_DEFINITIONS} <= names


def test_counter_rejects_negative_increments(registry):
    counter = registry.counter(metric_names.CONFLICTS_TOTAL)

    with pytest.raises(ValueError):
        counter.inc(-1)


def test_counter_requires_declared_labels(registry):
    counter = registry.counter(metric_names.REJECTIONS_TOTAL)

    with pytest.raises(ValueError):
        counter.inc(labels={"action": "ENTER"})


def test_counter_total_matches_partial_labels(registry):
    counter = registry.counter(metric_names.REJECTIONS_TOTAL)
    counter.inc(labels={"action": "ENTER", "reason": "already_entered"})
    counter.inc(2, labels={"action": "EXIT", "reason": "already_entered"})
    counter.inc(labels={"action": "EXIT", "reason": "already_exited"})

    assert counter.total(reason="already_entered") == 3
    assert counter.total(action="EXIT") == 3
    assert counter.total() == 4


def test_registry_refuses_type_change():
    registry = MetricsRegistry()
    registry.counter("admission_example")

    with pytest.raises(TypeError):
        registry.distribution("admission_example")


def test_track_duration_records_observation(registry):
    distribution = registry.distribution(metric_names.DURATION_SECONDS)

    with track_duration(distribution, labels={"action": "ENTER"}):
        pass

    snapshot = distribution.snapshot()[("ENTER",)]
    assert snapshot["count"] == 1.0


def test_prometheus_payload(registry):
    registry.counter(metric_names.ADMISSIONS_TOTAL).inc(labels={"action": "ENTER"})
    registry.counter(metric_names.CONFLICTS_TOTAL).inc()

    payload = PrometheusExporter(registry).export()

    assert f"# TYPE {metric_names.ADMISSIONS_TOTAL} counter" in payload
    assert f'{metric_names.ADMISSIONS_TOTAL}{{action="ENTER"}} 1.0' in payload
    assert f"{metric_names.CONFLICTS_TOTAL} 1.0" in payload
    assert payload.endswith("\n")


def test_reset_keeps_registrations(registry):
    registry.counter(metric_names.CONFLICTS_TOTAL).inc()

    registry.reset()

    assert registry.counter(metric_names.CONFLICTS_TOTAL).value() == 0
    assert register_default_metrics(registry) is registry
