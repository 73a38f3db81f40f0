"""
Metrics, audit trail and non-critical side-effect tests
"""
from datetime import timedelta

import pytest

from elasticops.exceptions import UpstreamUnavailableError
from elasticops.models.schemas import Collections, RunStatus, utcnow
from elasticops.models.steps import EmbedStep
from elasticops.services.audit import AuditTrailRecorder, RunContext
from elasticops.services.metrics import MetricsRecorder, metric_unit
from elasticops.services.side_effects import run_non_critical


async def _boom():
    raise UpstreamUnavailableError("index ops-metrics", "timed out")


async def _fine():
    return "ok"


class TestRunNonCritical:

    @pytest.mark.asyncio
    async def test_success(self):
        result = await run_non_critical("metric:x", _fine())

        assert result.ok is True
        assert result.error is None

    @pytest.mark.asyncio
    async def test_failure_is_returned_not_raised(self):
        result = await run_non_critical("metric:x", _boom())

        assert result.ok is False
        assert result.label == "metric:x"
        assert "timed out" in result.error


class TestMetrics:

    @pytest.mark.parametrize("name,unit", [
        ("mtta_seconds", "seconds"),
        ("time_saved_minutes", "minutes"),
        ("tickets_auto_triaged", "count"),
    ])
    def test_metric_unit(self, name, unit):
        assert metric_unit(name) == unit

    @pytest.mark.asyncio
    async def test_write_defaults(self, store):
        recorder = MetricsRecorder(store)

        result = await recorder.write("duplicates_prevented", 1, ref_id="TKT-1")

        assert result.ok is True
        metric = list(store.docs(Collections.OPS_METRICS).values())[0]
        assert metric["category"] == "general"
        assert metric["metric_type"] == "operations"
        assert metric["tags"] == ["automated"]
        assert metric["ref_id"] == "TKT-1"

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, store):
        store.fail("write", Collections.OPS_METRICS, UpstreamUnavailableError("index ops-metrics", "HTTP 500"))
        recorder = MetricsRecorder(store)

        result = await recorder.write("tickets_auto_triaged", 1)

        assert result.ok is False
        assert result.label == "metric:tickets_auto_triaged"

    @pytest.mark.asyncio
    async def test_writes_are_create_only_with_an_id(self, store):
        await MetricsRecorder(store).write("tickets_auto_triaged", 1)

        (doc_id,) = store.docs(Collections.OPS_METRICS)
        assert doc_id.startswith("metric_")


class TestMetricsSummary:

    @pytest.mark.asyncio
    async def test_totals_per_metric_and_category(self, store):
        recorder = MetricsRecorder(store)
        await recorder.write("time_saved_minutes", 10, category="billing")
        await recorder.write("time_saved_minutes", 20, category="auth")
        await recorder.write("tickets_auto_triaged", 1, category="billing")

        summary = await recorder.summary(days=7)

        assert summary.period.days == 7
        assert summary.period.end - summary.period.start == timedelta(days=7)
        saved = summary.metrics["time_saved_minutes"]
        assert (saved.total, saved.avg, saved.count) == (30.0, 15.0, 2)
        assert summary.metrics["tickets_auto_triaged"].count == 1
        assert summary.categories == {"billing": 11.0, "auth": 20.0}

    @pytest.mark.asyncio
    async def test_older_metrics_fall_outside_the_window(self, store):
        store.put(Collections.OPS_METRICS, "metric_old", {
            "metric_name": "time_saved_minutes",
            "value": 99,
            "category": "billing",
            "timestamp": (utcnow() - timedelta(days=10)).isoformat(),
        })
        recorder = MetricsRecorder(store)
        await recorder.write("time_saved_minutes", 5, category="billing")

        summary = await recorder.summary(days=7)

        assert summary.metrics["time_saved_minutes"].total == 5.0
        assert summary.categories == {"billing": 5.0}
        assert (await recorder.summary(days=30)).metrics["time_saved_minutes"].total == 104.0

    @pytest.mark.asyncio
    async def test_empty_window(self, store):
        summary = await MetricsRecorder(store).summary(days=1)

        assert summary.metrics == {}
        assert summary.categories == {}

    @pytest.mark.asyncio
    async def test_read_failure_propagates(self, store):
        store.fail("summarize", Collections.OPS_METRICS, UpstreamUnavailableError("aggregate ops-metrics", "HTTP 500"))

        with pytest.raises(UpstreamUnavailableError):
            await MetricsRecorder(store).summary()


class TestRunContext:

    def test_run_id_format(self):
        run = RunContext("ticket_triage")

        assert run.run_id.startswith("run_")
        assert RunContext("ticket_triage").run_id != run.run_id

    def test_finish_collects_steps(self):
        run = RunContext("ticket_triage", ref_id="TKT-1", ref_type="ticket")
        run.record(EmbedStep(started_at=utcnow(), dims=384))

        ops_run = run.finish(RunStatus.COMPLETED)

        assert ops_run.status == "completed"
        assert ops_run.ref_id == "TKT-1"
        assert ops_run.duration_ms >= 0
        assert ops_run.steps["embed"]["dims"] == 384
        assert run.step("embed").dims == 384
        assert run.step("draft") is None

    def test_failed_run_keeps_error(self):
        run = RunContext("incident_detection")

        ops_run = run.finish(RunStatus.FAILED, error="boom")

        assert ops_run.status == "failed"
        assert ops_run.error == "boom"


class TestAuditTrail:

    @pytest.mark.asyncio
    async def test_latest_for_returns_newest_run(self, store):
        audit = AuditTrailRecorder(store)
        older = RunContext("ticket_triage", ref_id="TKT-1")
        older.started_at = utcnow() - timedelta(minutes=5)
        newer = RunContext("ticket_triage", ref_id="TKT-1")

        await audit.record(older.finish(RunStatus.COMPLETED))
        await audit.record(newer.finish(RunStatus.FAILED, error="boom"))

        latest = await audit.latest_for("TKT-1")
        assert latest.run_id == newer.run_id
        assert latest.status == "failed"

    @pytest.mark.asyncio
    async def test_latest_for_unknown_ref(self, store):
        assert await AuditTrailRecorder(store).latest_for("TKT-NOPE") is None

    @pytest.mark.asyncio
    async def test_record_failure_is_swallowed(self, store):
        store.fail("write", Collections.OPS_RUNS, UpstreamUnavailableError("index ops-runs", "timed out"))

        result = await AuditTrailRecorder(store).record(RunContext("x").finish(RunStatus.COMPLETED))

        assert result.ok is False

    @pytest.mark.asyncio
    async def test_run_is_stored_under_its_run_id(self, store):
        ops_run = RunContext("ticket_triage", ref_id="TKT-1").finish(RunStatus.COMPLETED)

        await AuditTrailRecorder(store).record(ops_run)

        assert list(store.docs(Collections.OPS_RUNS)) == [ops_run.run_id]

    @pytest.mark.asyncio
    async def test_recording_the_same_run_twice_keeps_one_document(self, store):
        audit = AuditTrailRecorder(store)
        ops_run = RunContext("ticket_triage", ref_id="TKT-1").finish(RunStatus.COMPLETED)

        first = await audit.record(ops_run)
        second = await audit.record(ops_run)

        assert first.ok is True
        assert second.ok is False
        assert len(store.docs(Collections.OPS_RUNS)) == 1
