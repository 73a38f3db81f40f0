"""
Audit Trail Recorder

One OpsRun per workflow execution. A ``RunContext`` collects typed step
records while the run is in flight; ``finish`` turns it into the OpsRun that
is written exactly once, whether the run completed or failed.
"""
import time
from typing import List, Optional
from uuid import uuid4

from elasticops.models.schemas import Collections, OpsRun, RunStatus, utcnow
from elasticops.models.steps import StepRecord
from elasticops.services.document_store import DocumentStore
from elasticops.services.search_templates import build_latest_run_search
from elasticops.services.side_effects import SideEffectResult, run_non_critical
from elasticops.models.queries import Visibility
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)


def new_run_id() -> str:
    return f"run_{int(time.time() * 1000)}_{uuid4().hex[:6]}"


class RunContext:
    """Per-run state shared by the workflow nodes"""

    def __init__(
        self,
        workflow: str,
        ref_id: Optional[str] = None,
        ref_type: Optional[str] = None
    ):
        self.run_id = new_run_id()
        self.workflow = workflow
        self.ref_id = ref_id
        self.ref_type = ref_type
        self.started_at = utcnow()
        self.steps: List[StepRecord] = []

    def record(self, step: StepRecord) -> StepRecord:
        self.steps.append(step)
        logger.debug(f"[{self.run_id}] step {step.name} completed")
        return step

    def step(self, name: str) -> Optional[StepRecord]:
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def finish(self, status: RunStatus, error: Optional[str] = None) -> OpsRun:
        completed_at = utcnow()
        duration_ms = int((completed_at - self.started_at).total_seconds() * 1000)
        return OpsRun(
            run_id=self.run_id,
            workflow=self.workflow,
            ref_id=self.ref_id,
            ref_type=self.ref_type,
            status=status,
            started_at=self.started_at,
            completed_at=completed_at,
            duration_ms=max(duration_ms, 0),
            steps={step.name: step.to_audit() for step in self.steps},
            error=error,
        )


class AuditTrailRecorder:

    def __init__(self, store: DocumentStore):
        self.store = store

    async def record(self, run: OpsRun) -> SideEffectResult:
        """Append the OpsRun to ``ops-runs``"""
        result = await run_non_critical(
            f"ops-run:{run.run_id}",
            self.store.write(
                Collections.OPS_RUNS,
                run.model_dump(mode="json"),
                doc_id=run.run_id,
                visibility=Visibility.IMMEDIATE,
                create_only=True,
            ),
        )
        if result.ok:
            logger.info(f"Recorded {run.workflow} run {run.run_id} ({run.status}, {run.duration_ms}ms)")
        return result

    async def latest_for(self, ref_id: str) -> Optional[OpsRun]:
        """Most recent OpsRun for a referenced entity, or None"""
        response = await self.store.search(Collections.OPS_RUNS, build_latest_run_search(ref_id))
        if not response.hits:
            return None
        return OpsRun.model_validate(response.hits[0].source)
