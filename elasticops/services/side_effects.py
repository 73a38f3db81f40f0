"""
Non-critical side effects

Metric and audit writes are observability, not correctness. They run through
``run_non_critical`` which logs a failure and hands it back as a value, so a
caller can report it without the failure ever aborting a workflow.
"""
from typing import Any, Awaitable, Optional

from pydantic import BaseModel

from elasticops.utils.logger import get_logger

logger = get_logger(__name__)


class SideEffectResult(BaseModel):
    label: str
    ok: bool
    error: Optional[str] = None


async def run_non_critical(label: str, operation: Awaitable[Any]) -> SideEffectResult:
    """
    Await an advisory operation and swallow its failure

    Args:
        label: Name used in logs and in the result
        operation: Awaitable performing the write

    Returns:
        SideEffectResult with ok=False and the error message on failure
    """
    try:
        await operation
        return SideEffectResult(label=label, ok=True)
    except Exception as e:
        logger.warning(f"Non-critical side effect '{label}' failed: {e}", exc_info=True)
        return SideEffectResult(label=label, ok=False, error=str(e))
