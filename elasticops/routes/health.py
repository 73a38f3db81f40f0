"""
Health check endpoints

- GET /api/health - Basic health check
- GET /api/health/dependencies - Elasticsearch connectivity
"""
import time
from datetime import datetime, timezone
from typing import Dict, Optional

import httpx
from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from elasticops.config import get_settings
from elasticops.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/health", tags=["health"])

APP_VERSION = "1.0.0"
APP_START_TIME = time.time()
DEPENDENCY_TIMEOUT_SECONDS = 5.0


# ============================================================================
# Pydantic Models
# ============================================================================

class HealthResponse(BaseModel):
    """Basic health check response"""
    status: str = Field(..., description="Overall status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = Field(..., description="Application version")
    uptime_seconds: float = Field(..., description="Application uptime in seconds")


class DependencyStatus(BaseModel):
    """Status of a single dependency"""
    name: str
    status: str
    latency_ms: Optional[float] = None
    error_message: Optional[str] = None


class DependencyHealth(BaseModel):
    overall_status: str
    dependencies: Dict[str, DependencyStatus]
    checked_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ============================================================================
# Dependency Check Functions
# ============================================================================

async def check_elasticsearch() -> DependencyStatus:
    """
    Check Elasticsearch cluster connectivity

    Returns:
        DependencyStatus with health information
    """
    settings = get_settings()
    try:
        start = time.time()
        async with httpx.AsyncClient(timeout=DEPENDENCY_TIMEOUT_SECONDS) as client:
            response = await client.get(
                settings.elastic_url.rstrip("/") + "/",
                headers=settings.ELASTIC_AUTH_HEADER
            )
            response.raise_for_status()
        latency = (time.time() - start) * 1000

        return DependencyStatus(
            name="elasticsearch",
            status="healthy",
            latency_ms=round(latency, 2)
        )

    except httpx.TimeoutException:
        logger.error("Elasticsearch health check timed out")
        return DependencyStatus(
            name="elasticsearch",
            status="unhealthy",
            error_message=f"Request timed out after {DEPENDENCY_TIMEOUT_SECONDS:g} seconds"
        )
    except httpx.HTTPStatusError as e:
        logger.error(f"Elasticsearch health check failed: {e}")
        return DependencyStatus(
            name="elasticsearch",
            status="unhealthy",
            error_message=f"HTTP {e.response.status_code}: {str(e)}"
        )
    except httpx.HTTPError as e:
        logger.error(f"Elasticsearch health check failed: {e}")
        return DependencyStatus(
            name="elasticsearch",
            status="unhealthy",
            error_message=str(e)
        )


# ============================================================================
# API Endpoints
# ============================================================================

@router.get("", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def basic_health_check() -> HealthResponse:
    """Always 200; does not touch external dependencies"""
    return HealthResponse(
        status="healthy",
        version=APP_VERSION,
        uptime_seconds=round(time.time() - APP_START_TIME, 2)
    )


@router.get("/dependencies", response_model=DependencyHealth, status_code=status.HTTP_200_OK)
async def dependency_health_check() -> DependencyHealth:
    elasticsearch = await check_elasticsearch()
    if elasticsearch.status != "healthy":
        logger.warning("Unhealthy dependencies: elasticsearch")
    return DependencyHealth(
        overall_status=elasticsearch.status,
        dependencies={"elasticsearch": elasticsearch}
    )
