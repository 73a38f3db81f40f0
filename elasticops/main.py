"""
ElasticOps Triage Engine - FastAPI Backend
"""
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from elasticops.config import get_settings
from elasticops.exceptions import NotFoundError, UpstreamUnavailableError
from elasticops.middleware.logging_middleware import LoggingMiddleware
from elasticops.routes import health, incidents, knowledge, metrics, search, tickets, timeline, tools, workflows
from elasticops.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

app = FastAPI(
    title="ElasticOps Triage Engine",
    description="Evidence-gated incident and ticket workflows over Elasticsearch",
    version="1.0.0"
)

# Middleware runs bottom-up: logging sees the request before CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"error": exc.message, "details": exc.details},
    )


@app.exception_handler(UpstreamUnavailableError)
async def upstream_handler(request: Request, exc: UpstreamUnavailableError):
    logger.error(f"Upstream failure on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": exc.message, "details": exc.details},
    )


app.include_router(workflows.router)
app.include_router(search.router)
app.include_router(timeline.router)
app.include_router(tickets.router)
app.include_router(incidents.router)
app.include_router(knowledge.router)
app.include_router(metrics.router)
app.include_router(tools.router)
app.include_router(health.router)


@app.get("/")
async def root():
    return {"message": "ElasticOps Triage Engine API", "version": "1.0.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.fastapi_host, port=settings.fastapi_port)
