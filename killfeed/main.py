"""
Killfeed - live killmail feed with value-scaled retention.

Features:
- RedisQ long-poll ingestion with unbounded retry
- In-memory store aged by a periodic retention sweep
- Focus/unfocus API for the map UI
- Structured logging, Prometheus metrics, health checks
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from .config import get_settings
from .logging import setup_logging, get_logger
from .api.router import router
from .middleware import CorrelationIdMiddleware, MetricsMiddleware
from .metrics import Metrics
from .health import HealthChecker
from .services.monitor import monitor, set_metrics

# Initialize configuration
settings = get_settings()

# Setup logging
setup_logging(json_output=settings.LOG_JSON, service_name="killfeed")
logger = get_logger()

# Initialize metrics
metrics = Metrics(service_name="killfeed", version="0.1.0")
set_metrics(metrics)

# Initialize health checker
health_checker = HealthChecker(monitor, service_name="killfeed", version="0.1.0")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "service_starting",
        version="0.1.0",
        env=settings.ENV,
        redisq_url=settings.REDISQ_URL,
        identity_backend=settings.IDENTITY_BACKEND,
    )
    if settings.FEED_AUTOSTART:
        try:
            await monitor.start()
        except Exception as e:
            # Keep serving; readiness reports the feed as down
            logger.error("feed_start_failed", error=str(e), exc_info=True)
    yield
    logger.info("service_stopping")
    await monitor.stop()
    metrics.app_up.labels(service="killfeed", version="0.1.0").set(0)


# Create FastAPI app
app = FastAPI(
    title="Killfeed",
    version="0.1.0",
    description="Live killmail feed with value-scaled retention",
    lifespan=lifespan,
)

# Add middleware (order matters: correlation ID first, then metrics)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware, metrics=metrics)

# Include API routes
app.include_router(router)

# Mount Prometheus metrics endpoint
metrics_app = make_asgi_app(registry=metrics.registry)
app.mount("/metrics", metrics_app)


@app.get("/health")
async def health():
    """
    Liveness probe - basic health check.

    Returns 200 if service is running.
    """
    logger.debug("health_check_liveness")
    return health_checker.liveness()


@app.get("/health/ready")
async def health_ready():
    """
    Readiness probe - comprehensive health check.

    Checks:
    - Poll loop running with a fresh heartbeat
    - Queue identity backend reachable
    - Memory availability

    Returns:
        200: Feed is live
        503: Feed is stalled or not started
    """
    logger.debug("health_check_readiness")
    metrics.update_system_metrics()
    result = await health_checker.readiness()
    status_code = 200 if result["status"] == "ready" else 503
    return JSONResponse(result, status_code=status_code)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "killfeed.main:app",
        host="0.0.0.0",
        port=settings.SERVICE_PORT,
        reload=True,
    )
