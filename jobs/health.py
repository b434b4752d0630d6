"""
Health check server for the settlement scheduler.

Exposes /health, /readiness and /liveness for container orchestration.
"""

import asyncio

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger


# Jobs the scheduler must have registered to be considered ready
REQUIRED_JOB_IDS = frozenset({"settlement_sweep", "stale_settlements"})

# Global scheduler reference for health checks
_scheduler: AsyncIOScheduler | None = None


def set_scheduler(scheduler: AsyncIOScheduler) -> None:
    """
    Set the scheduler instance for health checks.

    Args:
        scheduler: AsyncIOScheduler instance to monitor
    """
    global _scheduler
    _scheduler = scheduler
    logger.info("Scheduler registered for health checks")


def _missing_jobs() -> set[str]:
    if _scheduler is None:
        return set(REQUIRED_JOB_IDS)
    return set(REQUIRED_JOB_IDS) - {job.id for job in _scheduler.get_jobs()}


async def health_handler(request: web.Request) -> web.Response:
    """Scheduler status with the next run of each settlement job."""
    if _scheduler is None:
        return web.json_response(
            {"status": "unhealthy", "error": "Scheduler not initialized"},
            status=503,
        )

    jobs = _scheduler.get_jobs()
    return web.json_response(
        {
            "status": "healthy" if _scheduler.running else "stopped",
            "scheduler_running": _scheduler.running,
            "jobs": [
                {
                    "id": job.id,
                    "name": job.name,
                    # Jobs added before start() have no next run yet
                    "next_run_time": (
                        job.next_run_time.isoformat()
                        if getattr(job, "next_run_time", None) else None
                    ),
                }
                for job in jobs
            ],
            "missing_jobs": sorted(_missing_jobs()),
        }
    )


async def readiness_handler(request: web.Request) -> web.Response:
    """Ready once the scheduler runs with every settlement job registered."""
    ready = (
        _scheduler is not None and _scheduler.running and not _missing_jobs()
    )
    return web.json_response(
        {"status": "ready" if ready else "not_ready", "ready": ready},
        status=200 if ready else 503,
    )


async def liveness_handler(request: web.Request) -> web.Response:
    """The process is alive."""
    return web.json_response({"status": "alive", "alive": True})


def create_health_app() -> web.Application:
    """Build the aiohttp application with the health routes."""
    app = web.Application()
    app.router.add_get("/health", health_handler)
    app.router.add_get("/readiness", readiness_handler)
    app.router.add_get("/liveness", liveness_handler)
    return app


async def start_health_server(
    host: str = "0.0.0.0",
    port: int = 8081,
) -> tuple[web.AppRunner, web.TCPSite]:
    """
    Start health check server.

    Args:
        host: Host to bind to
        port: Port to bind to

    Returns:
        Tuple of (AppRunner, TCPSite) for cleanup
    """
    runner = web.AppRunner(create_health_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    return runner, site


async def stop_health_server(
    runner: web.AppRunner,
    timeout: int = 5,
) -> None:
    """
    Stop health check server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
