"""
HTTP surface of the liveness supervisor.

Serves a single GET route for the orchestrator's liveness probe: 200 while
the pipeline is making progress, 503 once it has stalled.
"""
import threading
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from health.supervisor import HealthReport, LivenessSupervisor
from utils import config
from utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PORT = 8080


def create_health_app(
    supervisor: LivenessSupervisor,
    path: str = config.HEALTH_CHECK_PATH,
) -> FastAPI:
    app = FastAPI(
        title="Camera Ingest Health",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.get(path, response_model=HealthReport)
    def is_healthy():
        report = supervisor.snapshot()
        if report.healthy:
            return report

        logger.warning(
            f"Pipeline stalled: no activity for {report.seconds_since_activity:.1f}s "
            f"(threshold {report.idle_threshold_seconds:g}s)"
        )
        return JSONResponse(status_code=503, content=jsonable_encoder(report))

    return app


class HealthCheckServer:
    """Runs the health app with uvicorn on a daemon thread."""

    def __init__(
        self,
        supervisor: LivenessSupervisor,
        host: str = config.HEALTH_CHECK_HOST,
        port: int = DEFAULT_PORT,
        path: str = config.HEALTH_CHECK_PATH,
    ):
        self.host = host
        self.port = port
        self.path = path
        self.app = create_health_app(supervisor, path)
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    def start(self):
        uv_config = uvicorn.Config(
            self.app,
            host=self.host,
            port=self.port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(uv_config)
        self._thread = threading.Thread(
            target=self._server.run,
            name="health-check-server",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Health check listening on http://{self.host}:{self.port}{self.path}")

    def stop(self, timeout: float = 5.0):
        if not self._server:
            return
        self._server.should_exit = True
        if self._thread:
            self._thread.join(timeout)
        logger.info("Health check server stopped")
