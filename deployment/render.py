# render.py
import argparse
import json
import sys
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, validator

from deployment.topology import (
    InvalidArgument,
    ReplicaSpec,
    allocate,
    find_conflicts,
)
from utils.logger import get_logger

logger = get_logger(__name__)


class CameraValues(BaseModel):
    address: Optional[str] = None
    user: str = ""
    password: str = ""
    rtsp_port: int = Field(default=554, ge=1, le=65535)
    path: str = "/cam/realmonitor"
    protocols: str = "tcp"


class StreamStoreValues(BaseModel):
    controller: str = "tcp://stream-store-controller:9000"
    scope: str = Field(..., min_length=1)
    stream: str = Field(default="camera1", min_length=1)
    num_streams: int = Field(default=1, ge=1)
    credentials_path: str = "/etc/stream-store/credentials.json"
    allow_create_scope: bool = False


class HealthCheckValues(BaseModel):
    enabled: bool = False
    idle_seconds: float = Field(default=30, gt=0)
    port: int = Field(default=8080, ge=1, le=65535)
    path: str = "/ishealthy"
    initial_delay_seconds: int = Field(default=30, ge=0)
    period_seconds: int = Field(default=3, ge=1)


class DeploymentValues(BaseModel):
    """Inputs of one camera ingest release."""

    release_name: str = Field(..., min_length=1)
    enabled: bool = True
    alias: Optional[str] = None
    camera: CameraValues = Field(default_factory=CameraValues)
    stream_store: StreamStoreValues
    health_check: HealthCheckValues = Field(default_factory=HealthCheckValues)
    log_dir: str = "/mnt/logs/test-logs"
    app_parameters: Dict[str, str] = Field(default_factory=dict)

    @validator("app_parameters", pre=True)
    def stringify_parameters(cls, v):
        if v is None:
            return {}
        return {str(key): str(value) for key, value in v.items()}


class LivenessProbe(BaseModel):
    path: str
    port: int
    initial_delay_seconds: int = 30
    period_seconds: int = 3


class WorkerSpec(BaseModel):
    release_name: str
    replica: ReplicaSpec
    env: Dict[str, str]
    liveness_probe: Optional[LivenessProbe] = None

    @property
    def name(self) -> str:
        return self.replica.instance_name


def format_seconds(seconds: float) -> str:
    """Render a duration so that float() on the worker side reads it back exactly."""
    seconds = float(seconds)
    if seconds.is_integer():
        return str(int(seconds))
    return repr(seconds)


def worker_env(values: DeploymentValues, replica: ReplicaSpec) -> Dict[str, str]:
    camera = values.camera
    store = values.stream_store

    env = {
        "CAMERA_ADDRESS": camera.address or f"{values.release_name}-simulator",
        "CAMERA_USER": camera.user,
        "CAMERA_PASSWORD": camera.password,
        "CAMERA_PORT": str(camera.rtsp_port),
        "CAMERA_PATH": camera.path,
        "CAMERA_PROTOCOLS": camera.protocols,
        "STREAM_STORE_CONTROLLER": store.controller,
        "STREAM_STORE_SCOPE": store.scope,
        "STREAM_STORE_CREDENTIALS_PATH": store.credentials_path,
        "ALLOW_CREATE_SCOPE": "true" if store.allow_create_scope else "false",
        "STREAM_NAME": replica.stream_name,
        "LOG_DIR": values.log_dir,
    }

    if values.health_check.enabled:
        env["HEALTH_CHECK_ENABLED"] = "true"
        env["HEALTH_CHECK_IDLE_SECONDS"] = format_seconds(values.health_check.idle_seconds)
        env["HEALTH_CHECK_PORT"] = str(values.health_check.port)
        env["HEALTH_CHECK_PATH"] = values.health_check.path

    # Free-form parameters go last so they can override anything above
    env.update(values.app_parameters)
    return env


def render_workers(values: DeploymentValues) -> List[WorkerSpec]:
    if not values.enabled:
        logger.info(f"Release {values.release_name} disabled, nothing to render")
        return []

    replicas = allocate(
        values.stream_store.num_streams,
        values.release_name,
        alias=values.alias,
        stream_base_name=values.stream_store.stream,
    )

    probe = None
    if values.health_check.enabled:
        probe = LivenessProbe(
            path=values.health_check.path,
            port=values.health_check.port,
            initial_delay_seconds=values.health_check.initial_delay_seconds,
            period_seconds=values.health_check.period_seconds,
        )

    workers = [
        WorkerSpec(
            release_name=values.release_name,
            replica=replica,
            env=worker_env(values, replica),
            liveness_probe=probe,
        )
        for replica in replicas
    ]
    logger.info(
        f"Rendered {len(workers)} worker(s) for release {values.release_name}: "
        f"{[w.name for w in workers]}"
    )
    return workers


def render_releases(releases: List[DeploymentValues]) -> List[WorkerSpec]:
    """
    Render several releases that share one namespace.

    Fails when two workers would get the same instance name; the worker
    rendered first keeps the name.
    """
    workers = []
    for values in releases:
        workers.extend(render_workers(values))

    conflicts = find_conflicts(w.replica for w in workers)
    if conflicts:
        for kept, duplicate in conflicts:
            logger.error(
                f"Instance name {duplicate.instance_name} (replica {duplicate.index}) "
                f"already used by replica {kept.index}"
            )
        raise InvalidArgument(
            f"{len(conflicts)} instance name conflict(s): "
            f"{sorted({d.instance_name for _, d in conflicts})}"
        )
    return workers


def load_values(path: str) -> DeploymentValues:
    with open(path, "r") as f:
        return DeploymentValues(**json.load(f))


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Render camera ingest worker descriptors"
    )
    parser.add_argument(
        "--values",
        action="append",
        required=True,
        help="JSON values file of one release (repeatable)",
    )
    parser.add_argument(
        "--output",
        default=None,
        help="Write descriptors here instead of stdout",
    )
    args = parser.parse_args(argv)

    try:
        releases = [load_values(path) for path in args.values]
        workers = render_releases(releases)
    except (ValueError, OSError) as e:
        logger.error(f"Rendering failed: {e}")
        return 1

    payload = json.dumps([w.dict() for w in workers], indent=2)
    if args.output:
        with open(args.output, "w") as f:
            f.write(payload + "\n")
        logger.info(f"Wrote {len(workers)} descriptor(s) to {args.output}")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    sys.exit(main())
