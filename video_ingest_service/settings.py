from urllib.parse import quote

from pydantic import BaseModel, Field, validator

from utils import config


class WorkerSettings(BaseModel):
    """Pydantic-validated settings of one camera ingest worker."""

    # Camera
    camera_address: str = Field(..., min_length=1)
    camera_user: str = ""
    camera_password: str = ""
    camera_port: int = Field(default=554, ge=1, le=65535)
    camera_path: str = "/"
    camera_protocols: str = "tcp"

    # Stream store, passed through untouched
    controller: str = Field(..., min_length=1)
    scope: str = Field(..., min_length=1)
    stream_name: str = Field(..., min_length=1)
    credentials_path: str = ""
    allow_create_scope: bool = False

    # Segmenting
    segment_seconds: int = Field(default=10, ge=1)
    buffer_dir: str = Field(..., min_length=1)
    poll_interval_seconds: float = Field(default=2.0, gt=0)

    # Health endpoint
    health_check_port: int = Field(default=8080, ge=1, le=65535)

    @validator("camera_protocols")
    def validate_protocols(cls, v):
        v = v.lower()
        if v not in ("tcp", "udp", "udp_multicast", "http", "https"):
            raise ValueError(f"unsupported RTSP transport {v!r}")
        return v

    @validator("camera_path")
    def validate_path(cls, v):
        return v if v.startswith("/") else f"/{v}"

    @classmethod
    def from_config(cls) -> "WorkerSettings":
        return cls(
            camera_address=config.CAMERA_ADDRESS,
            camera_user=config.CAMERA_USER,
            camera_password=config.CAMERA_PASSWORD,
            camera_port=config.CAMERA_PORT,
            camera_path=config.CAMERA_PATH,
            camera_protocols=config.CAMERA_PROTOCOLS,
            controller=config.STREAM_STORE_CONTROLLER,
            scope=config.STREAM_STORE_SCOPE,
            stream_name=config.STREAM_NAME,
            credentials_path=config.STREAM_STORE_CREDENTIALS_PATH,
            allow_create_scope=config.ALLOW_CREATE_SCOPE,
            segment_seconds=config.SEGMENT_SECONDS,
            buffer_dir=config.LOCAL_BUFFER_DIR,
            poll_interval_seconds=config.POLL_INTERVAL_SECONDS,
            health_check_port=config.HEALTH_CHECK_PORT,
        )

    def rtsp_url(self) -> str:
        auth = ""
        if self.camera_user:
            auth = quote(self.camera_user, safe="")
            if self.camera_password:
                auth += ":" + quote(self.camera_password, safe="")
            auth += "@"
        return f"rtsp://{auth}{self.camera_address}:{self.camera_port}{self.camera_path}"

    def redacted_rtsp_url(self) -> str:
        return f"rtsp://{self.camera_address}:{self.camera_port}{self.camera_path}"
