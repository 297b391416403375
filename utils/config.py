import os
import socket


def env_flag(name: str, default: bool = False, environ=None) -> bool:
    env = os.environ if environ is None else environ
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def env_float(name: str, default: float, environ=None) -> float:
    env = os.environ if environ is None else environ
    value = env.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


# Numeric and boolean values stay raw strings; WorkerSettings validates them.

# Camera / RTSP
CAMERA_ADDRESS = os.environ.get("CAMERA_ADDRESS", "127.0.0.1")
CAMERA_USER = os.environ.get("CAMERA_USER", "")
CAMERA_PASSWORD = os.environ.get("CAMERA_PASSWORD", "")
CAMERA_PORT = os.environ.get("CAMERA_PORT", "554")
CAMERA_PATH = os.environ.get("CAMERA_PATH", "/cam/realmonitor")
CAMERA_PROTOCOLS = os.environ.get("CAMERA_PROTOCOLS", "tcp")

# Stream store (MinIO)
STREAM_STORE_CONTROLLER = os.environ.get("STREAM_STORE_CONTROLLER", "tcp://127.0.0.1:9000")
STREAM_STORE_SCOPE = os.environ.get("STREAM_STORE_SCOPE", "examples")
STREAM_NAME = os.environ.get("STREAM_NAME", "camera1")
STREAM_STORE_CREDENTIALS_PATH = os.environ.get(
    "STREAM_STORE_CREDENTIALS_PATH", "/etc/stream-store/credentials.json"
)
ALLOW_CREATE_SCOPE = os.environ.get("ALLOW_CREATE_SCOPE", "false")

# Segmenting (seconds per uploaded mpegts chunk)
SEGMENT_SECONDS = os.environ.get("SEGMENT_SECONDS", "10")

# Temporary local storage for ingest
LOCAL_BUFFER_DIR = os.environ.get("LOCAL_BUFFER_DIR", "/tmp/camera_ingest")

# Upload loop
POLL_INTERVAL_SECONDS = os.environ.get("POLL_INTERVAL_SECONDS", "2.0")

# Liveness watchdog (HEALTH_CHECK_ENABLED and HEALTH_CHECK_IDLE_SECONDS are read
# by LivenessSupervisor.from_env)
HEALTH_CHECK_HOST = os.environ.get("HEALTH_CHECK_HOST", "0.0.0.0")
HEALTH_CHECK_PORT = os.environ.get("HEALTH_CHECK_PORT", "8080")
HEALTH_CHECK_PATH = os.environ.get("HEALTH_CHECK_PATH", "/ishealthy")

# Logging
LOG_DIR = os.environ.get("LOG_DIR", "logs")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
HOSTNAME = os.environ.get("HOSTNAME") or socket.gethostname()
