import json
import os
from urllib.parse import urlparse

from minio import Minio
from minio.error import S3Error

from utils.logger import get_logger

logger = get_logger(__name__)

SECURE_SCHEMES = ("https", "tls")


class StreamStoreError(RuntimeError):
    pass


def parse_controller(controller: str):
    """
    Split a controller URI into (endpoint, secure).

    Accepts tcp://host:port, http(s)://host:port, tls://host:port or host:port.
    """
    if "://" not in controller:
        return controller, False
    parsed = urlparse(controller)
    if not parsed.netloc:
        raise StreamStoreError(f"Invalid stream store controller: {controller!r}")
    return parsed.netloc, parsed.scheme.lower() in SECURE_SCHEMES


def load_credentials(credentials_path):
    if not credentials_path or not os.path.exists(credentials_path):
        logger.warning(
            f"No stream store credentials at {credentials_path}, using anonymous access"
        )
        return None, None
    try:
        with open(credentials_path, "r") as f:
            creds = json.load(f)
        return creds["access_key"], creds["secret_key"]
    except (OSError, ValueError, KeyError) as e:
        raise StreamStoreError(
            f"Unreadable stream store credentials {credentials_path}: {e}"
        )


class StreamStoreClient:
    """
    Durable stream store on MinIO: the scope is a bucket, each stream is an
    object prefix inside it.
    """

    def __init__(self, controller, scope, credentials_path=None,
                 allow_create_scope=False, client=None):
        self.controller = controller
        self.scope = scope
        self.allow_create_scope = allow_create_scope

        if client is None:
            endpoint, secure = parse_controller(controller)
            access_key, secret_key = load_credentials(credentials_path)
            client = Minio(
                endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure
            )
        self.client = client

    def ensure_scope(self):
        try:
            if self.client.bucket_exists(self.scope):
                logger.debug(f"Scope already exists: {self.scope}")
                return
            if not self.allow_create_scope:
                raise StreamStoreError(
                    f"Scope {self.scope} does not exist and ALLOW_CREATE_SCOPE is false"
                )
            self.client.make_bucket(self.scope)
            logger.info(f"Created scope: {self.scope}")
        except S3Error as e:
            logger.error(f"Error ensuring scope {self.scope}: {e}")
            raise StreamStoreError(str(e)) from e

    def append(self, stream, object_name, file_path):
        key = f"{stream}/{object_name}"
        try:
            self.client.fput_object(self.scope, key, file_path)
            logger.info(f"Appended {file_path} to {self.scope}/{key}")
        except Exception as e:
            logger.error(f"Error appending {file_path} to {self.scope}/{key}: {e}")
            raise
        return key
