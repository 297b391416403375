# ingest_camera_stream.py
import datetime
import os
import re
import signal
import subprocess
import sys
import threading
from typing import List, Optional

from health.server import HealthCheckServer
from health.supervisor import InvalidConfiguration, LivenessSupervisor
from utils import config
from utils.logger import get_logger
from video_ingest_service.settings import WorkerSettings
from video_ingest_service.stream_store import StreamStoreClient, StreamStoreError

logger = get_logger(__name__)

TS_NAME_RE = re.compile(r"^\d{8}_\d{6}\.ts$")

EXIT_CONFIG_ERROR = 2


def parse_out_time(line: str) -> Optional[int]:
    """
    Return the microsecond position from an ffmpeg ``-progress`` line.

    Only ``out_time_us`` lines carry it; early blocks report ``N/A``.
    """
    key, sep, value = line.strip().partition("=")
    if not sep or key != "out_time_us":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def exit_status(retcode: int) -> int:
    """Map an ffmpeg return code to a process exit status; signals become 128 + signum."""
    if retcode < 0:
        return 128 - retcode
    return retcode


class CameraIngestWorker:
    """
    Handles ingestion for ONE camera into ONE stream
    """

    def __init__(
        self,
        settings: WorkerSettings,
        store: StreamStoreClient,
        supervisor: LivenessSupervisor,
        popen=subprocess.Popen,
    ):
        self.settings = settings
        self.stream = settings.stream_name
        self.store = store
        self.supervisor = supervisor
        self._popen = popen

        # Per-stream buffer directory
        self.buffer_dir = os.path.join(settings.buffer_dir, self.stream)
        os.makedirs(self.buffer_dir, exist_ok=True)

        self.process = None
        self.last_out_time_us = -1
        self.uploaded_segments = 0
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    def build_ffmpeg_cmd(self) -> List[str]:
        output_pattern = os.path.join(self.buffer_dir, "%Y%m%d_%H%M%S.ts")

        return [
            "ffmpeg",
            "-hide_banner",
            "-loglevel", "error",
            "-nostats",
            "-progress", "pipe:1",
            "-rtsp_transport", self.settings.camera_protocols,
            "-i", self.settings.rtsp_url(),
            "-map", "0",
            "-c", "copy",
            "-f", "segment",
            "-segment_time", str(self.settings.segment_seconds),
            "-segment_format", "mpegts",
            "-segment_format_options", "mpegts_flags=+resend_headers",
            "-segment_atclocktime", "1",
            "-reset_timestamps", "1",
            "-strftime", "1",
            output_pattern,
        ]

    def start_ffmpeg(self):
        logger.info(
            f"[{self.stream}] Starting FFmpeg ingest from {self.settings.redacted_rtsp_url()}"
        )
        self.process = self._popen(
            self.build_ffmpeg_cmd(),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
        self._threads = [
            threading.Thread(
                target=self.watch_progress,
                args=(self.process.stdout,),
                name=f"{self.stream}-progress",
                daemon=True,
            ),
            threading.Thread(
                target=self.drain_stderr,
                args=(self.process.stderr,),
                name=f"{self.stream}-stderr",
                daemon=True,
            ),
        ]
        for t in self._threads:
            t.start()

    def watch_progress(self, lines):
        """
        Feed the supervisor from ffmpeg's progress output.

        Activity is recorded only when the output position moves forward,
        so a connected but frozen camera still counts as idle.
        """
        for line in lines:
            out_time = parse_out_time(line)
            if out_time is None or out_time <= self.last_out_time_us:
                continue
            self.last_out_time_us = out_time
            self.supervisor.record_activity()

    def drain_stderr(self, lines):
        for line in lines:
            line = line.strip()
            if line:
                logger.warning(f"[{self.stream}] ffmpeg: {line}")

    def completed_segments(self, include_newest: bool = False) -> List[str]:
        files = sorted(f for f in os.listdir(self.buffer_dir) if TS_NAME_RE.match(f))
        # ffmpeg is still writing the newest segment
        if not include_newest and files:
            files = files[:-1]
        return files

    @staticmethod
    def object_name_for(file: str) -> str:
        segment_time = datetime.datetime.strptime(
            file.replace(".ts", ""), "%Y%m%d_%H%M%S"
        )
        return f"{segment_time.strftime('%Y/%m/%d/%H')}/{file}"

    def upload_segments(self, include_newest: bool = False) -> int:
        """
        Upload completed TS segments to the stream store
        """
        uploaded = 0
        for file in self.completed_segments(include_newest):
            file_path = os.path.join(self.buffer_dir, file)
            try:
                self.store.append(self.stream, self.object_name_for(file), file_path)
                os.remove(file_path)
                uploaded += 1
            except Exception:
                logger.error(
                    f"[{self.stream}] Upload failed for {file}, retrying next cycle",
                    exc_info=True
                )
        self.uploaded_segments += uploaded
        return uploaded

    def stop(self):
        self._stop_event.set()

    def run(self) -> int:
        if self.process is None:
            self.start_ffmpeg()

        retcode = None
        while not self._stop_event.is_set():
            self.upload_segments()
            retcode = self.process.poll()
            if retcode is not None:
                logger.error(f"[{self.stream}] FFmpeg exited with code {retcode}")
                break
            self._stop_event.wait(self.settings.poll_interval_seconds)

        if retcode is None:
            logger.info(f"[{self.stream}] Stopping FFmpeg")
            self.process.terminate()
            try:
                self.process.wait(timeout=10)
            except subprocess.TimeoutExpired:
                logger.warning(f"[{self.stream}] FFmpeg did not stop, killing it")
                self.process.kill()
                self.process.wait()
            retcode = 0

        for t in self._threads:
            t.join(timeout=5)

        # Flush whatever ffmpeg managed to write
        self.upload_segments(include_newest=True)
        logger.info(
            f"[{self.stream}] Ingest finished, {self.uploaded_segments} segment(s) uploaded"
        )
        return retcode


def main():
    logger.info("Starting camera ingest worker")

    try:
        supervisor = LivenessSupervisor.from_env()
        settings = WorkerSettings.from_config()
        store = StreamStoreClient(
            settings.controller,
            settings.scope,
            credentials_path=settings.credentials_path,
            allow_create_scope=settings.allow_create_scope,
        )
        store.ensure_scope()
    except (InvalidConfiguration, StreamStoreError, ValueError) as e:
        logger.error(f"Refusing to start: {e}")
        return EXIT_CONFIG_ERROR

    logger.info(f"Stream {settings.scope}/{settings.stream_name}, watchdog: {supervisor!r}")

    health_server = None
    if supervisor.enabled:
        health_server = HealthCheckServer(
            supervisor,
            host=config.HEALTH_CHECK_HOST,
            port=settings.health_check_port,
            path=config.HEALTH_CHECK_PATH,
        )
        health_server.start()

    worker = CameraIngestWorker(settings, store, supervisor)

    def shutdown(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        worker.stop()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    try:
        return exit_status(worker.run())
    finally:
        if health_server:
            health_server.stop()


if __name__ == "__main__":
    sys.exit(main())
