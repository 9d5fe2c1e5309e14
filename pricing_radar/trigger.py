"""
Scheduling for the Pricing Radar worker.

DailyTrigger calls a job once a day at a fixed UTC time. The health server
answers liveness probes so a hosting platform keeps the process running; it
has no part in change detection.
"""

import json
import threading
import time
from datetime import datetime, timedelta
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Callable, Optional

from pricing_radar.utils import get_logger, utcnow


# Module logger
logger = get_logger("trigger")


class DailyTrigger:
    """
    Runs a job every day at hour:minute UTC.

    Args:
        job: Callable that runs one full check cycle.
        hour: UTC hour of the daily run.
        minute: Minute of the daily run.
        run_on_start: Run the job once immediately before waiting.
        sleep: Sleep function (injectable for tests).
        clock: Returns the current aware UTC datetime.
    """

    def __init__(
        self,
        job: Callable[[], object],
        hour: int = 2,
        minute: int = 0,
        run_on_start: bool = False,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utcnow
    ):
        if not 0 <= hour <= 23:
            raise ValueError(f"hour must be 0-23, got {hour}")
        if not 0 <= minute <= 59:
            raise ValueError(f"minute must be 0-59, got {minute}")

        self.job = job
        self.hour = hour
        self.minute = minute
        self.run_on_start = run_on_start
        self.sleep = sleep
        self.clock = clock

    def next_run_at(self, now: datetime) -> datetime:
        """Next scheduled run strictly after now."""
        candidate = now.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def seconds_until_next_run(self, now: datetime) -> float:
        return (self.next_run_at(now) - now).total_seconds()

    def _run_job(self) -> None:
        try:
            self.job()
        except Exception as e:
            logger.exception(f"Scheduled run failed: {e}")

    def run_forever(self, max_runs: Optional[int] = None) -> None:
        """
        Block and run the job on schedule.

        Args:
            max_runs: Stop after this many scheduled runs (None = never).
        """
        logger.info(f"Scheduled to run daily at {self.hour:02d}:{self.minute:02d} UTC")

        if self.run_on_start:
            logger.info("Running immediately on start")
            self._run_job()

        runs = 0
        while max_runs is None or runs < max_runs:
            now = self.clock()
            wait = self.seconds_until_next_run(now)
            logger.info(f"Next run at {self.next_run_at(now).isoformat()} (in {wait / 3600:.1f}h)")
            self.sleep(wait)

            self._run_job()
            runs += 1


class HealthHandler(BaseHTTPRequestHandler):
    """Answers GET/HEAD on /health and /."""

    def _respond(self, include_body: bool) -> None:
        if self.path == "/health":
            body = json.dumps({"status": "ok", "timestamp": utcnow().isoformat()}).encode("utf-8")
            content_type = "application/json"
        elif self.path == "/":
            body = b"Pricing Radar worker is running."
            content_type = "text/plain"
        else:
            self.send_response(404)
            self.send_header("Content-Length", "0")
            self.end_headers()
            return

        self.send_response(200)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if include_body:
            self.wfile.write(body)

    def do_GET(self) -> None:
        self._respond(include_body=True)

    def do_HEAD(self) -> None:
        self._respond(include_body=False)

    def log_message(self, format: str, *args) -> None:
        logger.debug("health: " + format % args)


def start_health_server(port: int, host: str = "0.0.0.0") -> ThreadingHTTPServer:
    """
    Serve liveness probes on a daemon thread.

    Returns:
        The running server; call shutdown() to stop it.
    """
    server = ThreadingHTTPServer((host, port), HealthHandler)
    thread = threading.Thread(target=server.serve_forever, name="health-server", daemon=True)
    thread.start()

    logger.info(f"Health check server listening on port {server.server_address[1]}")
    return server
