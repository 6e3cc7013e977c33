"""
Metrics for autochat voice turns.

TurnMetrics names the events the turn controller reports and forwards them to
statsd over UDP (localhost:8125 by default). Without a statsd client every
call is a no-op, and a failed send never reaches the controller.
"""

import logging
import os
import socket
import threading
from dataclasses import dataclass
from typing import Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class MetricsConfig:
    """Where to send metrics."""

    host: str = "localhost"
    port: int = 8125
    prefix: str = "autochat.voice"
    enabled: bool = True

    @classmethod
    def from_env(cls) -> "MetricsConfig":
        """Create config from STATSD_* environment variables."""
        return cls(
            host=os.environ.get("STATSD_HOST", cls.host),
            port=int(os.environ.get("STATSD_PORT", cls.port)),
            prefix=os.environ.get("STATSD_PREFIX", cls.prefix),
            enabled=os.environ.get("STATSD_ENABLED", "true").lower() == "true",
        )


class StatsdClient:
    """Writes statsd lines to a non-blocking UDP socket."""

    def __init__(self, config: MetricsConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._closed = False
        self._lock = threading.Lock()

    def qualify(self, name: str) -> str:
        return f"{self.config.prefix}.{name}" if self.config.prefix else name

    def send(self, name: str, value: Union[int, float], metric_type: str) -> None:
        line = f"{self.qualify(name)}:{value}|{metric_type}".encode("utf-8")
        try:
            with self._lock:
                if self._closed:
                    return
                if self._socket is None:
                    self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
                    self._socket.setblocking(False)
                self._socket.sendto(line, (self.config.host, self.config.port))
        except OSError as e:
            logger.debug(f"Dropped metric {name}: {e}")

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        with self._lock:
            self._closed = True
            if self._socket is not None:
                self._socket.close()
                self._socket = None


class TurnMetrics:
    """Counters and timings for capture sessions and assistant turns."""

    def __init__(self, client: Optional[StatsdClient] = None):
        self.client = client

    @classmethod
    def from_env(cls) -> "TurnMetrics":
        config = MetricsConfig.from_env()
        if not config.enabled:
            logger.info("Metrics disabled")
            return cls()
        logger.info(
            f"Metrics enabled: {config.host}:{config.port} (prefix: {config.prefix})"
        )
        return cls(StatsdClient(config))

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _count(self, name: str) -> None:
        if self.client is not None:
            self.client.send(name, 1, "c")

    def _time(self, name: str, seconds: float) -> None:
        if self.client is not None:
            self.client.send(name, round(seconds * 1000, 1), "ms")

    # Capture

    def capture_started(self) -> None:
        self._count("capture.start")

    def capture_unavailable(self) -> None:
        self._count("capture.unavailable")

    def capture_error(self, code: str) -> None:
        self._count(f"capture.error.{code}")

    def restart_scheduled(self, delay: float) -> None:
        self._count("capture.restart_scheduled")
        self._time("capture.restart_delay", delay)

    # Turns

    def turn_dispatched(self) -> None:
        self._count("turn.dispatch")

    def turn_failed(self) -> None:
        self._count("turn.failure")

    def turn_dropped(self) -> None:
        self._count("turn.dropped")

    def turn_finished(self, seconds: float) -> None:
        self._time("turn.duration", seconds)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
