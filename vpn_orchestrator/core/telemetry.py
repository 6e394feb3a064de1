"""
Connection telemetry: throughput sampling and the connection timer
"""

import threading
import time
from dataclasses import dataclass
from typing import Optional, Callable, Tuple
import logging

from .errors import BackendError
from .types import ConnectionState
from ..utils.formatting import format_duration

logger = logging.getLogger(__name__)

DEFAULT_SAMPLE_INTERVAL = 2.0
DEFAULT_TIMER_INTERVAL = 1.0


@dataclass(frozen=True)
class TelemetryBaseline:
    """Last observed cumulative counters"""
    bytes_received: int
    bytes_sent: int
    timestamp: float


@dataclass(frozen=True)
class ThroughputSample:
    """Derived rates for one telemetry tick"""
    download_rate: float
    upload_rate: float
    bytes_received: int
    bytes_sent: int
    timestamp: float

    @property
    def total_transferred(self) -> int:
        return self.bytes_received + self.bytes_sent


def derive_throughput(
    baseline: Optional[TelemetryBaseline],
    bytes_received: int,
    bytes_sent: int,
    now: float
) -> Tuple[Optional[ThroughputSample], TelemetryBaseline]:
    """
    Derive instantaneous throughput from cumulative counters

    Args:
        baseline: Previous observation, None on the first tick of a run
        bytes_received: Cumulative bytes received
        bytes_sent: Cumulative bytes sent
        now: Timestamp of this observation in seconds

    Returns:
        (sample, new baseline). The sample is None when no time has
        elapsed since the baseline, in which case the baseline is
        returned unchanged.
    """
    current = TelemetryBaseline(bytes_received, bytes_sent, now)

    # First tick: lifetime totals become the baseline
    if baseline is None:
        return ThroughputSample(0.0, 0.0, bytes_received, bytes_sent, now), current

    elapsed = now - baseline.timestamp
    if elapsed <= 0:
        return None, baseline

    # Counters can go backwards when the backend restarts
    down = max(0.0, (bytes_received - baseline.bytes_received) / elapsed)
    up = max(0.0, (bytes_sent - baseline.bytes_sent) / elapsed)

    return ThroughputSample(down, up, bytes_received, bytes_sent, now), current


class TelemetrySampler:
    """Polls backend counters while connected and publishes throughput"""

    def __init__(
        self,
        backend,
        state: ConnectionState,
        lock,
        interval: float = DEFAULT_SAMPLE_INTERVAL,
        clock: Callable[[], float] = time.time,
        on_sample: Optional[Callable[[ThroughputSample], None]] = None,
        on_lost: Optional[Callable[[], None]] = None
    ):
        self.backend = backend
        self.state = state
        self.interval = interval
        self.clock = clock
        self.on_sample = on_sample
        self.on_lost = on_lost

        self._lock = lock
        self._run_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._primed = False

    @property
    def running(self) -> bool:
        return self._run_event is not None and not self._run_event.is_set()

    def start(self):
        """Start a fresh sampling run"""
        with self._lock:
            # Retire any previous run; the baseline already in state is kept
            if self._run_event is not None:
                self._run_event.set()
            self._primed = False

            run_event = threading.Event()
            self._run_event = run_event
            self._thread = threading.Thread(
                target=self._run,
                args=(run_event,),
                daemon=True,
                name="VPN-Telemetry"
            )
            self._thread.start()
            logger.debug(f"Telemetry sampler started ({self.interval}s)")

    def stop(self):
        """Stop sampling and reset the baseline; safe to call repeatedly"""
        with self._lock:
            if self._run_event is not None:
                self._run_event.set()
                logger.debug("Telemetry sampler stopped")

            self._run_event = None
            self._thread = None
            self._primed = False
            self.state.reset_baseline()
            self.state.download_rate = 0.0
            self.state.upload_rate = 0.0

    def _run(self, run_event: threading.Event):
        while not run_event.wait(self.interval):
            try:
                self.sample(run_event=run_event)
            except Exception as e:
                logger.error(f"Telemetry tick failed: {e}", exc_info=True)

    def sample(self, now: Optional[float] = None,
               run_event: Optional[threading.Event] = None
               ) -> Optional[ThroughputSample]:
        """
        Take one sample

        Args:
            now: Observation time, defaults to the sampler clock
            run_event: Run the tick belongs to; ticks of a stopped run
                are discarded

        Returns:
            The derived sample, or None when nothing was published
        """
        with self._lock:
            if not self.running:
                return None
            if run_event is not None and run_event is not self._run_event:
                return None

            try:
                connected = self.backend.is_connected()
                stats = self.backend.get_vpn_stats() if connected else None
            except BackendError as e:
                logger.warning(f"Telemetry poll failed: {e}")
                return None

            if not connected or not stats.connected:
                logger.warning("Backend no longer reports an active connection")
                self.stop()
                if self.on_lost:
                    self.on_lost()
                return None

            if now is None:
                now = self.clock()

            baseline = None
            if self._primed and self.state.previous_sample_time is not None:
                baseline = TelemetryBaseline(
                    self.state.previous_bytes_received,
                    self.state.previous_bytes_sent,
                    self.state.previous_sample_time
                )

            sample, new_baseline = derive_throughput(
                baseline, stats.bytes_received, stats.bytes_sent, now
            )
            self._primed = True

            self.state.previous_bytes_received = new_baseline.bytes_received
            self.state.previous_bytes_sent = new_baseline.bytes_sent
            self.state.previous_sample_time = new_baseline.timestamp

            if sample is None:
                logger.debug("Clock did not advance, skipping throughput")
                return None

            self.state.download_rate = sample.download_rate
            self.state.upload_rate = sample.upload_rate
            self.state.total_transferred = sample.total_transferred

            if self.on_sample:
                self.on_sample(sample)

            return sample


class ConnectionTimer:
    """Ticks the connected duration independently of the byte counters"""

    def __init__(
        self,
        state: ConnectionState,
        interval: float = DEFAULT_TIMER_INTERVAL,
        clock: Callable[[], float] = time.time,
        on_tick: Optional[Callable[[int, str], None]] = None,
        lock=None
    ):
        self.state = state
        self.interval = interval
        self.clock = clock
        self.on_tick = on_tick
        self._lock = lock or threading.RLock()
        self._run_event: Optional[threading.Event] = None

    @property
    def running(self) -> bool:
        return self._run_event is not None and not self._run_event.is_set()

    def elapsed(self, now: Optional[float] = None) -> int:
        """Whole seconds since the connection started"""
        start = self.state.connection_start_time
        if start is None:
            return 0
        if now is None:
            now = self.clock()
        return max(0, int(now - start))

    def formatted(self, now: Optional[float] = None) -> str:
        return format_duration(self.elapsed(now))

    def start(self):
        with self._lock:
            if self.running:
                return

            run_event = threading.Event()
            self._run_event = run_event
            threading.Thread(
                target=self._run,
                args=(run_event,),
                daemon=True,
                name="VPN-Timer"
            ).start()

    def stop(self):
        """Stop ticking and publish a zero duration"""
        with self._lock:
            if self._run_event is not None:
                self._run_event.set()
            self._run_event = None

            if self.on_tick:
                self.on_tick(0, format_duration(0))

    def tick(self, run_event: Optional[threading.Event] = None) -> Optional[int]:
        """
        Publish the current duration

        Args:
            run_event: Run the tick belongs to; ticks of a stopped run
                publish nothing

        Returns:
            The published elapsed seconds, or None when discarded
        """
        with self._lock:
            if run_event is not None and run_event.is_set():
                return None

            elapsed = self.elapsed()
            if self.on_tick:
                self.on_tick(elapsed, format_duration(elapsed))
            return elapsed

    def _run(self, run_event: threading.Event):
        while not run_event.wait(self.interval):
            self.tick(run_event)
