import math
import time
from collections.abc import Callable
from datetime import timedelta

from envoy_influx.envoy_client import EnvoyClient
from envoy_influx.errors import EnvoyInfluxError
from envoy_influx.influx_writer import InfluxWriter
from envoy_influx.logging import get_logger

log = get_logger(__name__)


class Scheduler:
    """Drive poll-then-write cycles.

    With a zero `interval`, `run` does exactly one cycle and lets any error propagate. With a
    positive `interval`, `run` does one cycle immediately and then one cycle per tick, forever.
    Errors in repeating mode are logged and the loop carries on.

    Ticks are at a fixed rate (start + n * interval) on a monotonic clock. If a cycle overruns
    one or more ticks, the missed ticks are dropped and the next cycle starts at the next tick
    that is still in the future. Cycles never overlap.
    """

    def __init__(
        self,
        client: EnvoyClient,
        writer: InfluxWriter,
        interval: timedelta = timedelta(0),
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._writer = writer
        self._interval = interval.total_seconds()
        self._sleep = sleep
        self._clock = clock

    @property
    def is_one_shot(self) -> bool:
        return self._interval <= 0

    def run_cycle(self) -> None:
        production, consumption = self._client.poll()
        self._writer.write(production, consumption)

    def run(self) -> None:
        if self.is_one_shot:
            self.run_cycle()
            return

        log.info("Polling %s every %s seconds.", self._client.url, self._interval)
        start = self._clock()
        tick = 0
        while True:
            try:
                self.run_cycle()
            except EnvoyInfluxError:
                log.exception("Poll cycle failed. Will try again at the next tick.")
            now = self._clock()
            tick = self._next_tick(start, tick, now)
            delay = start + tick * self._interval - now
            if delay > 0:
                self._sleep(delay)

    def _next_tick(self, start: float, tick: int, now: float) -> int:
        elapsed_ticks = math.floor((now - start) / self._interval)
        if elapsed_ticks > tick:
            log.warning(
                "Poll cycle overran the interval of %s seconds; skipping %d tick(s).",
                self._interval,
                elapsed_ticks - tick,
            )
        return max(tick, elapsed_ticks) + 1
