import logging
import time
from typing import Callable, Optional

from transcode.errors import AssemblyTimeout
from transcode.job_schema import JobHandle

logger = logging.getLogger(__name__)


class JobStatusTracker:
    """
    Follows one assembly until it finishes or errors.

    With a notify URL the webhook is authoritative and polling is only a
    fallback; without one, ``wait_until_finished`` is how results arrive.
    The wait sleeps ``interval`` seconds, growing by ``backoff`` up to
    ``max_interval``, and gives up after ``timeout`` seconds (None waits
    forever).
    """

    def __init__(
        self,
        client,
        handle: JobHandle,
        interval: float = 1.0,
        backoff: float = 1.0,
        max_interval: float = 10.0,
        timeout: Optional[float] = 600.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.handle = handle
        self.interval = interval
        self.backoff = backoff
        self.max_interval = max_interval
        self.timeout = timeout
        self._sleep = sleep
        self._clock = clock

    @property
    def awaits_webhook(self) -> bool:
        return bool(self.handle.notify_url)

    @property
    def finished(self) -> bool:
        return self.handle.terminal

    def reload(self) -> JobHandle:
        self.handle = self.client.poll(self.handle)
        return self.handle

    def delays(self):
        delay = self.interval
        while True:
            yield delay
            delay = min(delay * self.backoff, self.max_interval)

    def wait_until_finished(self) -> JobHandle:
        started = self._clock()
        delays = self.delays()
        while not self.finished:
            waited = self._clock() - started
            if self.timeout is not None and waited >= self.timeout:
                raise AssemblyTimeout(self.handle.assembly_id, waited)
            delay = next(delays)
            if self.timeout is not None:
                delay = min(delay, self.timeout - waited)
            self._sleep(delay)
            self.reload()
            logger.debug("assembly %s is %s", self.handle.assembly_id, self.handle.ok)
        return self.handle
