"""
Batch connectivity prober.

Reachability is a plain TCP connect to the host's address and port; nothing
is sent over the socket. A batch shares one deadline so the whole run is
bounded by the timeout no matter how many hosts are probed, while an
``asyncio.Semaphore`` caps how many connections are in flight at once.
"""

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, Iterable, List, Optional, Set, Tuple

from .errors import ProbeTimeout
from .models import HostRecord, ProbeResult, ProbeState

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_CONCURRENCY = 16
DEADLINE_CAUSE = "batch deadline exceeded"


def _option_timeout(record: HostRecord) -> Optional[float]:
    """Return a numeric ``ConnectTimeout`` from the record's options."""
    value = record.get_option('ConnectTimeout')
    if isinstance(value, list):
        value = value[0] if value else None
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError:
        return None
    return seconds if seconds > 0 else None


def _unreachable(alias: str, cause: str, timed_out: bool = False) -> ProbeResult:
    return ProbeResult(alias=alias, state=ProbeState.UNREACHABLE, cause=cause, timed_out=timed_out)


async def _acquire_within(semaphore: asyncio.Semaphore, timeout: float) -> bool:
    """Wait up to *timeout* seconds for a permit.

    Returns False on timeout. No permit is left held when the wait times out
    or the caller is cancelled.
    """
    acquire = asyncio.ensure_future(semaphore.acquire())
    try:
        await asyncio.wait({acquire}, timeout=timeout)
    except BaseException:
        if acquire.done() and not acquire.cancelled():
            semaphore.release()
        else:
            acquire.cancel()
        raise
    if acquire.done():
        return True
    acquire.cancel()
    await asyncio.wait({acquire})
    if not acquire.cancelled():
        semaphore.release()
    return False


def run_sync(coro):
    """Run *coro* to completion on a private event loop.

    The loop is closed without joining the default executor, so a resolver
    thread stuck in ``getaddrinfo`` does not hold the caller past its timeout.
    """
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
        finally:
            loop.close()


class ConnectivityProber:
    """Checks whether hosts accept TCP connections on their SSH port."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        concurrency_limit: int = DEFAULT_CONCURRENCY,
        clock: Callable[[], float] = time.monotonic,
    ):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if concurrency_limit < 1:
            raise ValueError("concurrency_limit must be at least 1")
        self.timeout = float(timeout)
        self.concurrency_limit = int(concurrency_limit)
        self._clock = clock
        # Strong references to probe tasks whose consumer went away
        self._pending: Set[asyncio.Task] = set()

    def host_timeout(self, record: HostRecord, timeout: Optional[float] = None) -> float:
        """Return the per-host wait, honouring a shorter ``ConnectTimeout``."""
        limit = self.timeout if timeout is None else float(timeout)
        option = _option_timeout(record)
        if option is not None and option < limit:
            return option
        return limit

    async def probe_one(self, record: HostRecord, timeout: Optional[float] = None) -> ProbeResult:
        """Open and close one TCP connection to the record's address and port."""
        wait = self.host_timeout(record, timeout)
        address = record.address
        port = record.effective_port()
        start = self._clock()
        try:
            _reader, writer = await asyncio.wait_for(
                asyncio.open_connection(address, port),
                timeout=wait,
            )
        except asyncio.TimeoutError:
            logger.debug("Probe of %s (%s:%s) timed out after %.1fs", record.alias, address, port, wait)
            return _unreachable(record.alias, f"timed out after {wait:g}s", timed_out=True)
        except OSError as exc:
            cause = exc.strerror or str(exc) or exc.__class__.__name__
            logger.debug("Probe of %s (%s:%s) failed: %s", record.alias, address, port, cause)
            return _unreachable(record.alias, cause)
        latency = self._clock() - start

        writer.close()
        try:
            await writer.wait_closed()
        except OSError as exc:
            logger.debug("Error closing probe socket for %s: %s", record.alias, exc)

        logger.debug("Probe of %s reachable in %.3fs", record.alias, latency)
        return ProbeResult(alias=record.alias, state=ProbeState.REACHABLE, latency=latency)

    async def probe_many(
        self,
        records: Iterable[HostRecord],
        timeout: Optional[float] = None,
        concurrency_limit: Optional[int] = None,
    ) -> AsyncIterator[ProbeResult]:
        """Yield one :class:`ProbeResult` per record, in completion order.

        All probes share a deadline ``timeout`` seconds from the call. Probes
        still waiting for a slot when it passes report UNREACHABLE. If the
        caller stops iterating early, running probes are left to finish on
        their own and their results are dropped.
        """
        budget = self.timeout if timeout is None else float(timeout)
        limit = self.concurrency_limit if concurrency_limit is None else int(concurrency_limit)
        if budget <= 0:
            raise ValueError("timeout must be positive")
        if limit < 1:
            raise ValueError("concurrency_limit must be at least 1")

        records = list(records)
        if not records:
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget
        semaphore = asyncio.Semaphore(limit)
        results: asyncio.Queue = asyncio.Queue()

        async def run(record: HostRecord) -> None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                results.put_nowait(_unreachable(record.alias, DEADLINE_CAUSE, timed_out=True))
                return
            if not await _acquire_within(semaphore, remaining):
                results.put_nowait(_unreachable(record.alias, DEADLINE_CAUSE, timed_out=True))
                return
            try:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    result = _unreachable(record.alias, DEADLINE_CAUSE, timed_out=True)
                else:
                    result = await self.probe_one(record, min(remaining, self.host_timeout(record, budget)))
            except Exception as exc:
                logger.warning("Unexpected error probing %s: %s", record.alias, exc)
                result = _unreachable(record.alias, str(exc) or exc.__class__.__name__)
            finally:
                semaphore.release()
            results.put_nowait(result)

        for record in records:
            task = loop.create_task(run(record))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

        logger.debug("Probing %d host(s) with limit %d and %.1fs budget", len(records), limit, budget)
        for _ in range(len(records)):
            yield await results.get()

    def probe_many_sync(
        self,
        records: Iterable[HostRecord],
        timeout: Optional[float] = None,
        concurrency_limit: Optional[int] = None,
        on_result: Optional[Callable[[ProbeResult], None]] = None,
    ) -> List[ProbeResult]:
        """Run :meth:`probe_many` to completion and return results in completion order."""

        async def collect() -> List[ProbeResult]:
            collected = []
            async for result in self.probe_many(records, timeout, concurrency_limit):
                if on_result is not None:
                    on_result(result)
                collected.append(result)
            return collected

        return run_sync(collect())

    async def measure_latency(
        self,
        record: HostRecord,
        count: int = 4,
        timeout: Optional[float] = None,
        interval: float = 0.1,
    ) -> Tuple[float, List[Optional[float]]]:
        """Probe *record* ``count`` times; return the average latency and every sample.

        Failed samples are recorded as None. Raises :class:`ProbeTimeout` when
        no sample succeeds.
        """
        if count < 1:
            raise ValueError("count must be at least 1")
        samples: List[Optional[float]] = []
        last_cause = None
        for index in range(count):
            if index and interval > 0:
                await asyncio.sleep(interval)
            result = await self.probe_one(record, timeout)
            if result.reachable:
                samples.append(result.latency)
            else:
                samples.append(None)
                last_cause = result.cause
        successes = [sample for sample in samples if sample is not None]
        if not successes:
            raise ProbeTimeout(f"{record.alias} did not answer ({last_cause or 'no response'})")
        return sum(successes) / len(successes), samples


__all__ = ['ConnectivityProber', 'DEFAULT_TIMEOUT', 'DEFAULT_CONCURRENCY', 'DEADLINE_CAUSE', 'run_sync']
