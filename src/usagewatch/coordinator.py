import asyncio
import enum
import time
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence

import structlog

from usagewatch.aggregator import merge
from usagewatch.loader import Cursor, IncrementalLoader
from usagewatch.metrics import MetricsUpdater
from usagewatch.models import Aggregate, QuotaSnapshot
from usagewatch.quota.base import QuotaSource

logger = structlog.get_logger()

RECORD_LOG_SOURCE = "log"


class SourceStatus(str, enum.Enum):
    FRESH = "fresh"
    DUE = "due"
    UNAVAILABLE = "unavailable"


class SourceUnavailableError(Exception):
    """
    raised by a refresh that completed but produced no usable
    data. snapshots carries whatever the source returned (error
    snapshots, or None when it is not configured).
    """

    def __init__(
        self,
        message: "str",
        snapshots: "Sequence[QuotaSnapshot] | None" = None,
    ) -> "None":
        super().__init__(message)
        self.snapshots = snapshots


@dataclass(slots=True)
class SourceState:
    """
    SourceState is one row of the staleness table. A source is
    due once interval seconds have passed since its last attempt,
    successful or not.
    """

    interval: "float"
    last_attempt: "float | None" = None
    last_success: "float | None" = None
    # None until the first attempt
    status: "SourceStatus | None" = None

    def is_due(self, now: "float") -> "bool":
        return self.last_attempt is None or now - self.last_attempt >= self.interval


def has_data(snapshots: "Sequence[QuotaSnapshot] | None") -> "bool":
    return any(s.error is None for s in snapshots or [])


@dataclass
class WatchContext:
    """
    WatchContext owns all mutable state of one watch session.
    It is created once at startup and handed to every tick.
    """

    cursor: "Cursor" = field(default_factory=Cursor)
    aggregate: "Aggregate" = field(default_factory=dict)
    # source name -> latest snapshots, None when not configured
    snapshots: "dict[str, list[QuotaSnapshot] | None]" = field(default_factory=dict)
    states: "dict[str, SourceState]" = field(default_factory=dict)

    def stale_sources(self) -> "set[str]":
        """
        names of sources whose last refresh failed while an older
        snapshot is still being displayed.
        """
        return {
            name
            for name, state in self.states.items()
            if state.status is SourceStatus.UNAVAILABLE
            and has_data(self.snapshots.get(name))
        }


class RefreshEntry(Protocol):
    """
    RefreshEntry is one row the coordinator schedules: a name,
    a cadence, an optional timeout and the refresh action.
    refresh() returns whether the context changed and raises
    when the source could not be refreshed.
    """

    @property
    def name(self) -> "str": ...

    @property
    def interval(self) -> "float": ...

    @property
    def timeout(self) -> "float | None": ...

    async def refresh(self, context: "WatchContext") -> "bool": ...

    def mark_failed(self, context: "WatchContext", error: "Exception") -> "bool": ...


class RecordLogEntry:
    """
    refreshes the aggregate from the message log by loading the
    records newer than the context's cursor and merging them.
    """

    def __init__(
        self,
        loader: "IncrementalLoader",
        interval: "float" = 10,
        default_provider: "str" = "unknown",
        metrics: "MetricsUpdater | None" = None,
    ) -> "None":
        self._loader = loader
        self._interval = interval
        self._default_provider = default_provider
        self._metrics = metrics

    @property
    def name(self) -> "str":
        return RECORD_LOG_SOURCE

    @property
    def interval(self) -> "float":
        return self._interval

    @property
    def timeout(self) -> "float | None":
        return None

    async def close(self) -> "None":
        self._loader.close()

    async def refresh(self, context: "WatchContext") -> "bool":
        # file and database reads run off the event loop; the
        # context is only written back here, after they finish
        result = await asyncio.to_thread(self._loader.load, context.cursor)
        if result.error is not None:
            raise SourceUnavailableError(result.error)

        if result.records:
            context.aggregate = merge(
                context.aggregate, result.records, self._default_provider
            )
            if self._metrics is not None:
                self._metrics.inc_records_merged(len(result.records))
        context.cursor = result.cursor
        return bool(result.records)

    def mark_failed(self, context: "WatchContext", error: "Exception") -> "bool":
        # the aggregate and cursor keep their last good values
        return False


class QuotaEntry:
    """
    refreshes one quota source's snapshots. On failure the last
    snapshots with data stay on screen; without any, the failure
    itself is shown.
    """

    def __init__(
        self,
        source: "QuotaSource",
        interval: "float" = 60,
        timeout: "float | None" = None,
    ) -> "None":
        self._source = source
        self._interval = interval
        self._timeout = timeout

    @property
    def name(self) -> "str":
        return self._source.name

    @property
    def interval(self) -> "float":
        return self._interval

    @property
    def timeout(self) -> "float | None":
        return self._timeout

    async def close(self) -> "None":
        await self._source.close()

    async def refresh(self, context: "WatchContext") -> "bool":
        snapshots = await self._source.fetch()
        if not has_data(snapshots):
            errors = [s.error for s in snapshots or [] if s.error]
            raise SourceUnavailableError(
                errors[0] if errors else "not configured", snapshots
            )

        new_snapshots = list(snapshots or [])
        changed = context.snapshots.get(self.name) != new_snapshots
        context.snapshots[self.name] = new_snapshots
        return changed

    def mark_failed(self, context: "WatchContext", error: "Exception") -> "bool":
        previous = context.snapshots.get(self.name)
        if has_data(previous):
            return False

        if isinstance(error, SourceUnavailableError):
            replacement = list(error.snapshots) if error.snapshots else None
        else:
            replacement = [
                QuotaSnapshot(
                    source=self.name,
                    label=self._source.label,
                    error=_describe(error),
                )
            ]

        context.snapshots[self.name] = replacement
        return previous != replacement


def _describe(error: "Exception") -> "str":
    if isinstance(error, TimeoutError):
        return "Request timed out"
    return str(error) or error.__class__.__name__


class RefreshCoordinator:
    """
    RefreshCoordinator drives every source from a single loop.

    Each tick starts a refresh for every source whose interval
    has elapsed (at most one in flight per source) and folds in
    the results that finished. A tick reports that a repaint is
    needed only when a finished refresh changed the context, so
    ticks with nothing due never repaint.
    """

    def __init__(
        self,
        entries: "Sequence[RefreshEntry]",
        metrics: "MetricsUpdater",
        tick_seconds: "float" = 1.0,
        clock: "Callable[[], float]" = time.monotonic,
    ) -> "None":
        self._entries = list(entries)
        self._metrics = metrics
        self._tick_seconds = tick_seconds
        self._clock = clock
        self._in_flight: "dict[str, asyncio.Task[bool]]" = {}
        self._stop_event: "asyncio.Event" = asyncio.Event()

    def new_context(self) -> "WatchContext":
        """
        creates the session context with one staleness row per
        source. Quota sources start out not configured.
        """
        context = WatchContext()
        for entry in self._entries:
            context.states[entry.name] = SourceState(interval=entry.interval)
            if entry.name != RECORD_LOG_SOURCE:
                context.snapshots[entry.name] = None
        return context

    def stop(self) -> "None":
        """
        signals the loop to stop after the current tick.
        """
        self._stop_event.set()

    async def close(self) -> "None":
        """
        cancels refreshes still in flight and closes the sources.
        """
        for task in self._in_flight.values():
            task.cancel()
        if self._in_flight:
            await asyncio.gather(*self._in_flight.values(), return_exceptions=True)
        self._in_flight.clear()

        for entry in self._entries:
            close = getattr(entry, "close", None)
            if close is not None:
                await close()

    async def run(
        self,
        context: "WatchContext",
        on_repaint: "Callable[[WatchContext], None]",
    ) -> "None":
        """
        runs the refresh loop until stop() is called, repainting
        after every tick that changed the context.
        """
        while not self._stop_event.is_set():
            if await self.tick(context):
                on_repaint(context)

            try:
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self._tick_seconds
                )
            except TimeoutError:
                pass

    async def tick(
        self,
        context: "WatchContext",
        now: "float | None" = None,
    ) -> "bool":
        now = self._clock() if now is None else now

        for entry in self._entries:
            if entry.name in self._in_flight:
                continue
            state = context.states.setdefault(
                entry.name, SourceState(interval=entry.interval)
            )
            if state.is_due(now):
                previous_status = state.status
                state.status = SourceStatus.DUE
                self._in_flight[entry.name] = asyncio.create_task(
                    self._refresh_entry(entry, context, state, now, previous_status)
                )

        if not self._in_flight:
            return False

        # a slow source keeps running into later ticks instead
        # of holding back the others
        done, _ = await asyncio.wait(
            self._in_flight.values(), timeout=self._tick_seconds
        )

        changed = False
        for name, task in list(self._in_flight.items()):
            if task in done:
                del self._in_flight[name]
                changed = task.result() or changed

        if changed:
            self._metrics.inc_repaint()
        return changed

    async def _refresh_entry(
        self,
        entry: "RefreshEntry",
        context: "WatchContext",
        state: "SourceState",
        now: "float",
        previous_status: "SourceStatus | None",
    ) -> "bool":
        state.last_attempt = now
        started = time.monotonic()

        try:
            if entry.timeout is None:
                changed = await entry.refresh(context)
            else:
                changed = await asyncio.wait_for(
                    entry.refresh(context), timeout=entry.timeout
                )
        except (SourceUnavailableError, TimeoutError) as e:
            logger.warning("refresh_failed", source=entry.name, error=_describe(e))
            changed = self._fail(entry, context, state, e)
        except Exception as e:
            logger.exception("refresh_error", source=entry.name)
            changed = self._fail(entry, context, state, e)
        else:
            state.status = SourceStatus.FRESH
            state.last_success = now
            self._metrics.set_last_refresh_success(entry.name, time.time())
            logger.debug("refresh_done", source=entry.name, changed=changed)
        finally:
            self._metrics.observe_refresh_duration(
                entry.name, time.monotonic() - started
            )

        return changed or state.status != previous_status

    def _fail(
        self,
        entry: "RefreshEntry",
        context: "WatchContext",
        state: "SourceState",
        error: "Exception",
    ) -> "bool":
        state.status = SourceStatus.UNAVAILABLE
        self._metrics.inc_refresh_error(entry.name)
        return entry.mark_failed(context, error)
