"""Append-only activity log.

Events are persisted as JSON lines, one event per line, and never rewritten.
The log keeps in-memory indexes keyed by actor and by subject, each
kept sorted by timestamp, so per-actor and per-subject queries do not scan the
whole log. Lines appended by other processes are picked up before each
read.

Recording is best-effort: :meth:`ActivityAuditLog.record_event` never raises.
A failed write is logged and the triggering workflow mutation stands.
"""

from __future__ import annotations

import bisect
import json
import logging
import threading
import uuid
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from production_workflow.workflow.errors import AuditWriteFailure
from production_workflow.workflow.models import Actor, as_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_QUERY_LIMIT = 100


class ActivityEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    actor: Actor
    subject_type: str
    subject_id: str
    action: str
    timestamp: datetime = Field(default_factory=utc_now)
    duration_ms: int | None = None
    previous_values: dict[str, Any] = Field(default_factory=dict)
    new_values: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)


class ActivityFilter(BaseModel):
    actor_id: str | None = None
    subject_id: str | None = None
    action: str | None = None
    start: datetime | None = None
    end: datetime | None = None

    @field_validator("start", "end")
    @classmethod
    def _utc_bounds(cls, value: datetime | None) -> datetime | None:
        return None if value is None else as_utc(value)

    def matches(self, event: ActivityEvent) -> bool:
        if self.actor_id is not None and event.actor.id != self.actor_id:
            return False
        if self.subject_id is not None and event.subject_id != self.subject_id:
            return False
        if self.action is not None and event.action != self.action:
            return False
        if self.start is not None and event.timestamp < self.start:
            return False
        if self.end is not None and event.timestamp > self.end:
            return False
        return True


class ActionSummary(BaseModel):
    action: str
    count: int
    total_duration_ms: int
    unique_actor_count: int
    last_activity: datetime


class ActivitySummary(BaseModel):
    total_events: int
    total_duration_ms: int
    unique_actor_count: int
    first_activity: datetime | None = None
    last_activity: datetime | None = None
    actions: list[ActionSummary] = Field(default_factory=list)


class _TimestampIndex:
    """Events for one key, kept in ascending timestamp order."""

    def __init__(self) -> None:
        self._keys: list[datetime] = []
        self._events: list[ActivityEvent] = []

    def insert(self, event: ActivityEvent) -> None:
        pos = bisect.bisect_right(self._keys, event.timestamp)
        self._keys.insert(pos, event.timestamp)
        self._events.insert(pos, event)

    def between(self, start: datetime | None, end: datetime | None) -> list[ActivityEvent]:
        lo = 0 if start is None else bisect.bisect_left(self._keys, start)
        hi = len(self._keys) if end is None else bisect.bisect_right(self._keys, end)
        return self._events[lo:hi]


class ActivityStore(Protocol):
    def append(self, event: ActivityEvent) -> None: ...

    def read_new(self) -> list[ActivityEvent]:
        """Events persisted since the previous call; everything on the first."""
        ...


class JsonlActivityStore:
    """Durable append-only sink for activity events.

    Other processes (the CLI next to a running server) may append to the same
    file, so reads are incremental: :meth:`read_new` remembers the byte offset
    of the last complete line it consumed.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._offset = 0
        self._line_number = 0

    @property
    def path(self) -> Path:
        return self._path

    def append(self, event: ActivityEvent) -> None:
        try:
            line = event.model_dump_json().encode("utf-8") + b"\n"
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a+b") as f:
                # Terminate a line torn by an earlier crash so this event stays readable.
                if f.seek(0, 2) > 0:
                    f.seek(-1, 2)
                    if f.read(1) != b"\n":
                        line = b"\n" + line
                f.write(line)
        except (OSError, TypeError, ValueError) as e:
            raise AuditWriteFailure(f"Could not append activity event {event.id}: {e}") from e

    def read_new(self) -> list[ActivityEvent]:
        if not self._path.exists():
            return []
        if self._path.stat().st_size < self._offset:
            logger.warning(
                "Activity log shrank; re-reading from the start",
                extra={"path": str(self._path)},
            )
            self._offset = 0
            self._line_number = 0

        with self._path.open("rb") as f:
            f.seek(self._offset)
            data = f.read()

        # A trailing line without a newline may still be mid-write; leave it for later.
        complete = data.rfind(b"\n") + 1
        if complete == 0:
            return []
        self._offset += complete

        events: list[ActivityEvent] = []
        for raw in data[:complete].splitlines():
            self._line_number += 1
            if not raw.strip():
                continue
            try:
                events.append(ActivityEvent.model_validate(json.loads(raw)))
            except (json.JSONDecodeError, UnicodeDecodeError, PydanticValidationError):
                logger.warning(
                    "Skipping unreadable activity log line",
                    extra={"path": str(self._path), "line_number": self._line_number},
                )
        return events


class ActivityAuditLog:
    def __init__(self, store: ActivityStore) -> None:
        self._store = store
        self._lock = threading.Lock()
        self._all = _TimestampIndex()
        self._by_actor: defaultdict[str, _TimestampIndex] = defaultdict(_TimestampIndex)
        self._by_subject: defaultdict[str, _TimestampIndex] = defaultdict(_TimestampIndex)
        self._seen: set[str] = set()
        with self._lock:
            self._refresh_unlocked()

    @classmethod
    def at_path(cls, path: Path) -> ActivityAuditLog:
        return cls(JsonlActivityStore(path))

    def _refresh_unlocked(self) -> None:
        """Index events other writers appended since the last read."""

        try:
            events = self._store.read_new()
        except OSError:
            logger.warning("Could not read activity log; serving cached events", exc_info=True)
            return
        for event in events:
            self._index(event)

    def _index(self, event: ActivityEvent) -> None:
        if event.id in self._seen:
            return
        self._seen.add(event.id)
        self._all.insert(event)
        self._by_actor[event.actor.id].insert(event)
        self._by_subject[event.subject_id].insert(event)

    def record_event(self, event: ActivityEvent) -> ActivityEvent | None:
        """Append ``event``. Returns it, or None when the write failed."""

        with self._lock:
            try:
                self._store.append(event)
            except AuditWriteFailure:
                logger.warning(
                    "Activity event not recorded",
                    exc_info=True,
                    extra={"action": event.action, "subject_id": event.subject_id},
                )
                return None
            except Exception:
                logger.exception(
                    "Unexpected error recording activity event",
                    extra={"action": event.action, "subject_id": event.subject_id},
                )
                return None
            self._index(event)

        logger.debug(
            "Activity event recorded",
            extra={
                "action": event.action,
                "subject_type": event.subject_type,
                "subject_id": event.subject_id,
                "actor_id": event.actor.id,
            },
        )
        return event

    def _candidates(self, flt: ActivityFilter) -> Iterable[ActivityEvent]:
        if flt.subject_id is not None:
            index = self._by_subject.get(flt.subject_id)
        elif flt.actor_id is not None:
            index = self._by_actor.get(flt.actor_id)
        else:
            index = self._all
        if index is None:
            return []
        return index.between(flt.start, flt.end)

    def timeline(
        self,
        subject_id: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[ActivityEvent]:
        """Events for one subject, oldest first."""

        with self._lock:
            self._refresh_unlocked()
            index = self._by_subject.get(subject_id)
            if index is None:
                return []
            return list(index.between(start, end))

    def query(
        self, flt: ActivityFilter | None = None, limit: int = DEFAULT_QUERY_LIMIT
    ) -> list[ActivityEvent]:
        """Matching events, newest first, truncated to ``limit``."""

        flt = flt or ActivityFilter()
        with self._lock:
            self._refresh_unlocked()
            matched = [e for e in self._candidates(flt) if flt.matches(e)]
        matched.reverse()
        return matched[: max(limit, 0)]

    def summarize(
        self, flt: ActivityFilter | None = None, limit: int = DEFAULT_QUERY_LIMIT
    ) -> ActivitySummary:
        events = self.query(flt, limit)
        if not events:
            return ActivitySummary(total_events=0, total_duration_ms=0, unique_actor_count=0)

        groups: dict[str, list[ActivityEvent]] = defaultdict(list)
        for event in events:
            groups[event.action].append(event)

        actions = [
            ActionSummary(
                action=action,
                count=len(items),
                total_duration_ms=sum(e.duration_ms or 0 for e in items),
                unique_actor_count=len({e.actor.id for e in items}),
                last_activity=max(e.timestamp for e in items),
            )
            for action, items in groups.items()
        ]
        actions.sort(key=lambda a: (-a.count, a.action))

        return ActivitySummary(
            total_events=len(events),
            total_duration_ms=sum(e.duration_ms or 0 for e in events),
            unique_actor_count=len({e.actor.id for e in events}),
            first_activity=min(e.timestamp for e in events),
            last_activity=max(e.timestamp for e in events),
            actions=actions,
        )
