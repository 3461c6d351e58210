"""Append-only JSONL event log, one file per instrument per venue day."""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any, Literal, get_args

from pydantic import BaseModel

from futures_trading.utils.timeutil import venue_date

EventType = Literal[
    "signal",
    "order",
    "fill",
    "stop_update",
    "exit",
    "status",
    "error",
    "bar",
]

_ALLOWED_EVENT_TYPES = set(get_args(EventType))


class JournalRecord(BaseModel):
    """One persisted event."""

    timestamp: datetime
    event_type: EventType
    instrument: str
    payload: dict[str, Any]


class JournalStore:
    """Audit trail and crash-recovery source for one instrument."""

    def __init__(self, journal_dir: Path, instrument: str, tz: tzinfo) -> None:
        self._journal_dir = journal_dir
        self._instrument = instrument
        self._tz = tz
        self._journal_dir.mkdir(parents=True, exist_ok=True)

    @property
    def instrument(self) -> str:
        return self._instrument

    def append(self, event_type: str, payload: dict[str, Any], *, at: datetime) -> JournalRecord:
        """Append one event line to the file of the event's venue day."""
        if event_type not in _ALLOWED_EVENT_TYPES:
            raise ValueError(f"unsupported_event_type: {event_type}")
        record = JournalRecord(
            timestamp=at,
            event_type=event_type,  # type: ignore[arg-type]
            instrument=self._instrument,
            payload=payload,
        )
        file_path = self.path_for_day(venue_date(at, self._tz))
        with file_path.open("a", encoding="utf-8") as f:
            f.write(record.model_dump_json() + "\n")
        return record

    def load_day(self, day: date) -> list[JournalRecord]:
        """All events of one venue day, in write order."""
        file_path = self.path_for_day(day)
        if not file_path.exists():
            return []
        rows: list[JournalRecord] = []
        for line in file_path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            rows.append(JournalRecord.model_validate_json(line))
        return rows

    def path_for_day(self, day: date) -> Path:
        return self._journal_dir / f"{self._instrument}_{day.isoformat()}.jsonl"
