from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field
from typing import Dict

from ezfuck.visualizer import VisualizerSession


def _new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class SessionRecord:
    """A visualizer session plus the precomputed length of its full run."""

    session: VisualizerSession
    total_steps: int = 0
    total_steps_capped: bool = False
    session_id: str = field(default_factory=_new_session_id)

    @property
    def dialect(self) -> str:
        return "brainfuck" if self.session.brainfuck else "ezfuck"


class SessionStore:
    """Sessions shared between request handlers, keyed by session id."""

    def __init__(self) -> None:
        self._records: Dict[str, SessionRecord] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._records

    def add(
        self,
        session: VisualizerSession,
        *,
        total_steps: int = 0,
        total_steps_capped: bool = False,
    ) -> SessionRecord:
        record = SessionRecord(session, total_steps, total_steps_capped)
        with self._lock:
            self._records[record.session_id] = record
        return record

    def get(self, session_id: str) -> SessionRecord:
        with self._lock:
            record = self._records.get(session_id)
        if record is None:
            raise KeyError(f"Unknown session id: {session_id}")
        return record

    def reset(self, session_id: str) -> SessionRecord:
        record = self.get(session_id)
        record.session.restart(keep_breakpoints=False)
        return record

    def remove(self, session_id: str) -> bool:
        with self._lock:
            return self._records.pop(session_id, None) is not None


__all__ = ["SessionRecord", "SessionStore"]
