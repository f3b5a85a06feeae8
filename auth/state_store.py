from __future__ import annotations

import asyncio
import json
import os
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import asdict
from pathlib import Path

from auth.models import PendingAuth

DEFAULT_STATE_TTL_SECONDS = 600


class StateStore(ABC):
    """Keyed store for pending authorization state.

    ``pop`` is the consume-once primitive: of any number of concurrent callers
    presenting the same state, at most one receives the entry.
    """

    @abstractmethod
    async def put(self, state: str, pending: PendingAuth, ttl_seconds: float) -> None:
        raise NotImplementedError

    @abstractmethod
    async def get(self, state: str) -> PendingAuth | None:
        raise NotImplementedError

    @abstractmethod
    async def pop(self, state: str) -> PendingAuth | None:
        raise NotImplementedError


class MemoryStateStore(StateStore):
    def __init__(self, *, clock=time.monotonic) -> None:
        self._entries: dict[str, tuple[PendingAuth, float]] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def put(self, state: str, pending: PendingAuth, ttl_seconds: float) -> None:
        deadline = self._clock() + ttl_seconds
        async with self._lock:
            self._cancel_timer(state)
            self._entries[state] = (pending, deadline)
            loop = asyncio.get_running_loop()
            self._timers[state] = loop.call_later(ttl_seconds, self._expire, state, deadline)

    async def get(self, state: str) -> PendingAuth | None:
        entry = self._entries.get(state)
        if entry is None:
            return None
        pending, deadline = entry
        if self._clock() >= deadline:
            return None
        return pending

    async def pop(self, state: str) -> PendingAuth | None:
        async with self._lock:
            entry = self._entries.pop(state, None)
            self._cancel_timer(state)
        if entry is None:
            return None
        pending, deadline = entry
        if self._clock() >= deadline:
            return None
        return pending

    def _expire(self, state: str, deadline: float) -> None:
        entry = self._entries.get(state)
        # A later put() for the same key owns a newer deadline.
        if entry is not None and entry[1] == deadline:
            del self._entries[state]
        self._timers.pop(state, None)

    def _cancel_timer(self, state: str) -> None:
        timer = self._timers.pop(state, None)
        if timer is not None:
            timer.cancel()


class FileStateStore(StateStore):
    """JSON-file backed store so pending logins survive a restart.

    Expiry is checked against the stored wall-clock deadline on every access
    and expired entries are swept whenever the file is rewritten.
    """

    def __init__(self, path: str | Path = ".auth_state.json", *, clock=time.time) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()
        self._clock = clock

    async def put(self, state: str, pending: PendingAuth, ttl_seconds: float) -> None:
        async with self._lock:
            entries = self._live_entries()
            entries[state] = {**asdict(pending), "expires_at": self._clock() + ttl_seconds}
            self._write_all(entries)

    async def get(self, state: str) -> PendingAuth | None:
        record = self._live_entries().get(state)
        if record is None:
            return None
        return self._to_pending(record)

    async def pop(self, state: str) -> PendingAuth | None:
        async with self._lock:
            all_entries = self._read_all()
            record = all_entries.pop(state, None)
            if record is not None:
                self._write_all(self._drop_expired(all_entries))
        if record is None or record.get("expires_at", 0) <= self._clock():
            return None
        return self._to_pending(record)

    def _to_pending(self, record: dict) -> PendingAuth:
        return PendingAuth(
            provider=record["provider"],
            code_verifier=record["code_verifier"],
            redirect_path=record["redirect_path"],
            created_at=record["created_at"],
        )

    def _live_entries(self) -> dict[str, dict]:
        return self._drop_expired(self._read_all())

    def _drop_expired(self, entries: dict[str, dict]) -> dict[str, dict]:
        now = self._clock()
        return {
            state: record
            for state, record in entries.items()
            if record.get("expires_at", 0) > now
        }

    def _read_all(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise RuntimeError("State store file is invalid; expected top-level JSON object.")
        return raw

    def _write_all(self, payload: dict[str, dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()
