from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Protocol, Set


class Connection(Protocol):
    async def send_text(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None: ...


@dataclass(eq=False)
class ConnectionRecord:
    """One open client connection and the classroom it belongs to."""

    connection: Connection
    classroom_id: str
    user_id: Optional[int] = None
    role: Optional[str] = None
    last_seen: float = field(default_factory=time.monotonic)

    def touch(self, now: Optional[float] = None) -> None:
        self.last_seen = time.monotonic() if now is None else now


class Registry:
    """In-memory set of live connection records for this process."""

    def __init__(self) -> None:
        self._records: Set[ConnectionRecord] = set()

    def add(self, record: ConnectionRecord) -> None:
        self._records.add(record)

    def remove(self, record: ConnectionRecord) -> None:
        self._records.discard(record)

    def size(self) -> int:
        return len(self._records)

    def members(self, classroom_id: str, role: Optional[str] = None) -> List[ConnectionRecord]:
        return [
            r for r in self
            if r.classroom_id == classroom_id and (role is None or r.role == role)
        ]

    def __contains__(self, record: object) -> bool:
        return record in self._records

    def __iter__(self) -> Iterator[ConnectionRecord]:
        # Snapshot so callers may remove while iterating
        return iter(list(self._records))

    def __len__(self) -> int:
        return len(self._records)
