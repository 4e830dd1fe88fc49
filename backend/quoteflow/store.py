"""
Inquiry Store
=============

The durable-store contract the lifecycle engine writes through, plus an
in-process implementation used by tests and single-node deployments.

The only mutation primitive is ``update_if``: a conditional apply keyed
on expected current field values. There is no blind overwrite.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from .types import SERVER_TIMESTAMP, Inquiry, Quote

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

_TICK = timedelta(microseconds=1)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def resolve_server_timestamps(changes: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    """Replace SERVER_TIMESTAMP placeholders (top level and inside a Quote) with ``now``."""
    resolved: Dict[str, Any] = {}
    for name, value in changes.items():
        if value is SERVER_TIMESTAMP:
            value = now
        elif isinstance(value, Quote) and value.submitted_at is SERVER_TIMESTAMP:
            value = replace(value, submitted_at=now)
        resolved[name] = value
    return resolved


class InquiryStore(ABC):
    """Storage contract for inquiry documents."""

    @abstractmethod
    async def insert(self, inquiry: Inquiry) -> Inquiry:
        """Persist a new inquiry, stamping created_at/updated_at with server time."""

    @abstractmethod
    async def get(self, inquiry_id: str) -> Optional[Inquiry]:
        """Get inquiry by ID."""

    @abstractmethod
    async def update_if(
        self,
        inquiry_id: str,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> Optional[Inquiry]:
        """
        Atomically apply ``changes`` if every ``expected`` field still holds.

        Returns the updated inquiry, or None when the guard did not match
        (including when the document does not exist). ``updated_at`` is
        always moved strictly forward.
        """

    @abstractmethod
    async def list(self, client_id: Optional[str] = None) -> List[Inquiry]:
        """List inquiries newest-first, optionally for one client."""

    async def close(self) -> None:
        """Release connections."""


class MemoryInquiryStore(InquiryStore):
    """
    Dict-backed store.

    Every call yields to the event loop once before touching state, the
    way a network round trip would, so concurrent callers interleave
    between their read and their conditional write.
    """

    def __init__(self, clock: Clock = utcnow):
        self._docs: Dict[str, Inquiry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._last_stamp: Optional[datetime] = None

    def _server_now(self, floor: Optional[datetime] = None) -> datetime:
        now = self._clock()
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + _TICK
        if floor is not None and now <= floor:
            now = floor + _TICK
        self._last_stamp = now
        return now

    async def insert(self, inquiry: Inquiry) -> Inquiry:
        await asyncio.sleep(0)
        async with self._lock:
            if inquiry.id in self._docs:
                raise ValueError(f"Inquiry {inquiry.id} already exists")
            now = self._server_now()
            stored = replace(inquiry, created_at=now, updated_at=now)
            self._docs[stored.id] = stored
            return replace(stored)

    async def get(self, inquiry_id: str) -> Optional[Inquiry]:
        await asyncio.sleep(0)
        async with self._lock:
            doc = self._docs.get(inquiry_id)
            return replace(doc) if doc else None

    async def update_if(
        self,
        inquiry_id: str,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> Optional[Inquiry]:
        await asyncio.sleep(0)
        async with self._lock:
            current = self._docs.get(inquiry_id)
            if current is None:
                return None

            for name, value in expected.items():
                if getattr(current, name) != value:
                    logger.debug(
                        f"Guard mismatch on {inquiry_id}: {name}="
                        f"{getattr(current, name)!r}, expected {value!r}"
                    )
                    return None

            now = self._server_now(floor=current.updated_at)
            applied = resolve_server_timestamps(changes, now)
            applied["updated_at"] = now
            updated = current.with_changes(applied)
            self._docs[inquiry_id] = updated
            return replace(updated)

    async def list(self, client_id: Optional[str] = None) -> List[Inquiry]:
        await asyncio.sleep(0)
        async with self._lock:
            docs = [
                replace(doc) for doc in self._docs.values()
                if client_id is None or doc.client_id == client_id
            ]
        docs.sort(key=lambda d: d.created_at, reverse=True)
        return docs
