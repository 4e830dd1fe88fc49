"""
Live View Synchronizer
======================

Pushes every committed inquiry change to the viewers subscribed to it.

A viewer subscribes to one inquiry (quote detail page) or to a filtered
collection (client dashboard, organizer triage). The first update is
always the current snapshot; after that, one update per committed write
that matches the filter.

    sub = await synchronizer.subscribe(InquiryFilter(client_id="u1"))
    async with sub:
        async for update in sub:
            render(update)

Per document, updates arrive in commit order: each subscription remembers
the last ``updated_at`` it delivered for every document and drops anything
that is not newer. Across documents there is no ordering.

A viewer that stops reading is cut off with TransportError once
``max_pending`` updates are queued for it. After the live feed is lost for
good (``fail(..., permanent=True)``), ``subscribe()`` raises TransportError
until ``recover()`` is called.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from .errors import TransportError
from .store import InquiryStore
from .types import Inquiry, InquiryStatus, _generate_id

logger = logging.getLogger(__name__)

SNAPSHOT = "snapshot"
ADDED = "added"
MODIFIED = "modified"
REMOVED = "removed"

_CLOSED = object()

DEFAULT_MAX_PENDING = 1000


@dataclass(frozen=True)
class InquiryFilter:
    """
    Which documents a subscription follows.

    ``inquiry_id`` makes it a point subscription; otherwise the other
    fields narrow the collection (None means "any").
    """
    inquiry_id: Optional[str] = None
    client_id: Optional[str] = None
    statuses: Optional[FrozenSet[InquiryStatus]] = None

    @property
    def is_point(self) -> bool:
        return self.inquiry_id is not None

    def matches(self, inquiry: Inquiry) -> bool:
        if self.inquiry_id is not None and inquiry.id != self.inquiry_id:
            return False
        if self.client_id is not None and inquiry.client_id != self.client_id:
            return False
        if self.statuses is not None and inquiry.status not in self.statuses:
            return False
        return True


@dataclass(frozen=True)
class LiveUpdate:
    """One push to a subscriber."""
    kind: str
    inquiries: Tuple[Inquiry, ...]

    @property
    def inquiry(self) -> Optional[Inquiry]:
        return self.inquiries[0] if self.inquiries else None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "inquiries": [i.to_dict() for i in self.inquiries],
        }


class ChangePublisher(ABC):
    """Anything the engine can hand a committed document to."""

    @abstractmethod
    async def publish(self, inquiry: Inquiry) -> None:
        """Announce a committed write."""


class Subscription:
    """
    Handle for one registered viewer.

    Iterate it for updates. ``cancel()`` unregisters; it is safe to call
    any number of times and is called automatically when used as an
    async context manager.
    """

    def __init__(self, synchronizer: "LiveViewSynchronizer", inquiry_filter: InquiryFilter,
                 max_pending: int = DEFAULT_MAX_PENDING):
        self.id = _generate_id("sub")
        self.filter = inquiry_filter
        self._synchronizer = synchronizer
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_pending)
        self._versions: Dict[str, Optional[datetime]] = {}
        self._members: Set[str] = set()
        # Writes that arrive before the snapshot has been delivered
        self._pending: Optional[List[Inquiry]] = []
        self._closed = False
        self._error: Optional[TransportError] = None

    @property
    def active(self) -> bool:
        return not self._closed

    def _start(self, snapshot: List[Inquiry]) -> None:
        for inquiry in snapshot:
            self._members.add(inquiry.id)
            self._versions[inquiry.id] = inquiry.updated_at
        self._queue.put_nowait(LiveUpdate(SNAPSHOT, tuple(snapshot)))

        pending, self._pending = self._pending or [], None
        for inquiry in pending:
            self._deliver(inquiry)

    def _offer(self, inquiry: Inquiry) -> None:
        if self._closed:
            return
        if self._pending is not None:
            self._pending.append(inquiry)
            return
        self._deliver(inquiry)

    def _deliver(self, inquiry: Inquiry) -> None:
        last = self._versions.get(inquiry.id)
        if last is not None and inquiry.updated_at is not None and inquiry.updated_at <= last:
            return

        if self.filter.matches(inquiry):
            kind = MODIFIED if inquiry.id in self._members else ADDED
            self._members.add(inquiry.id)
        elif inquiry.id in self._members:
            kind = REMOVED
            self._members.discard(inquiry.id)
        else:
            return

        self._versions[inquiry.id] = inquiry.updated_at
        try:
            self._queue.put_nowait(LiveUpdate(kind, (inquiry,)))
        except asyncio.QueueFull:
            logger.warning(f"Subscription {self.id} fell behind, dropping it")
            self._synchronizer._remove(self)
            self._fail(TransportError(
                f"Subscription {self.id} fell behind by {self._queue.maxsize} updates; re-subscribe"
            ))

    def _fail(self, error: TransportError) -> None:
        if self._closed:
            return
        self._closed = True
        self._error = error
        if self._queue.full():
            # Make room for the close marker
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def cancel(self) -> None:
        """Unregister. Undelivered updates are discarded."""
        self._synchronizer._remove(self)
        if self._closed and self._error is None:
            return
        self._closed = True
        self._error = None
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    async def next(self, timeout: Optional[float] = None) -> LiveUpdate:
        """
        Wait for the next update.

        Raises:
            StopAsyncIteration: subscription was cancelled
            TransportError: the feed failed; re-subscribe to recover
            asyncio.TimeoutError: nothing arrived within ``timeout``
        """
        if timeout is None:
            item = await self._queue.get()
        else:
            item = await asyncio.wait_for(self._queue.get(), timeout=timeout)

        if item is _CLOSED:
            # Keep the marker so later reads end the same way
            self._queue.put_nowait(_CLOSED)
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> LiveUpdate:
        return await self.next()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()


class LiveViewSynchronizer(ChangePublisher):
    """In-process fan-out of committed writes to subscriptions."""

    def __init__(self, store: InquiryStore, max_pending: int = DEFAULT_MAX_PENDING):
        self._store = store
        self._max_pending = max_pending
        self._subscriptions: Dict[str, Subscription] = {}
        # Set while the live feed is down for good; new viewers are refused
        self._failed: Optional[TransportError] = None

    @property
    def store(self) -> InquiryStore:
        return self._store

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    @property
    def available(self) -> bool:
        return self._failed is None

    async def subscribe(self, inquiry_filter: InquiryFilter) -> Subscription:
        """
        Register interest and queue the current snapshot as the first update.

        Raises:
            TransportError: the live feed is down; nothing would be pushed
        """
        if self._failed is not None:
            raise self._failed

        subscription = Subscription(self, inquiry_filter, max_pending=self._max_pending)
        # Register before reading so no write between read and registration is missed
        self._subscriptions[subscription.id] = subscription

        try:
            snapshot = await self._read_snapshot(inquiry_filter)
        except Exception:
            subscription.cancel()
            raise

        subscription._start(snapshot)
        logger.debug(f"Subscription {subscription.id} started with {len(snapshot)} documents")
        return subscription

    async def _read_snapshot(self, inquiry_filter: InquiryFilter) -> List[Inquiry]:
        if inquiry_filter.is_point:
            doc = await self._store.get(inquiry_filter.inquiry_id)
            return [doc] if doc is not None and inquiry_filter.matches(doc) else []

        docs = await self._store.list(client_id=inquiry_filter.client_id)
        return [doc for doc in docs if inquiry_filter.matches(doc)]

    async def publish(self, inquiry: Inquiry) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription._offer(inquiry)

    def fail(self, error: Exception, permanent: bool = False) -> None:
        """
        Surface a transport failure to every open subscription and drop them.

        With ``permanent`` the feed is gone (listener stopped): later
        ``subscribe()`` calls raise the same TransportError until ``recover()``.
        """
        if isinstance(error, TransportError):
            transport_error = error
        else:
            transport_error = TransportError(f"Live feed unavailable: {error}")
            transport_error.__cause__ = error

        if permanent:
            self._failed = transport_error

        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for subscription in subscriptions:
            subscription._fail(transport_error)

        logger.error(f"Live feed failed, closed {len(subscriptions)} subscriptions: {error}")

    def recover(self) -> None:
        """Accept subscriptions again once the feed is back."""
        if self._failed is not None:
            logger.info("Live feed restored, accepting subscriptions")
        self._failed = None

    def _remove(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    async def close(self) -> None:
        for subscription in list(self._subscriptions.values()):
            subscription.cancel()
