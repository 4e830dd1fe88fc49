"""
Role-Scoped Queries
===================

Which inquiries a viewer may read, and how they see them.

- Clients see only their own inquiries, newest first.
- Organizers (and admins) see every inquiry, newest first; the
  new/quoted/accepted/all tabs are a display-side split of that one list.

Everything here is a pure read. It never mutates state and is safe to
re-issue at any time.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from .errors import AuthorizationError, InquiryNotFoundError
from .store import InquiryStore
from .sync import InquiryFilter, LiveViewSynchronizer, Subscription
from .types import Caller, Inquiry, InquiryStatus, Role

TABS = ("new", "quoted", "accepted", "all")

CONTACT_FIELDS = ("contact_name", "contact_email", "contact_phone")


def scope_for(caller: Optional[Caller]) -> InquiryFilter:
    """The collection filter a caller's role entitles them to."""
    if caller is None or not caller.user_id:
        raise AuthorizationError("Not logged in")
    if caller.role is Role.CLIENT:
        return InquiryFilter(client_id=caller.user_id)
    if caller.role in (Role.ORGANIZER, Role.ADMIN):
        return InquiryFilter()
    raise AuthorizationError(f"Unknown role for {caller.user_id}")


def can_view(caller: Caller, inquiry: Inquiry) -> bool:
    return scope_for(caller).matches(inquiry)


def _sort_newest_first(inquiries: Iterable[Inquiry]) -> List[Inquiry]:
    return sorted(inquiries, key=lambda i: i.created_at, reverse=True)


async def list_visible(store: InquiryStore, caller: Caller) -> List[Inquiry]:
    """Inquiries visible to ``caller``, newest first."""
    scope = scope_for(caller)
    docs = await store.list(client_id=scope.client_id)
    return _sort_newest_first(d for d in docs if scope.matches(d))


async def get_visible(store: InquiryStore, caller: Caller, inquiry_id: str) -> Inquiry:
    """One inquiry, if ``caller`` may see it."""
    scope = scope_for(caller)
    inquiry = await store.get(inquiry_id)
    if inquiry is None:
        raise InquiryNotFoundError(f"Inquiry {inquiry_id} not found", inquiry_id=inquiry_id)
    if not scope.matches(inquiry):
        raise AuthorizationError(
            f"Inquiry {inquiry_id} does not belong to {caller.user_id}",
            inquiry_id=inquiry_id,
        )
    return inquiry


async def watch(
    synchronizer: LiveViewSynchronizer,
    caller: Caller,
    inquiry_id: Optional[str] = None,
) -> Subscription:
    """
    Role-scoped live subscription.

    With ``inquiry_id`` this follows one document (existence and
    ownership are checked up front); otherwise it follows the caller's whole
    visible collection.
    """
    scope = scope_for(caller)
    if inquiry_id is None:
        return await synchronizer.subscribe(scope)

    await get_visible(synchronizer.store, caller, inquiry_id)
    return await synchronizer.subscribe(
        InquiryFilter(inquiry_id=inquiry_id, client_id=scope.client_id)
    )


def partition_tabs(inquiries: Iterable[Inquiry]) -> Dict[str, List[Inquiry]]:
    """Split an already-sorted list into the organizer dashboard tabs."""
    ordered = list(inquiries)
    return {
        "new": [i for i in ordered if i.status is InquiryStatus.NEW],
        "quoted": [i for i in ordered if i.status is InquiryStatus.QUOTED],
        "accepted": [i for i in ordered if i.status is InquiryStatus.ACCEPTED],
        "all": ordered,
    }


def quote_window_remaining(
    inquiry: Inquiry,
    window: Optional[timedelta],
    now: datetime,
) -> Optional[timedelta]:
    """Time left for organizers to quote (zero once expired, None if unlimited)."""
    if window is None or inquiry.created_at is None:
        return None
    remaining = inquiry.created_at + window - now
    return max(remaining, timedelta(0))


def is_quotable(inquiry: Inquiry, window: Optional[timedelta], now: datetime) -> bool:
    if inquiry.status is not InquiryStatus.NEW:
        return False
    remaining = quote_window_remaining(inquiry, window, now)
    return remaining is None or remaining > timedelta(0)


def contact_visible(caller: Caller, inquiry: Inquiry) -> bool:
    """
    Client contact details are shown to the owner, to admins, and to the
    organizer whose quote was accepted.
    """
    if caller.role is Role.ADMIN:
        return True
    if caller.role is Role.CLIENT:
        return caller.user_id == inquiry.client_id
    return inquiry.status is InquiryStatus.ACCEPTED and inquiry.organizer_id == caller.user_id


def present(
    caller: Caller,
    inquiry: Inquiry,
    window: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """JSON view of ``inquiry`` for ``caller``."""
    data = inquiry.to_dict()
    if not contact_visible(caller, inquiry):
        for name in CONTACT_FIELDS:
            data[name] = None

    if now is not None:
        remaining = quote_window_remaining(inquiry, window, now)
        data["quote_window_seconds"] = int(remaining.total_seconds()) if remaining is not None else None
        data["quotable"] = is_quotable(inquiry, window, now)
    return data
