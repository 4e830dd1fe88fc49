"""
Quoteflow Types
===============

Data structures for the inquiry–quote lifecycle.

An Inquiry is one client's request for event services. An organizer
attaches at most one Quote to it; the client then accepts or declines.
Documents are plain dataclasses - storage details live in the stores.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional


# =============================================================================
# ENUMS
# =============================================================================

class InquiryStatus(Enum):
    """Lifecycle status of an inquiry."""
    NEW = "new"                 # Submitted, waiting for a quote
    QUOTED = "quoted"           # One organizer attached a quote
    ACCEPTED = "accepted"       # Client accepted the quote
    DECLINED = "declined"       # Client declined the quote
    CANCELLED = "cancelled"     # Withdrawn before a decision

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class Decision(Enum):
    """Client's answer to a quote."""
    ACCEPT = "accept"
    DECLINE = "decline"

    @property
    def target_status(self) -> InquiryStatus:
        if self is Decision.ACCEPT:
            return InquiryStatus.ACCEPTED
        return InquiryStatus.DECLINED


class Role(Enum):
    """Viewer role, supplied by the identity provider."""
    CLIENT = "client"
    ORGANIZER = "organizer"
    ADMIN = "admin"


TERMINAL_STATUSES: FrozenSet[InquiryStatus] = frozenset({
    InquiryStatus.ACCEPTED,
    InquiryStatus.DECLINED,
    InquiryStatus.CANCELLED,
})

# Allowed status moves. Anything not listed is rejected.
TRANSITIONS: Dict[InquiryStatus, FrozenSet[InquiryStatus]] = {
    InquiryStatus.NEW: frozenset({InquiryStatus.QUOTED, InquiryStatus.CANCELLED}),
    InquiryStatus.QUOTED: frozenset({
        InquiryStatus.ACCEPTED,
        InquiryStatus.DECLINED,
        InquiryStatus.CANCELLED,
    }),
    InquiryStatus.ACCEPTED: frozenset(),
    InquiryStatus.DECLINED: frozenset(),
    InquiryStatus.CANCELLED: frozenset(),
}


def can_transition(current: InquiryStatus, target: InquiryStatus) -> bool:
    """True when ``current -> target`` is an edge of the state machine."""
    return target in TRANSITIONS.get(current, frozenset())


class _ServerTimestamp:
    """Placeholder replaced by the store's clock when a write is applied."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()


def _generate_id(prefix: str) -> str:
    """Generate a prefixed UUID."""
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def _iso(value: Optional[Any]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _parse_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value)


# =============================================================================
# IDENTITY CONTEXT
# =============================================================================

@dataclass(frozen=True)
class Caller:
    """
    Verified identity of whoever issues an operation.

    Passed explicitly into every engine and query call; nothing reads
    the current user from ambient state.
    """
    user_id: str
    role: Role
    name: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.user_id

    @property
    def is_client(self) -> bool:
        return self.role is Role.CLIENT

    @property
    def is_organizer(self) -> bool:
        return self.role is Role.ORGANIZER

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


# =============================================================================
# QUOTE (embedded)
# =============================================================================

@dataclass(frozen=True)
class Quote:
    """An organizer's priced offer, embedded in its inquiry."""
    organizer_id: str
    organizer_name: str
    amount: Decimal
    currency: str
    message: str = ""
    submitted_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "organizer_id": self.organizer_id,
            "organizer_name": self.organizer_name,
            "amount": str(self.amount),
            "currency": self.currency,
            "message": self.message,
            "submitted_at": _iso(self.submitted_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Quote":
        return cls(
            organizer_id=data["organizer_id"],
            organizer_name=data.get("organizer_name") or data["organizer_id"],
            amount=Decimal(str(data["amount"])),
            currency=data["currency"],
            message=data.get("message") or "",
            submitted_at=_parse_datetime(data.get("submitted_at")),
        )


# =============================================================================
# INQUIRY
# =============================================================================

@dataclass
class Inquiry:
    """
    One client request for event services.

    ``status`` drives every visibility and mutation rule. ``quote`` is
    present once the inquiry has been quoted and is kept afterwards
    (accepted, declined or cancelled) for audit.
    """
    client_id: str
    event_type: str
    event_date: date
    description: str
    location: str = ""
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    expected_guests: Optional[int] = None

    id: str = field(default_factory=lambda: _generate_id("inq"))
    status: InquiryStatus = InquiryStatus.NEW
    organizer_id: Optional[str] = None
    quote: Optional[Quote] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    def with_changes(self, changes: Mapping[str, Any]) -> "Inquiry":
        """Return a copy with ``changes`` applied (field name -> value)."""
        return replace(self, **dict(changes))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "event_type": self.event_type,
            "event_date": _iso(self.event_date),
            "description": self.description,
            "location": self.location,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "expected_guests": self.expected_guests,
            "status": self.status.value,
            "organizer_id": self.organizer_id,
            "quote": self.quote.to_dict() if self.quote else None,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "responded_at": _iso(self.responded_at),
            "cancelled_at": _iso(self.cancelled_at),
            "cancel_reason": self.cancel_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Inquiry":
        quote = data.get("quote")
        return cls(
            id=data["id"],
            client_id=data["client_id"],
            event_type=data["event_type"],
            event_date=_parse_date(data["event_date"]),
            description=data["description"],
            location=data.get("location") or "",
            contact_name=data.get("contact_name") or "",
            contact_email=data.get("contact_email") or "",
            contact_phone=data.get("contact_phone") or "",
            expected_guests=data.get("expected_guests"),
            status=InquiryStatus(data["status"]),
            organizer_id=data.get("organizer_id"),
            quote=Quote.from_dict(quote) if quote else None,
            created_at=_parse_datetime(data.get("created_at")),
            updated_at=_parse_datetime(data.get("updated_at")),
            responded_at=_parse_datetime(data.get("responded_at")),
            cancelled_at=_parse_datetime(data.get("cancelled_at")),
            cancel_reason=data.get("cancel_reason"),
        )
