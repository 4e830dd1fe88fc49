"""
Lifecycle Engine
================

Validates and applies every inquiry status transition.

    new ──submit_quote──▶ quoted ──respond(accept)──▶ accepted
     │                      │
     │                      └──respond(decline)──▶ declined
     └──────cancel──────────┴──────────────────────▶ cancelled

Each write is a conditional apply against the store, keyed on the
status the guard was checked against. If another viewer moved the
document in between, the write is rejected with StaleStateError instead
of overwriting (first writer wins). Nothing is retried here: a retry
would need the caller to re-decide, not just resend.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, Mapping, Optional

from .errors import (
    AuthorizationError,
    InquiryNotFoundError,
    InvalidTransitionError,
    LifecycleError,
    QuoteWindowClosedError,
    StaleStateError,
)
from .store import Clock, InquiryStore, utcnow
from .sync import ChangePublisher
from .types import (
    SERVER_TIMESTAMP,
    Caller,
    Inquiry,
    InquiryStatus,
    Quote,
    Role,
    can_transition,
)
from .validation import (
    DEFAULT_CURRENCIES,
    optional_text,
    parse_amount,
    parse_currency,
    parse_decision,
    parse_email,
    parse_event_date,
    parse_guests,
    require_text,
)

logger = logging.getLogger(__name__)

DEFAULT_QUOTE_WINDOW = timedelta(hours=24)


class LifecycleEngine:
    """
    Single write path for inquiries.

    Every operation takes the caller's verified identity explicitly and
    re-checks ownership itself.
    """

    def __init__(
        self,
        store: InquiryStore,
        publisher: Optional[ChangePublisher] = None,
        supported_currencies: Iterable[str] = DEFAULT_CURRENCIES,
        quote_window: Optional[timedelta] = DEFAULT_QUOTE_WINDOW,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.publisher = publisher
        self.supported_currencies = tuple(c.upper() for c in supported_currencies)
        self.quote_window = quote_window
        self._clock = clock

    # =========================================================================
    # READS
    # =========================================================================

    async def get_inquiry(self, inquiry_id: str) -> Inquiry:
        """Get inquiry by ID or raise InquiryNotFoundError."""
        inquiry = await self.store.get(inquiry_id)
        if inquiry is None:
            raise InquiryNotFoundError(f"Inquiry {inquiry_id} not found", inquiry_id=inquiry_id)
        return inquiry

    def now(self) -> datetime:
        return self._clock()

    def quote_deadline(self, inquiry: Inquiry) -> Optional[datetime]:
        """When organizers stop being able to quote this inquiry (None = never)."""
        if self.quote_window is None or inquiry.created_at is None:
            return None
        return inquiry.created_at + self.quote_window

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def create_inquiry(
        self,
        caller: Caller,
        *,
        event_type: str,
        event_date: Any,
        description: str,
        contact_name: str,
        contact_email: str,
        location: str = "",
        contact_phone: str = "",
        expected_guests: Any = None,
    ) -> Inquiry:
        """Create a new inquiry in status ``new``, owned by the calling client."""
        self._require_role(caller, Role.CLIENT, "create inquiries")

        today: date = self._clock().date()
        inquiry = Inquiry(
            client_id=caller.user_id,
            event_type=require_text(event_type, "event_type", "Event type"),
            event_date=parse_event_date(event_date, today),
            description=require_text(description, "description", "Description"),
            location=optional_text(location),
            contact_name=require_text(contact_name, "contact_name", "Contact name"),
            contact_email=parse_email(contact_email),
            contact_phone=optional_text(contact_phone),
            expected_guests=parse_guests(expected_guests),
        )

        stored = await self.store.insert(inquiry)
        logger.info(f"Created inquiry {stored.id} for client {caller.user_id}: {stored.event_type}")
        await self._publish(stored)
        return stored

    async def submit_quote(
        self,
        caller: Caller,
        inquiry_id: str,
        amount: Any,
        currency: str,
        message: str = "",
        organizer_name: Optional[str] = None,
    ) -> Inquiry:
        """
        Attach the calling organizer's quote to a ``new`` inquiry.

        Raises:
            ValidationError: amount or currency malformed (checked before any read)
            InvalidTransitionError: inquiry is not ``new``
            QuoteWindowClosedError: the quoting window has passed
            StaleStateError: another organizer quoted it first
        """
        self._require_role(caller, Role.ORGANIZER, "submit quotes")
        quote_amount = parse_amount(amount)
        quote_currency = parse_currency(currency, self.supported_currencies)

        inquiry = await self.get_inquiry(inquiry_id)
        if inquiry.status is not InquiryStatus.NEW:
            raise self._rejected(InvalidTransitionError(
                f"Inquiry {inquiry_id} is already {inquiry.status.value} and cannot be quoted",
                inquiry_id=inquiry_id,
                current_status=inquiry.status.value,
            ))

        deadline = self.quote_deadline(inquiry)
        if deadline is not None and self._clock() > deadline:
            raise self._rejected(QuoteWindowClosedError(
                f"Quoting window for inquiry {inquiry_id} closed at {deadline.isoformat()}",
                inquiry_id=inquiry_id,
                current_status=inquiry.status.value,
            ))

        quote = Quote(
            organizer_id=caller.user_id,
            organizer_name=(organizer_name or "").strip() or caller.display_name,
            amount=quote_amount,
            currency=quote_currency,
            message=optional_text(message),
            submitted_at=SERVER_TIMESTAMP,
        )
        return await self._commit(
            inquiry,
            InquiryStatus.QUOTED,
            expected={"status": InquiryStatus.NEW, "organizer_id": None},
            changes={"organizer_id": caller.user_id, "quote": quote},
            conflict="was quoted by another organizer",
        )

    async def respond_to_quote(self, caller: Caller, inquiry_id: str, decision: Any) -> Inquiry:
        """
        Accept or decline the quote on a ``quoted`` inquiry.

        Only the owning client may respond. Once accepted or declined,
        every further call is rejected with InvalidTransitionError.
        """
        self._require_authenticated(caller)
        choice = parse_decision(decision)

        inquiry = await self.get_inquiry(inquiry_id)
        if caller.user_id != inquiry.client_id:
            raise self._rejected(AuthorizationError(
                f"Inquiry {inquiry_id} does not belong to {caller.user_id}",
                inquiry_id=inquiry_id,
            ))

        if inquiry.status is not InquiryStatus.QUOTED:
            raise self._rejected(InvalidTransitionError(
                f"Cannot {choice.value} inquiry {inquiry_id}: status is {inquiry.status.value}",
                inquiry_id=inquiry_id,
                current_status=inquiry.status.value,
            ))

        return await self._commit(
            inquiry,
            choice.target_status,
            expected={"status": InquiryStatus.QUOTED},
            changes={"responded_at": SERVER_TIMESTAMP},
            conflict="changed before the response was applied",
        )

    async def cancel_inquiry(self, caller: Caller, inquiry_id: str, reason: Optional[str] = None) -> Inquiry:
        """Administrative cancel of a ``new`` or ``quoted`` inquiry (admin or owning client)."""
        self._require_authenticated(caller)

        inquiry = await self.get_inquiry(inquiry_id)
        if not (caller.is_admin or (caller.is_client and caller.user_id == inquiry.client_id)):
            raise self._rejected(AuthorizationError(
                f"{caller.user_id} may not cancel inquiry {inquiry_id}",
                inquiry_id=inquiry_id,
            ))

        if not can_transition(inquiry.status, InquiryStatus.CANCELLED):
            raise self._rejected(InvalidTransitionError(
                f"Inquiry {inquiry_id} is {inquiry.status.value} and cannot be cancelled",
                inquiry_id=inquiry_id,
                current_status=inquiry.status.value,
            ))

        return await self._commit(
            inquiry,
            InquiryStatus.CANCELLED,
            expected={"status": inquiry.status},
            changes={
                "cancelled_at": SERVER_TIMESTAMP,
                "cancel_reason": optional_text(reason) or None,
            },
            conflict="changed before it could be cancelled",
        )

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _commit(
        self,
        inquiry: Inquiry,
        target: InquiryStatus,
        expected: Mapping[str, Any],
        changes: Dict[str, Any],
        conflict: str,
    ) -> Inquiry:
        """Conditionally apply ``inquiry.status -> target`` and publish the result."""
        if not can_transition(inquiry.status, target):
            raise self._rejected(InvalidTransitionError(
                f"{inquiry.status.value} -> {target.value} is not a valid transition",
                inquiry_id=inquiry.id,
                current_status=inquiry.status.value,
            ))

        updated = await self.store.update_if(inquiry.id, expected, {**changes, "status": target})
        if updated is None:
            raise self._rejected(StaleStateError(
                f"Inquiry {inquiry.id} {conflict}; reload and try again",
                inquiry_id=inquiry.id,
            ))

        logger.info(f"Inquiry {inquiry.id}: {inquiry.status.value} -> {target.value}")
        await self._publish(updated)
        return updated

    async def _publish(self, inquiry: Inquiry) -> None:
        if self.publisher is not None:
            await self.publisher.publish(inquiry)

    def _require_authenticated(self, caller: Optional[Caller]) -> None:
        if caller is None or not caller.user_id:
            raise self._rejected(AuthorizationError("Not logged in"))

    def _require_role(self, caller: Optional[Caller], role: Role, action: str) -> None:
        self._require_authenticated(caller)
        if caller.role is not role:
            raise self._rejected(AuthorizationError(
                f"Only {role.value}s may {action} ({caller.user_id} is {caller.role.value})"
            ))

    @staticmethod
    def _rejected(error: LifecycleError) -> LifecycleError:
        logger.warning(f"Rejected [{error.code}]: {error.message}")
        return error
