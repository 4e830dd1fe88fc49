"""
Inquiry API Endpoints
=====================

REST + SSE surface for the inquiry/quote lifecycle.

Endpoints:
- POST /api/inquiries - Create inquiry (client)
- GET /api/inquiries - List visible inquiries (+ organizer tab counts)
- GET /api/inquiries/stream - Live role-scoped collection (SSE)
- POST /api/inquiries/enhance-description - Polish a description before submitting
- GET /api/inquiries/{id} - Get inquiry detail
- GET /api/inquiries/{id}/stream - Live single inquiry (SSE)
- POST /api/inquiries/{id}/quote - Submit quote (organizer)
- POST /api/inquiries/{id}/respond - Accept or decline quote (client)
- POST /api/inquiries/{id}/cancel - Cancel inquiry (admin or owning client)

Every rejected operation answers with ``{"detail": {"code": ..., "message": ...}}``.
"""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from middleware.auth import get_current_caller
from quoteflow import (
    AuthorizationError,
    Caller,
    InquiryNotFoundError,
    InvalidTransitionError,
    LifecycleEngine,
    LifecycleError,
    LiveUpdate,
    LiveViewSynchronizer,
    StaleStateError,
    Subscription,
    TransportError,
    ValidationError,
    queries,
    refine_description,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_STATUS = (
    (ValidationError, 422),
    (InvalidTransitionError, 409),
    (StaleStateError, 409),
    (AuthorizationError, 403),
    (InquiryNotFoundError, 404),
    (TransportError, 503),
)


def _http_error(error: LifecycleError) -> HTTPException:
    """Map a lifecycle error onto an HTTP status, keeping its code in the body."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=error.to_dict())
    return HTTPException(status_code=400, detail=error.to_dict())


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_engine(request: Request) -> LifecycleEngine:
    return request.app.state.engine


def get_synchronizer(request: Request) -> LiveViewSynchronizer:
    return request.app.state.synchronizer


def get_enhancer(request: Request):
    return getattr(request.app.state, "enhancer", None)


def _present(engine: LifecycleEngine, caller: Caller, inquiry) -> Dict[str, Any]:
    return queries.present(caller, inquiry, window=engine.quote_window, now=engine.now())


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

# Field checks live in quoteflow.validation so every rejection carries
# the same error codes; these models only shape the request body.

class CreateInquiryInput(BaseModel):
    """Input for creating an inquiry."""
    event_type: str = ""
    event_date: Optional[str] = None
    description: str = ""
    location: str = ""
    contact_name: str = ""
    contact_email: str = ""
    contact_phone: str = ""
    expected_guests: Optional[Any] = None


class QuoteInput(BaseModel):
    """Input for submitting a quote."""
    amount: Any = None
    currency: str = ""
    message: str = ""
    organizer_name: Optional[str] = None


class RespondInput(BaseModel):
    """Client decision on a quote: 'accept' or 'decline'."""
    decision: str


class CancelInput(BaseModel):
    reason: Optional[str] = None


class EnhanceInput(BaseModel):
    """Description plus whatever event details the client already filled in."""
    description: str = ""
    event_type: str = ""
    event_date: str = ""
    location: str = ""
    expected_guests: str = ""


# =============================================================================
# SERVER-SENT EVENTS
# =============================================================================

def encode_sse(event: str, data: Dict[str, Any]) -> str:
    """Format one server-sent event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def live_events(
    subscription: Subscription,
    caller: Caller,
    engine: LifecycleEngine,
    heartbeat: float,
    is_disconnected: Callable[[], Awaitable[bool]],
) -> AsyncIterator[str]:
    """
    Stream ``subscription`` as SSE until the viewer leaves.

    The subscription is always released on exit, including when the
    response is torn down mid-stream.
    """
    async with subscription:
        while True:
            if await is_disconnected():
                break

            try:
                update: LiveUpdate = await subscription.next(timeout=heartbeat)
            except asyncio.TimeoutError:
                yield encode_sse("heartbeat", {"type": "heartbeat"})
                continue
            except StopAsyncIteration:
                break
            except TransportError as e:
                yield encode_sse("error", e.to_dict())
                break

            yield encode_sse(update.kind, {
                "kind": update.kind,
                "inquiries": [_present(engine, caller, i) for i in update.inquiries],
            })

    logger.debug(f"Stream {subscription.id} closed for {caller.user_id}")


def _stream_response(
    request: Request,
    subscription: Subscription,
    caller: Caller,
    engine: LifecycleEngine,
) -> StreamingResponse:
    heartbeat = request.app.state.settings.sse_heartbeat_seconds
    return StreamingResponse(
        live_events(subscription, caller, engine, heartbeat, request.is_disconnected),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("/inquiries", status_code=201)
async def create_inquiry(
    input: CreateInquiryInput,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Create a new inquiry."""
    try:
        inquiry = await engine.create_inquiry(
            caller,
            event_type=input.event_type,
            event_date=input.event_date,
            description=input.description,
            location=input.location,
            contact_name=input.contact_name,
            contact_email=input.contact_email,
            contact_phone=input.contact_phone,
            expected_guests=input.expected_guests,
        )
    except LifecycleError as e:
        raise _http_error(e)

    return _present(engine, caller, inquiry)


@router.get("/inquiries")
async def list_inquiries(
    tab: str = "all",
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine)
):
    """
    List inquiries visible to the caller, newest first.

    ``tab`` narrows to new / quoted / accepted; counts cover every tab.
    """
    if tab not in queries.TABS:
        raise _http_error(ValidationError(f"Unknown tab '{tab}'", field="tab"))

    try:
        inquiries = await queries.list_visible(engine.store, caller)
    except LifecycleError as e:
        raise _http_error(e)

    tabs = queries.partition_tabs(inquiries)
    return {
        "tab": tab,
        "inquiries": [_present(engine, caller, i) for i in tabs[tab]],
        "counts": {name: len(items) for name, items in tabs.items()},
    }


@router.get("/inquiries/stream")
async def stream_inquiries(
    request: Request,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine),
    synchronizer: LiveViewSynchronizer = Depends(get_synchronizer)
):
    """SSE feed of the caller's visible collection."""
    try:
        subscription = await queries.watch(synchronizer, caller)
    except LifecycleError as e:
        raise _http_error(e)

    return _stream_response(request, subscription, caller, engine)


@router.post("/inquiries/enhance-description")
async def enhance_description(
    input: EnhanceInput,
    caller: Caller = Depends(get_current_caller),
    enhancer=Depends(get_enhancer)
):
    """Suggest a clearer description. Falls back to the original text."""
    try:
        result = await refine_description(
            enhancer,
            input.description,
            event_type=input.event_type,
            event_date=input.event_date,
            location=input.location,
            expected_guests=input.expected_guests,
        )
    except LifecycleError as e:
        raise _http_error(e)

    return result.to_dict()


@router.get("/inquiries/{inquiry_id}")
async def get_inquiry(
    inquiry_id: str,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Get inquiry detail."""
    try:
        inquiry = await queries.get_visible(engine.store, caller, inquiry_id)
    except LifecycleError as e:
        raise _http_error(e)

    return _present(engine, caller, inquiry)


@router.get("/inquiries/{inquiry_id}/stream")
async def stream_inquiry(
    inquiry_id: str,
    request: Request,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine),
    synchronizer: LiveViewSynchronizer = Depends(get_synchronizer)
):
    """SSE feed of one inquiry."""
    try:
        subscription = await queries.watch(synchronizer, caller, inquiry_id)
    except LifecycleError as e:
        raise _http_error(e)

    return _stream_response(request, subscription, caller, engine)


@router.post("/inquiries/{inquiry_id}/quote")
async def submit_quote(
    inquiry_id: str,
    input: QuoteInput,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Attach the calling organizer's quote."""
    try:
        inquiry = await engine.submit_quote(
            caller,
            inquiry_id,
            amount=input.amount,
            currency=input.currency,
            message=input.message,
            organizer_name=input.organizer_name,
        )
    except LifecycleError as e:
        raise _http_error(e)

    return _present(engine, caller, inquiry)


@router.post("/inquiries/{inquiry_id}/respond")
async def respond_to_quote(
    inquiry_id: str,
    input: RespondInput,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Accept or decline the quote."""
    try:
        inquiry = await engine.respond_to_quote(caller, inquiry_id, input.decision)
    except LifecycleError as e:
        raise _http_error(e)

    return _present(engine, caller, inquiry)


@router.post("/inquiries/{inquiry_id}/cancel")
async def cancel_inquiry(
    inquiry_id: str,
    input: Optional[CancelInput] = None,
    caller: Caller = Depends(get_current_caller),
    engine: LifecycleEngine = Depends(get_engine)
):
    """Cancel a new or quoted inquiry."""
    reason = input.reason if input else None
    try:
        inquiry = await engine.cancel_inquiry(caller, inquiry_id, reason=reason)
    except LifecycleError as e:
        raise _http_error(e)

    return _present(engine, caller, inquiry)
