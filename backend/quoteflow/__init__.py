"""
Quoteflow
=========

Inquiry–quote lifecycle core: a client submits an event inquiry, one
organizer attaches a priced quote, the client accepts or declines.

    LifecycleEngine        → the only write path (conditional applies)
    LiveViewSynchronizer   → pushes committed writes to subscribed viewers
    queries                → role-scoped reads (client: own, organizer: all)
    InquiryStore           → storage contract (MemoryInquiryStore in-process)

Storage-agnostic: the PostgreSQL store and the redis change feed live in
``repositories`` and ``services``.
"""

from .types import (
    SERVER_TIMESTAMP,
    TERMINAL_STATUSES,
    TRANSITIONS,
    Caller,
    Decision,
    Inquiry,
    InquiryStatus,
    Quote,
    Role,
    can_transition,
)
from .errors import (
    AuthorizationError,
    InquiryNotFoundError,
    InvalidTransitionError,
    LifecycleError,
    QuoteWindowClosedError,
    StaleStateError,
    TransportError,
    ValidationError,
)
from .store import InquiryStore, MemoryInquiryStore, utcnow
from .sync import (
    ChangePublisher,
    InquiryFilter,
    LiveUpdate,
    LiveViewSynchronizer,
    Subscription,
)
from .engine import DEFAULT_QUOTE_WINDOW, LifecycleEngine
from .enhancement import DescriptionEnhancer, EnhancementResult, refine_description
from . import queries

__all__ = [
    # Types
    'Caller',
    'Decision',
    'Inquiry',
    'InquiryStatus',
    'Quote',
    'Role',
    'SERVER_TIMESTAMP',
    'TERMINAL_STATUSES',
    'TRANSITIONS',
    'can_transition',

    # Errors
    'AuthorizationError',
    'InquiryNotFoundError',
    'InvalidTransitionError',
    'LifecycleError',
    'QuoteWindowClosedError',
    'StaleStateError',
    'TransportError',
    'ValidationError',

    # Store
    'InquiryStore',
    'MemoryInquiryStore',
    'utcnow',

    # Live views
    'ChangePublisher',
    'InquiryFilter',
    'LiveUpdate',
    'LiveViewSynchronizer',
    'Subscription',

    # Engine
    'DEFAULT_QUOTE_WINDOW',
    'LifecycleEngine',

    # Enhancement
    'DescriptionEnhancer',
    'EnhancementResult',
    'refine_description',

    'queries',
]
