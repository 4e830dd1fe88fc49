"""
Inquiry Repository - PostgreSQL storage for inquiries and their quotes

One row per inquiry; the embedded quote is stored in the quote_* columns
of the same row (there is no separate quote table).

Every status change goes through update_if(), a single
UPDATE ... WHERE <guards> RETURNING * statement, so the guard check and
the write are one atomic operation in the database.
"""
import logging
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import asyncpg

from quoteflow.errors import TransportError
from quoteflow.store import InquiryStore
from quoteflow.types import SERVER_TIMESTAMP, Inquiry, InquiryStatus, Quote

logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS inquiries (
    id                   TEXT PRIMARY KEY,
    client_id            TEXT NOT NULL,
    event_type           TEXT NOT NULL,
    event_date           DATE NOT NULL,
    description          TEXT NOT NULL,
    location             TEXT NOT NULL DEFAULT '',
    contact_name         TEXT NOT NULL DEFAULT '',
    contact_email        TEXT NOT NULL DEFAULT '',
    contact_phone        TEXT NOT NULL DEFAULT '',
    expected_guests      INTEGER CHECK (expected_guests >= 0),
    status               TEXT NOT NULL DEFAULT 'new'
                         CHECK (status IN ('new', 'quoted', 'accepted', 'declined', 'cancelled')),
    organizer_id         TEXT,
    quote_organizer_id   TEXT,
    quote_organizer_name TEXT,
    quote_amount         NUMERIC(12, 2) CHECK (quote_amount > 0),
    quote_currency       CHAR(3),
    quote_message        TEXT,
    quote_submitted_at   TIMESTAMPTZ,
    created_at           TIMESTAMPTZ NOT NULL,
    updated_at           TIMESTAMPTZ NOT NULL,
    responded_at         TIMESTAMPTZ,
    cancelled_at         TIMESTAMPTZ,
    cancel_reason        TEXT
);

CREATE INDEX IF NOT EXISTS idx_inquiries_client_created
    ON inquiries (client_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_inquiries_created
    ON inquiries (created_at DESC);
"""

# Inquiry fields that map 1:1 onto a column
_PLAIN_COLUMNS = {
    "client_id", "event_type", "event_date", "description", "location",
    "contact_name", "contact_email", "contact_phone", "expected_guests",
    "status", "organizer_id", "responded_at", "cancelled_at", "cancel_reason",
}

_QUOTE_COLUMNS = (
    "quote_organizer_id", "quote_organizer_name", "quote_amount",
    "quote_currency", "quote_message", "quote_submitted_at",
)

_TRANSPORT_ERRORS = (
    OSError,
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    asyncpg.CannotConnectNowError,
)


class _Params:
    """Collects positional query arguments ($1, $2, ...)."""

    def __init__(self, *initial: Any):
        self.values: List[Any] = list(initial)

    def bind(self, value: Any) -> str:
        if isinstance(value, Enum):
            value = value.value
        self.values.append(value)
        return f"${len(self.values)}"


class InquiryRepository(InquiryStore):
    """Repository for inquiry documents."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    @asynccontextmanager
    async def _connection(self):
        try:
            async with self.db_pool.acquire() as conn:
                yield conn
        except _TRANSPORT_ERRORS as e:
            raise TransportError(f"Inquiry store unavailable: {e}") from e

    async def ensure_schema(self) -> None:
        """Create the inquiries table and indexes if missing."""
        async with self._connection() as conn:
            await conn.execute(SCHEMA)
        logger.info("Inquiry schema ready")

    # =========================================================================
    # INQUIRY OPERATIONS
    # =========================================================================

    async def insert(self, inquiry: Inquiry) -> Inquiry:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                INSERT INTO inquiries (
                    id, client_id, event_type, event_date, description, location,
                    contact_name, contact_email, contact_phone, expected_guests,
                    status, created_at, updated_at
                )
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, now(), now())
                RETURNING *
            """,
                inquiry.id,
                inquiry.client_id,
                inquiry.event_type,
                inquiry.event_date,
                inquiry.description,
                inquiry.location,
                inquiry.contact_name,
                inquiry.contact_email,
                inquiry.contact_phone,
                inquiry.expected_guests,
                inquiry.status.value,
            )

        logger.info(f"Stored inquiry {inquiry.id}: {inquiry.event_type[:50]}")
        return self._row_to_inquiry(row)

    async def get(self, inquiry_id: str) -> Optional[Inquiry]:
        async with self._connection() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM inquiries WHERE id = $1
            """, inquiry_id)

        if not row:
            return None
        return self._row_to_inquiry(row)

    async def list(self, client_id: Optional[str] = None) -> List[Inquiry]:
        async with self._connection() as conn:
            if client_id is not None:
                rows = await conn.fetch("""
                    SELECT * FROM inquiries
                    WHERE client_id = $1
                    ORDER BY created_at DESC
                """, client_id)
            else:
                rows = await conn.fetch("""
                    SELECT * FROM inquiries
                    ORDER BY created_at DESC
                """)

        return [self._row_to_inquiry(row) for row in rows]

    async def update_if(
        self,
        inquiry_id: str,
        expected: Mapping[str, Any],
        changes: Mapping[str, Any],
    ) -> Optional[Inquiry]:
        params = _Params(inquiry_id)
        assignments = self._assignments(changes, params)
        assignments.append("updated_at = GREATEST(now(), updated_at + interval '1 microsecond')")
        guards = ["id = $1"] + self._guards(expected, params)

        query = (
            f"UPDATE inquiries SET {', '.join(assignments)} "
            f"WHERE {' AND '.join(guards)} RETURNING *"
        )
        async with self._connection() as conn:
            row = await conn.fetchrow(query, *params.values)

        if row is None:
            logger.debug(f"Conditional update of {inquiry_id} matched no row ({dict(expected)})")
            return None
        return self._row_to_inquiry(row)

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _assignments(self, changes: Mapping[str, Any], params: _Params) -> List[str]:
        sets = []
        for name, value in changes.items():
            if name == "quote":
                sets.extend(self._quote_assignments(value, params))
            elif name in _PLAIN_COLUMNS:
                sets.append(f"{name} = {self._value_sql(value, params)}")
            else:
                raise ValueError(f"Cannot update inquiry field '{name}'")
        return sets

    def _quote_assignments(self, quote: Optional[Quote], params: _Params) -> List[str]:
        if quote is None:
            return [f"{column} = NULL" for column in _QUOTE_COLUMNS]

        values = (
            quote.organizer_id,
            quote.organizer_name,
            quote.amount,
            quote.currency,
            quote.message,
            quote.submitted_at,
        )
        return [
            f"{column} = {self._value_sql(value, params)}"
            for column, value in zip(_QUOTE_COLUMNS, values)
        ]

    def _guards(self, expected: Mapping[str, Any], params: _Params) -> List[str]:
        guards = []
        for name, value in expected.items():
            if name not in _PLAIN_COLUMNS:
                raise ValueError(f"Cannot guard on inquiry field '{name}'")
            if value is None:
                guards.append(f"{name} IS NULL")
            else:
                guards.append(f"{name} = {params.bind(value)}")
        return guards

    @staticmethod
    def _value_sql(value: Any, params: _Params) -> str:
        if value is SERVER_TIMESTAMP:
            return "now()"
        return params.bind(value)

    def _row_to_inquiry(self, row: asyncpg.Record) -> Inquiry:
        """Convert database row to Inquiry."""
        quote = None
        if row["quote_organizer_id"] is not None:
            quote = Quote(
                organizer_id=row["quote_organizer_id"],
                organizer_name=row["quote_organizer_name"] or row["quote_organizer_id"],
                amount=row["quote_amount"],
                currency=row["quote_currency"].strip(),
                message=row["quote_message"] or "",
                submitted_at=row["quote_submitted_at"],
            )

        return Inquiry(
            id=row["id"],
            client_id=row["client_id"],
            event_type=row["event_type"],
            event_date=row["event_date"],
            description=row["description"],
            location=row["location"],
            contact_name=row["contact_name"],
            contact_email=row["contact_email"],
            contact_phone=row["contact_phone"],
            expected_guests=row["expected_guests"],
            status=InquiryStatus(row["status"]),
            organizer_id=row["organizer_id"],
            quote=quote,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            responded_at=row["responded_at"],
            cancelled_at=row["cancelled_at"],
            cancel_reason=row["cancel_reason"],
        )
