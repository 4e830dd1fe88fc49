"""
Test: Inquiry API
=================

HTTP surface over the lifecycle engine: auth, status codes, error codes
and the SSE event stream.
"""

import json

import pytest

from api.inquiry import _http_error, encode_sse, live_events
from middleware.jwt_session import caller_from_claims, create_access_token, decode_access_token
from quoteflow import (
    AuthorizationError,
    Caller,
    InquiryFilter,
    InquiryNotFoundError,
    InvalidTransitionError,
    LifecycleEngine,
    LiveViewSynchronizer,
    MemoryInquiryStore,
    QuoteWindowClosedError,
    Role,
    StaleStateError,
    TransportError,
    ValidationError,
)


def parse_sse(chunk: str):
    event_line, data_line = chunk.strip().split("\n")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])


async def never_disconnected():
    return False


class TestHealth:

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/api/health").json()["status"] == "ok"


class TestAuthentication:

    def test_missing_token(self, client):
        response = client.get("/api/inquiries")
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "not_authenticated"

    def test_garbage_token(self, client):
        response = client.get("/api/inquiries", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, client, alice):
        token = create_access_token(alice, expire_minutes=-5)
        response = client.get("/api/inquiries", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_role_claim(self, olly):
        claims = decode_access_token(create_access_token(olly))
        assert caller_from_claims(claims) == olly
        assert caller_from_claims({"sub": 7}) == Caller("7", Role.CLIENT)

    def test_unknown_role_rejected(self):
        with pytest.raises(ValueError):
            caller_from_claims({"sub": "x", "role": "superuser"})

    def test_cookie_token(self, client, alice):
        client.cookies.set("access_token", create_access_token(alice))
        response = client.get("/api/inquiries")
        client.cookies.clear()

        assert response.status_code == 200
        assert response.json()["inquiries"] == []


class TestCreate:

    def test_client_creates(self, client, auth, alice, inquiry_body):
        response = client.post("/api/inquiries", json=inquiry_body, headers=auth(alice))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "new"
        assert data["client_id"] == "client_alice"
        assert data["expected_guests"] == 45
        assert data["quotable"] is True

    def test_organizer_cannot_create(self, client, auth, olly, inquiry_body):
        response = client.post("/api/inquiries", json=inquiry_body, headers=auth(olly))

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "not_authorized"

    def test_validation_error(self, client, auth, alice, inquiry_body):
        inquiry_body["event_date"] = "2001-01-01"

        response = client.post("/api/inquiries", json=inquiry_body, headers=auth(alice))

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["code"] == "validation_error"
        assert detail["field"] == "event_date"


class TestLifecycle:

    def _create(self, client, auth, caller, body):
        response = client.post("/api/inquiries", json=body, headers=auth(caller))
        assert response.status_code == 201
        return response.json()["id"]

    def test_quote_and_accept(self, client, auth, alice, olly, inquiry_body):
        inquiry_id = self._create(client, auth, alice, inquiry_body)

        quoted = client.post(
            f"/api/inquiries/{inquiry_id}/quote",
            json={"amount": "2400.5", "currency": "GBP", "message": "Wine included"},
            headers=auth(olly),
        )
        assert quoted.status_code == 200
        assert quoted.json()["quote"]["amount"] == "2400.50"
        assert quoted.json()["contact_email"] is None

        accepted = client.post(
            f"/api/inquiries/{inquiry_id}/respond", json={"decision": "accept"}, headers=auth(alice)
        )
        assert accepted.status_code == 200
        assert accepted.json()["status"] == "accepted"

        detail = client.get(f"/api/inquiries/{inquiry_id}", headers=auth(olly)).json()
        assert detail["contact_email"] == "alice@example.com"

    def test_second_quote_conflicts(self, client, auth, alice, olly, pat, inquiry_body):
        inquiry_id = self._create(client, auth, alice, inquiry_body)
        body = {"amount": 100, "currency": "USD"}
        client.post(f"/api/inquiries/{inquiry_id}/quote", json=body, headers=auth(olly))

        response = client.post(f"/api/inquiries/{inquiry_id}/quote", json=body, headers=auth(pat))

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_transition"
        assert response.json()["detail"]["current_status"] == "quoted"

    def test_bad_amount(self, client, auth, alice, olly, inquiry_body):
        inquiry_id = self._create(client, auth, alice, inquiry_body)

        response = client.post(
            f"/api/inquiries/{inquiry_id}/quote",
            json={"amount": "-20", "currency": "GBP"},
            headers=auth(olly),
        )

        assert response.status_code == 422
        assert response.json()["detail"]["field"] == "amount"

    def test_respond_twice(self, client, auth, alice, olly, inquiry_body):
        inquiry_id = self._create(client, auth, alice, inquiry_body)
        client.post(f"/api/inquiries/{inquiry_id}/quote",
                    json={"amount": 10, "currency": "EUR"}, headers=auth(olly))
        client.post(f"/api/inquiries/{inquiry_id}/respond",
                    json={"decision": "decline"}, headers=auth(alice))

        response = client.post(f"/api/inquiries/{inquiry_id}/respond",
                               json={"decision": "accept"}, headers=auth(alice))

        assert response.status_code == 409
        assert response.json()["detail"]["current_status"] == "declined"

    def test_cancel_without_body(self, client, auth, alice, inquiry_body):
        inquiry_id = self._create(client, auth, alice, inquiry_body)

        response = client.post(f"/api/inquiries/{inquiry_id}/cancel", headers=auth(alice))

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_cancel_with_reason(self, client, auth, alice, admin, inquiry_body):
        inquiry_id = self._create(client, auth, alice, inquiry_body)

        response = client.post(f"/api/inquiries/{inquiry_id}/cancel",
                               json={"reason": "Duplicate"}, headers=auth(admin))

        assert response.json()["cancel_reason"] == "Duplicate"


class TestReads:

    def test_list_with_tabs(self, client, auth, alice, bob, olly, inquiry_body):
        first = client.post("/api/inquiries", json=inquiry_body, headers=auth(alice)).json()
        client.post("/api/inquiries", json=inquiry_body, headers=auth(bob))
        client.post(f"/api/inquiries/{first['id']}/quote",
                    json={"amount": 50, "currency": "GBP"}, headers=auth(olly))

        data = client.get("/api/inquiries", params={"tab": "new"}, headers=auth(olly)).json()

        assert data["counts"] == {"new": 1, "quoted": 1, "accepted": 0, "all": 2}
        assert len(data["inquiries"]) == 1
        assert data["inquiries"][0]["contact_name"] is None

        own = client.get("/api/inquiries", headers=auth(bob)).json()
        assert [i["client_id"] for i in own["inquiries"]] == ["client_bob"]

    def test_unknown_tab(self, client, auth, olly):
        response = client.get("/api/inquiries", params={"tab": "archived"}, headers=auth(olly))
        assert response.status_code == 422

    def test_other_clients_inquiry_forbidden(self, client, auth, alice, bob, inquiry_body):
        inquiry_id = client.post("/api/inquiries", json=inquiry_body, headers=auth(alice)).json()["id"]

        assert client.get(f"/api/inquiries/{inquiry_id}", headers=auth(bob)).status_code == 403
        assert client.get(f"/api/inquiries/{inquiry_id}/stream", headers=auth(bob)).status_code == 403

    def test_missing_inquiry(self, client, auth, alice):
        response = client.get("/api/inquiries/inq_missing", headers=auth(alice))
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

        assert client.get("/api/inquiries/inq_missing/stream", headers=auth(alice)).status_code == 404

    def test_stream_refused_after_feed_lost(self, app, client, auth, olly):
        app.state.synchronizer.fail(TransportError("listener stopped"), permanent=True)

        response = client.get("/api/inquiries/stream", headers=auth(olly))

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "transport_error"


class TestEnhance:

    def test_enhance(self, client, auth, alice):
        response = client.post(
            "/api/inquiries/enhance-description",
            json={"description": "dinner 40 ppl", "event_type": "Dinner"},
            headers=auth(alice),
        )

        assert response.json() == {"text": "Polished: dinner 40 ppl", "enhanced": True, "error": None}

    def test_blank_description(self, client, auth, alice):
        response = client.post("/api/inquiries/enhance-description",
                               json={"description": ""}, headers=auth(alice))
        assert response.status_code == 422


class TestErrorMapping:

    @pytest.mark.parametrize("error,status,code", [
        (ValidationError("bad", field="amount"), 422, "validation_error"),
        (InvalidTransitionError("no"), 409, "invalid_transition"),
        (QuoteWindowClosedError("late"), 409, "quote_window_closed"),
        (StaleStateError("lost race"), 409, "stale_state"),
        (AuthorizationError("nope"), 403, "not_authorized"),
        (InquiryNotFoundError("gone"), 404, "not_found"),
        (TransportError("down"), 503, "transport_error"),
    ])
    def test_status_codes(self, error, status, code):
        http_error = _http_error(error)
        assert http_error.status_code == status
        assert http_error.detail["code"] == code


class TestLiveEvents:

    @pytest.fixture
    def engine(self):
        store = MemoryInquiryStore()
        return LifecycleEngine(store, publisher=LiveViewSynchronizer(store))

    def test_encode_sse(self):
        assert encode_sse("heartbeat", {"type": "heartbeat"}) == \
            'event: heartbeat\ndata: {"type": "heartbeat"}\n\n'

    @pytest.mark.asyncio
    async def test_snapshot_then_changes(self, engine, alice, olly, inquiry_body):
        synchronizer = engine.publisher
        subscription = await synchronizer.subscribe(InquiryFilter())
        events = live_events(subscription, olly, engine, 5.0, never_disconnected)

        kind, data = parse_sse(await events.__anext__())
        assert kind == "snapshot"
        assert data["inquiries"] == []

        await engine.create_inquiry(alice, **inquiry_body)

        kind, data = parse_sse(await events.__anext__())
        assert kind == "added"
        assert data["inquiries"][0]["contact_email"] is None

        await events.aclose()
        assert synchronizer.subscription_count == 0

    @pytest.mark.asyncio
    async def test_heartbeat(self, engine, olly):
        subscription = await engine.publisher.subscribe(InquiryFilter())
        events = live_events(subscription, olly, engine, 0.01, never_disconnected)

        await events.__anext__()
        kind, _ = parse_sse(await events.__anext__())
        assert kind == "heartbeat"
        await events.aclose()

    @pytest.mark.asyncio
    async def test_transport_failure_ends_stream(self, engine, olly):
        synchronizer = engine.publisher
        subscription = await synchronizer.subscribe(InquiryFilter())
        events = live_events(subscription, olly, engine, 5.0, never_disconnected)
        await events.__anext__()

        synchronizer.fail(TransportError("redis down"))

        kind, data = parse_sse(await events.__anext__())
        assert kind == "error"
        assert data["code"] == "transport_error"
        with pytest.raises(StopAsyncIteration):
            await events.__anext__()

    @pytest.mark.asyncio
    async def test_disconnect_releases_subscription(self, engine, olly):
        synchronizer = engine.publisher
        subscription = await synchronizer.subscribe(InquiryFilter())

        async def gone():
            return True

        chunks = [chunk async for chunk in live_events(subscription, olly, engine, 5.0, gone)]

        assert chunks == []
        assert synchronizer.subscription_count == 0
