"""
Test: Role-Scoped Queries
=========================
"""

import pytest

from quoteflow import (
    AuthorizationError,
    Caller,
    InquiryNotFoundError,
    InquiryStatus,
    Role,
    queries,
)
from quoteflow.sync import SNAPSHOT


class TestScope:

    def test_client_scope_is_own(self, alice):
        assert queries.scope_for(alice).client_id == "client_alice"

    def test_organizer_and_admin_see_all(self, olly, admin):
        assert queries.scope_for(olly).client_id is None
        assert queries.scope_for(admin).client_id is None

    def test_anonymous_rejected(self):
        with pytest.raises(AuthorizationError):
            queries.scope_for(None)
        with pytest.raises(AuthorizationError):
            queries.scope_for(Caller("", Role.ORGANIZER))


class TestListVisible:

    @pytest.mark.asyncio
    async def test_client_sees_only_own_newest_first(self, engine, store, clock, alice, bob, inquiry_fields):
        first = await engine.create_inquiry(alice, **inquiry_fields)
        clock.advance(minutes=5)
        await engine.create_inquiry(bob, **inquiry_fields)
        clock.advance(minutes=5)
        second = await engine.create_inquiry(alice, **inquiry_fields)

        visible = await queries.list_visible(store, alice)
        assert [i.id for i in visible] == [second.id, first.id]

    @pytest.mark.asyncio
    async def test_organizer_sees_everything(self, engine, store, clock, alice, bob, olly, inquiry_fields):
        a = await engine.create_inquiry(alice, **inquiry_fields)
        clock.advance(minutes=1)
        b = await engine.create_inquiry(bob, **inquiry_fields)

        visible = await queries.list_visible(store, olly)
        assert [i.id for i in visible] == [b.id, a.id]

    @pytest.mark.asyncio
    async def test_list_does_not_change_anything(self, store, new_inquiry, olly):
        await queries.list_visible(store, olly)
        await queries.list_visible(store, olly)
        assert await store.get(new_inquiry.id) == new_inquiry


class TestGetVisible:

    @pytest.mark.asyncio
    async def test_owner_and_organizer_can_read(self, store, new_inquiry, alice, olly):
        assert (await queries.get_visible(store, alice, new_inquiry.id)).id == new_inquiry.id
        assert (await queries.get_visible(store, olly, new_inquiry.id)).id == new_inquiry.id

    @pytest.mark.asyncio
    async def test_other_client_rejected(self, store, new_inquiry, bob):
        with pytest.raises(AuthorizationError):
            await queries.get_visible(store, bob, new_inquiry.id)

    @pytest.mark.asyncio
    async def test_missing(self, store, alice):
        with pytest.raises(InquiryNotFoundError):
            await queries.get_visible(store, alice, "inq_missing")


class TestWatch:

    @pytest.mark.asyncio
    async def test_client_collection(self, engine, synchronizer, new_inquiry, bob, inquiry_fields):
        await engine.create_inquiry(bob, **inquiry_fields)

        sub = await queries.watch(synchronizer, bob)
        snapshot = await sub.next()
        assert snapshot.kind == SNAPSHOT
        assert [i.client_id for i in snapshot.inquiries] == ["client_bob"]

    @pytest.mark.asyncio
    async def test_point_watch_checks_ownership(self, synchronizer, new_inquiry, bob):
        with pytest.raises(AuthorizationError):
            await queries.watch(synchronizer, bob, new_inquiry.id)
        assert synchronizer.subscription_count == 0

    @pytest.mark.asyncio
    async def test_point_watch_missing(self, synchronizer, olly):
        with pytest.raises(InquiryNotFoundError):
            await queries.watch(synchronizer, olly, "inq_missing")

    @pytest.mark.asyncio
    async def test_organizer_point_watch(self, synchronizer, new_inquiry, olly):
        async with await queries.watch(synchronizer, olly, new_inquiry.id) as sub:
            assert (await sub.next()).inquiry.id == new_inquiry.id
        assert synchronizer.subscription_count == 0


class TestTabs:

    @pytest.mark.asyncio
    async def test_partition(self, engine, store, clock, alice, olly, inquiry_fields):
        fresh = await engine.create_inquiry(alice, **inquiry_fields)
        clock.advance(minutes=1)
        quoted = await engine.create_inquiry(alice, **inquiry_fields)
        await engine.submit_quote(olly, quoted.id, "100", "GBP")
        clock.advance(minutes=1)
        accepted = await engine.create_inquiry(alice, **inquiry_fields)
        await engine.submit_quote(olly, accepted.id, "200", "GBP")
        await engine.respond_to_quote(alice, accepted.id, "accept")
        clock.advance(minutes=1)
        declined = await engine.create_inquiry(alice, **inquiry_fields)
        await engine.submit_quote(olly, declined.id, "300", "GBP")
        await engine.respond_to_quote(alice, declined.id, "decline")

        tabs = queries.partition_tabs(await queries.list_visible(store, olly))

        assert set(tabs) == set(queries.TABS)
        assert [i.id for i in tabs["new"]] == [fresh.id]
        assert [i.id for i in tabs["quoted"]] == [quoted.id]
        assert [i.id for i in tabs["accepted"]] == [accepted.id]
        assert [i.id for i in tabs["all"]] == [declined.id, accepted.id, quoted.id, fresh.id]


class TestPresent:

    @pytest.mark.asyncio
    async def test_contact_hidden_from_organizers_before_acceptance(self, quoted_inquiry, olly, pat):
        for organizer in (olly, pat):
            data = queries.present(organizer, quoted_inquiry)
            for name in queries.CONTACT_FIELDS:
                assert data[name] is None
            assert data["event_type"] == "Wedding"

    @pytest.mark.asyncio
    async def test_contact_revealed_to_accepted_organizer(self, engine, quoted_inquiry, alice, olly, pat):
        accepted = await engine.respond_to_quote(alice, quoted_inquiry.id, "accept")

        assert queries.present(olly, accepted)["contact_email"] == "alice@example.com"
        assert queries.present(pat, accepted)["contact_email"] is None

    @pytest.mark.asyncio
    async def test_owner_and_admin_see_contact(self, new_inquiry, alice, admin):
        assert queries.present(alice, new_inquiry)["contact_phone"] == "+44 7700 900123"
        assert queries.present(admin, new_inquiry)["contact_name"] == "Alice Client"

    @pytest.mark.asyncio
    async def test_quote_window_fields(self, engine, clock, new_inquiry, olly):
        data = queries.present(olly, new_inquiry, window=engine.quote_window, now=clock())
        assert data["quote_window_seconds"] == 24 * 3600
        assert data["quotable"] is True

        clock.advance(hours=25)
        data = queries.present(olly, new_inquiry, window=engine.quote_window, now=clock())
        assert data["quote_window_seconds"] == 0
        assert data["quotable"] is False

    @pytest.mark.asyncio
    async def test_quoted_is_not_quotable(self, engine, clock, quoted_inquiry, olly):
        data = queries.present(olly, quoted_inquiry, window=engine.quote_window, now=clock())
        assert data["quotable"] is False
        assert data["status"] == InquiryStatus.QUOTED.value

    @pytest.mark.asyncio
    async def test_unlimited_window(self, clock, new_inquiry, olly):
        data = queries.present(olly, new_inquiry, window=None, now=clock())
        assert data["quote_window_seconds"] is None
        assert data["quotable"] is True

    @pytest.mark.asyncio
    async def test_without_now_no_window_fields(self, new_inquiry, alice):
        assert "quotable" not in queries.present(alice, new_inquiry)
