# tests/test_auth.py
import asyncio

import pytest

from giftshop.auth import MemoryIdentity, SessionContext, bootstrap_admin, ensure_profile
from giftshop.database import MemoryDatabase
from giftshop.errors import AuthorizationError


def test_first_session_creates_customer_profile_from_metadata():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity()
        result = await identity.sign_up("ram@shop.test", "secret123", {"full_name": "Ram", "phone": "9800000000"})
        ctx = SessionContext(identity, db)
        await ctx.initialize(result.session.access_token)
        return db, ctx

    db, ctx = asyncio.run(scenario())
    assert ctx.loading is False
    assert ctx.profile.full_name == "Ram"
    assert ctx.profile.phone == "9800000000"
    assert ctx.role == "customer"
    assert ctx.is_admin is False
    assert len(db.tables["profiles"]) == 1


def test_existing_profile_keeps_its_role():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity()
        result = await identity.sign_up("hari@shop.test", "secret123", {"full_name": "Hari"})
        await db.insert("profiles", {"id": result.user.id, "full_name": "Hari", "role": "staff"})
        profile = await ensure_profile(db, result.user)
        return profile

    assert asyncio.run(scenario()).role == "staff"


def test_sign_up_may_need_email_confirmation():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity(require_email_confirmation=True)
        ctx = SessionContext(identity, db)
        await ctx.initialize()
        result = await ctx.sign_up("gita@shop.test", "secret123", "Gita")
        assert result.needs_email_confirmation is True
        assert ctx.session is None
        with pytest.raises(AuthorizationError):
            await ctx.sign_in("gita@shop.test", "secret123")
        identity.confirm_email("gita@shop.test")
        await ctx.sign_in("gita@shop.test", "secret123")
        return ctx

    ctx = asyncio.run(scenario())
    assert ctx.profile.full_name == "Gita"


def test_sign_out_tears_down_context():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity()
        await identity.sign_up("asha@shop.test", "secret123", {"full_name": "Asha"})
        ctx = SessionContext(identity, db)
        await ctx.initialize()
        session = await ctx.sign_in("asha@shop.test", "secret123")
        assert ctx.profile is not None
        await ctx.sign_out()
        still_valid = await identity.get_session(session.access_token)
        return ctx, still_valid, identity

    ctx, still_valid, identity = asyncio.run(scenario())
    assert ctx.session is None and ctx.profile is None
    assert still_valid is None
    assert identity._listeners == []


def test_identity_notifications_refresh_matching_context_only():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity()
        first = await identity.sign_up("a@shop.test", "secret123", {"full_name": "A"})
        ctx = SessionContext(identity, db)
        await ctx.initialize(first.session.access_token)
        # someone else signing in leaves this context alone
        await identity.sign_up("b@shop.test", "secret123", {"full_name": "B"})
        assert ctx.user.email == "a@shop.test"
        # the same user signing out elsewhere with another token does not end this session
        other = await identity.sign_in_with_password("a@shop.test", "secret123")
        await identity.sign_out(other.access_token)
        assert ctx.session is not None
        await identity.sign_out(first.session.access_token)
        return ctx

    ctx = asyncio.run(scenario())
    assert ctx.session is None


def test_require_role():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity()
        anonymous = SessionContext(identity, db)
        await anonymous.initialize()
        with pytest.raises(AuthorizationError) as exc:
            anonymous.require_role("admin")
        assert exc.value.status_code == 401
        assert exc.value.headers["Location"] == "/login"

        admin = await bootstrap_admin(identity, db, "owner@shop.test", "secret123")
        assert admin.role == "admin"
        ctx = SessionContext(identity, db)
        session = await identity.sign_in_with_password("owner@shop.test", "secret123")
        await ctx.initialize(session.access_token)
        assert ctx.require_role("admin", "staff").id == admin.id
        # running the bootstrap again changes nothing
        again = await bootstrap_admin(identity, db, "owner@shop.test", "secret123")
        assert again.id == admin.id and len(db.tables["profiles"]) == 1

    asyncio.run(scenario())


def test_user_update_notification_refreshes_session():
    async def scenario():
        db, identity = MemoryDatabase(), MemoryIdentity()
        result = await identity.sign_up("mina@shop.test", "secret123", {"full_name": "Mina"})
        ctx = SessionContext(identity, db)
        await ctx.initialize(result.session.access_token)
        await identity.update_user(result.session.access_token, {"phone": "9811111111"})
        return ctx

    ctx = asyncio.run(scenario())
    assert ctx.user.user_metadata["phone"] == "9811111111"
    assert ctx.loading is False
