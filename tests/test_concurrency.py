# tests/test_concurrency.py
import asyncio

from giftshop.auth import AuthUser, MemoryIdentity, SessionContext, ensure_profile
from giftshop.database import MemoryDatabase


def test_concurrent_first_logins_create_one_profile():
    db = MemoryDatabase()
    user = AuthUser(id="u1", email="u1@shop.test", user_metadata={"full_name": "U One"})

    async def race():
        return await asyncio.gather(*[ensure_profile(db, user) for _ in range(10)])

    profiles = asyncio.run(race())
    assert len(db.tables["profiles"]) == 1
    assert {p.id for p in profiles} == {"u1"}
    assert all(p.role == "customer" for p in profiles)


def test_concurrent_contexts_for_same_token():
    async def race():
        db, identity = MemoryDatabase(), MemoryIdentity()
        result = await identity.sign_up("u2@shop.test", "secret123", {"full_name": "U Two"})
        contexts = [SessionContext(identity, db) for _ in range(5)]
        await asyncio.gather(*[ctx.initialize(result.session.access_token) for ctx in contexts])
        return db, contexts

    db, contexts = asyncio.run(race())
    assert len(db.tables["profiles"]) == 1
    assert all(ctx.profile.full_name == "U Two" for ctx in contexts)
