"""
Session store tests — the in-memory backend and the Redis backend (against a
minimal dict-backed stand-in for the redis client commands it uses).
"""

import pytest

from socialproof.session_store import (
    InMemorySessionStore,
    RedisSessionStore,
    SessionStatus,
    StoredProof,
    VerificationSession,
    build_store,
)


class _DictRedis:
    """Implements just hset/hget/hgetall/hlen/rpush/lrange with redis semantics."""

    def __init__(self):
        self.hashes = {}
        self.lists  = {}

    def hset(self, key, field, value):
        h = self.hashes.setdefault(key, {})
        is_new = field not in h
        h[field] = value
        return 1 if is_new else 0

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hlen(self, key):
        return len(self.hashes.get(key, {}))

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)
        return len(self.lists[key])

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]


def _session(session_id, provider="github", created_at=1, status=SessionStatus.PENDING):
    return VerificationSession(
        session_id=session_id, provider=provider, status=status,
        wallet_address="0xabc", created_at=created_at,
    )


@pytest.fixture(params=["memory", "redis"])
def store(request):
    if request.param == "memory":
        return InMemorySessionStore()
    return RedisSessionStore(_DictRedis(), namespace="test")


class TestSessionStore:

    def test_put_and_get_session(self, store):
        store.put_session(_session("github-1"))
        got = store.get_session("github-1")
        assert got.provider == "github"
        assert got.status == SessionStatus.PENDING
        assert store.get_session("missing") is None

    def test_sessions_keep_insertion_order(self, store):
        for sid, created in [("github-3", 3), ("gmail-1", 1), ("github-2", 2)]:
            store.put_session(_session(sid, provider=sid.split("-")[0], created_at=created))
        assert [s.session_id for s in store.sessions()] == ["github-3", "gmail-1", "github-2"]
        assert [s.session_id for s in store.sessions_for_provider("github")] == ["github-3", "github-2"]

    def test_update_keeps_position_and_count(self, store):
        store.put_session(_session("github-1"))
        store.put_session(_session("github-2"))
        updated = store.get_session("github-1")
        updated.status = SessionStatus.VERIFIED
        store.put_session(updated)
        assert store.session_count() == 2
        assert [s.session_id for s in store.sessions()] == ["github-1", "github-2"]
        assert store.get_session("github-1").status == SessionStatus.VERIFIED

    def test_proofs(self, store):
        proof = StoredProof(provider="github", proof={"identifier": "0x1"}, timestamp=5)
        store.put_proof("github-5", proof)
        assert store.get_proof("github-5") == proof
        assert store.get_proof("nope") is None
        assert store.proof_count() == 1
        assert store.proofs() == {"github-5": proof}


class TestSessionSerialisation:

    def test_round_trip_through_dict(self):
        session = _session("github-9", status=SessionStatus.VERIFIED)
        session.proof, session.proof_key, session.verified_at = {"a": 1}, "github-10", 10
        assert VerificationSession.from_dict(session.to_dict()) == session


class TestBuildStore:

    def test_memory_default(self):
        assert isinstance(build_store("memory", "redis://unused"), InMemorySessionStore)

    def test_unknown_backend_falls_back_to_memory(self):
        assert isinstance(build_store("sqlite", "redis://unused"), InMemorySessionStore)
