"""
SocialProofPass — verification session & proof store.

Two keyed collections: session id → VerificationSession and proof key →
StoredProof. The relay only talks to the `SessionStore` interface; the
in-memory backend keeps the process-lifetime behaviour, the Redis backend
survives restarts.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

logger = logging.getLogger("socialproof.store")


class SessionStatus(str, Enum):
    PENDING  = "pending"
    VERIFIED = "verified"
    FAILED   = "failed"


@dataclass
class VerificationSession:
    session_id:     str
    provider:       str
    status:         SessionStatus
    wallet_address: Optional[str]
    created_at:     int                      # unix ms
    proof:          Optional[Dict[str, Any]] = None
    proof_key:      Optional[str]            = None
    verified_at:    Optional[int]            = None

    def to_dict(self) -> dict:
        return {
            "id":         self.session_id,
            "provider":   self.provider,
            "status":     self.status.value,
            "address":    self.wallet_address,
            "createdAt":  self.created_at,
            "proof":      self.proof,
            "proofKey":   self.proof_key,
            "verifiedAt": self.verified_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "VerificationSession":
        return cls(
            session_id     = data["id"],
            provider       = data["provider"],
            status         = SessionStatus(data["status"]),
            wallet_address = data.get("address"),
            created_at     = int(data["createdAt"]),
            proof          = data.get("proof"),
            proof_key      = data.get("proofKey"),
            verified_at    = data.get("verifiedAt"),
        )


@dataclass(frozen=True)
class StoredProof:
    provider:  str
    proof:     Dict[str, Any]
    timestamp: int                           # unix ms
    status:    str = SessionStatus.VERIFIED.value

    def to_dict(self) -> dict:
        return asdict(self)


class SessionStore(ABC):

    @abstractmethod
    def put_session(self, session: VerificationSession) -> None: ...

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[VerificationSession]: ...

    @abstractmethod
    def sessions(self) -> Iterator[VerificationSession]:
        """All sessions in insertion order."""

    @abstractmethod
    def put_proof(self, proof_key: str, proof: StoredProof) -> None: ...

    @abstractmethod
    def get_proof(self, proof_key: str) -> Optional[StoredProof]: ...

    @abstractmethod
    def proofs(self) -> Dict[str, StoredProof]: ...

    @abstractmethod
    def proof_count(self) -> int: ...

    @abstractmethod
    def session_count(self) -> int: ...

    def sessions_for_provider(self, provider: str) -> List[VerificationSession]:
        return [s for s in self.sessions() if s.provider == provider]


class InMemorySessionStore(SessionStore):

    def __init__(self):
        self._sessions: Dict[str, VerificationSession] = {}
        self._proofs:   Dict[str, StoredProof]         = {}

    def put_session(self, session: VerificationSession) -> None:
        # re-inserting an existing id keeps its original position
        self._sessions[session.session_id] = session

    def get_session(self, session_id: str) -> Optional[VerificationSession]:
        return self._sessions.get(session_id)

    def sessions(self) -> Iterator[VerificationSession]:
        return iter(list(self._sessions.values()))

    def put_proof(self, proof_key: str, proof: StoredProof) -> None:
        self._proofs[proof_key] = proof

    def get_proof(self, proof_key: str) -> Optional[StoredProof]:
        return self._proofs.get(proof_key)

    def proofs(self) -> Dict[str, StoredProof]:
        return dict(self._proofs)

    def proof_count(self) -> int:
        return len(self._proofs)

    def session_count(self) -> int:
        return len(self._sessions)


class RedisSessionStore(SessionStore):
    """
    Redis-backed store. Sessions live in a hash keyed by id; a list keeps
    insertion order so heuristic scans behave exactly like the memory store.
    """

    def __init__(self, client, namespace: str = "socialproof"):
        self._r          = client
        self._sessions_key = f"{namespace}:sessions"
        self._order_key    = f"{namespace}:session_order"
        self._proofs_key   = f"{namespace}:proofs"

    @classmethod
    def from_url(cls, url: str, namespace: str = "socialproof") -> "RedisSessionStore":
        import redis

        client = redis.Redis.from_url(url, decode_responses=True)
        logger.info(f"[STORE] Using Redis session store at {url}")
        return cls(client, namespace=namespace)

    def put_session(self, session: VerificationSession) -> None:
        is_new = self._r.hset(self._sessions_key, session.session_id, json.dumps(session.to_dict()))
        if is_new:
            self._r.rpush(self._order_key, session.session_id)

    def get_session(self, session_id: str) -> Optional[VerificationSession]:
        raw = self._r.hget(self._sessions_key, session_id)
        return VerificationSession.from_dict(json.loads(raw)) if raw else None

    def sessions(self) -> Iterator[VerificationSession]:
        for session_id in self._r.lrange(self._order_key, 0, -1):
            session = self.get_session(session_id)
            if session is not None:
                yield session

    def put_proof(self, proof_key: str, proof: StoredProof) -> None:
        self._r.hset(self._proofs_key, proof_key, json.dumps(proof.to_dict()))

    def get_proof(self, proof_key: str) -> Optional[StoredProof]:
        raw = self._r.hget(self._proofs_key, proof_key)
        return StoredProof(**json.loads(raw)) if raw else None

    def proofs(self) -> Dict[str, StoredProof]:
        raw = self._r.hgetall(self._proofs_key)
        return {key: StoredProof(**json.loads(value)) for key, value in raw.items()}

    def proof_count(self) -> int:
        return int(self._r.hlen(self._proofs_key))

    def session_count(self) -> int:
        return int(self._r.hlen(self._sessions_key))


def build_store(backend: str, redis_url: str) -> SessionStore:
    if backend == "redis":
        return RedisSessionStore.from_url(redis_url)
    if backend != "memory":
        logger.warning(f"[STORE] Unknown SESSION_BACKEND '{backend}', using in-memory store")
    return InMemorySessionStore()
