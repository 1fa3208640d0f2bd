"""
SocialProofPass — ProofRelay
============================

Relays proof requests to the Reclaim oracle, receives the asynchronous
callback proofs and moves the matching verification session to `verified`.

Session resolution on callback:
  * latest_pending (default) — the first pending session for the provider in
    store order is promoted, whichever wallet started it. Two users verifying
    the same provider at once can get each other's proof.
  * context — the session id travels as the oracle context message and the
    callback promotes that exact session; falls back to the scan above when
    the proof carries no usable context.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union
from urllib.parse import unquote

from socialproof.config import SessionMatching, Settings
from socialproof.errors import InvalidProof, MisconfiguredProvider, ProofDecodeError, UnknownProvider
from socialproof.reclaim import ReclaimOracle, proof_context
from socialproof.session_store import (
    SessionStatus,
    SessionStore,
    StoredProof,
    VerificationSession,
)

logger = logging.getLogger("socialproof.relay")

SETUP_URL = "https://dev.reclaimprotocol.org/"


@dataclass
class ConfigurationRequest:
    provider:    str
    session_id:  str
    request_url: str
    config_json: str

    def to_dict(self) -> dict:
        return {
            "reclaimProofRequestConfig": self.config_json,
            "requestUrl":                self.request_url,
            "sessionId":                 self.session_id,
            "provider":                  self.provider,
        }


@dataclass
class CallbackResult:
    provider:          str
    proof_key:         str
    promoted_session:  Optional[str]


class ProofRelay:

    def __init__(
        self,
        settings: Settings,
        store:    SessionStore,
        oracle:   ReclaimOracle,
        clock:    Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store    = store
        self.oracle   = oracle
        self._clock   = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _require_provider(self, provider: Optional[str]) -> str:
        if not provider or provider not in self.settings.providers:
            raise UnknownProvider(provider)
        return provider

    # ------------------------------------------------------------------
    def config_status(self) -> Dict[str, Any]:
        providers = {
            name: {
                "configured":      creds.is_configured,
                "hasPlaceholders": creds.has_placeholders,
            }
            for name, creds in self.settings.providers.items()
        }
        return {
            "providers":        providers,
            "hasAnyConfigured": any(p["configured"] for p in providers.values()),
            "setupInstructions": {
                "message": f"To configure providers, visit {SETUP_URL} and update your .env file",
                "example": {
                    "GITHUB_APP_ID":      "your_actual_app_id",
                    "GITHUB_APP_SECRET":  "your_actual_app_secret",
                    "GITHUB_PROVIDER_ID": "your_actual_provider_id",
                },
            },
        }

    # ------------------------------------------------------------------
    def request_configuration(self, provider: Optional[str], wallet_address: Optional[str]) -> ConfigurationRequest:
        provider = self._require_provider(provider)
        creds = self.settings.credentials_for(provider)
        if creds is None or not creds.is_configured:
            raise MisconfiguredProvider(provider)

        created_at = self._now_ms()
        session_id = f"{provider}-{created_at}"
        carry_session = self.settings.session_matching == SessionMatching.CONTEXT

        request = self.oracle.build_request(
            provider,
            creds,
            callback_url    = self.settings.callback_url(provider),
            context_address = wallet_address,
            context_message = session_id if carry_session else "",
        )

        if self.store.get_session(session_id) is not None:
            logger.warning(f"[CONFIG] Session id collision on {session_id}, previous session overwritten")

        self.store.put_session(VerificationSession(
            session_id     = session_id,
            provider       = provider,
            status         = SessionStatus.PENDING,
            wallet_address = wallet_address,
            created_at     = created_at,
        ))
        logger.info(f"[CONFIG] Generated verification config for {provider}, session: {session_id}")
        return ConfigurationRequest(
            provider    = provider,
            session_id  = session_id,
            request_url = request.request_url,
            config_json = request.config_json,
        )

    # ------------------------------------------------------------------
    @staticmethod
    def _decode_body(raw_body: Union[str, bytes]) -> Dict[str, Any]:
        if isinstance(raw_body, bytes):
            raw_body = raw_body.decode("utf-8", errors="replace")
        try:
            proof = json.loads(unquote(raw_body))
        except ValueError as e:
            raise ProofDecodeError("Callback body is not URL-encoded JSON", details=str(e)) from e
        if not isinstance(proof, dict):
            raise ProofDecodeError("Callback body is not a proof object")
        return proof

    def _resolve_session(self, provider: str, proof: Dict[str, Any]) -> Optional[VerificationSession]:
        if self.settings.session_matching == SessionMatching.CONTEXT:
            wanted = proof_context(proof).get("contextMessage")
            if wanted:
                session = self.store.get_session(wanted)
                if session and session.provider == provider and session.status == SessionStatus.PENDING:
                    return session
                logger.warning(f"[CALLBACK] Context session {wanted} not pending, falling back to scan")

        for session in self.store.sessions_for_provider(provider):
            if session.status == SessionStatus.PENDING:
                return session
        return None

    def receive_callback(self, provider: Optional[str], raw_body: Union[str, bytes]) -> CallbackResult:
        provider = self._require_provider(provider)
        proof = self._decode_body(raw_body)
        logger.info(f"[CALLBACK] Received proof for {provider}")

        if not self.oracle.verify_proof(proof):
            logger.error(f"[CALLBACK] Invalid proof for {provider}")
            raise InvalidProof(f"Proof for {provider} failed verification")

        now = self._now_ms()
        proof_key = f"{provider}-{now}"
        self.store.put_proof(proof_key, StoredProof(provider=provider, proof=proof, timestamp=now))

        session = self._resolve_session(provider, proof)
        if session is None:
            logger.warning(f"[CALLBACK] Valid proof for {provider} but no pending session to promote")
            return CallbackResult(provider=provider, proof_key=proof_key, promoted_session=None)

        session.status      = SessionStatus.VERIFIED
        session.proof_key   = proof_key
        session.proof       = proof
        session.verified_at = now
        self.store.put_session(session)
        logger.info(f"[CALLBACK] Updated session {session.session_id} to verified")
        return CallbackResult(provider=provider, proof_key=proof_key, promoted_session=session.session_id)

    # ------------------------------------------------------------------
    def query_status(self, provider: Optional[str]) -> Dict[str, Any]:
        latest: Optional[VerificationSession] = None
        for session in self.store.sessions_for_provider(provider or ""):
            if latest is None or session.created_at > latest.created_at:
                latest = session

        if latest is None:
            return {"status": "not_found"}
        return {
            "status":    latest.status.value,
            "sessionId": latest.session_id,
            "proof":     latest.proof,
            "provider":  latest.provider,
        }
