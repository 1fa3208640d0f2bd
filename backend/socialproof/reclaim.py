"""
SocialProofPass — Reclaim proof oracle client
=============================================

Reclaim zkTLS proofs are attestations signed by a set of witnesses:

    identifier = keccak256(provider + "\\n" + parameters + "\\n" + context)
    sign data  = identifier \\n owner \\n timestampS \\n epoch
    signature  = EIP-191 personal_sign(sign data) by each witness

This module builds proof requests (signed with the application secret) and
checks returned proofs by recomputing the identifier and recovering the
witness signers with eth_account. Both the backend callback check and the
registry's on-chain check run through here.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import quote

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from socialproof.config import DEFAULT_SHARE_URL, ProviderCredentials
from socialproof.errors import OracleError

logger = logging.getLogger("socialproof.reclaim")

ZERO_IDENTIFIER = "0x" + "00" * 32
ZERO_ADDRESS    = "0x" + "00" * 20
SDK_VERSION     = "py-socialproof-1"


class ProofVerificationError(ValueError):
    """Raised by the on-chain style check; the registry turns it into a revert."""


@dataclass
class OracleRequest:
    request_url:       str
    config_json:       str
    oracle_session_id: str


# ---------------------------------------------------------------------------
# Claim primitives
# ---------------------------------------------------------------------------
def canonicalize_context(context: Optional[str]) -> str:
    """Canonical JSON for a non-empty context (sorted keys, no whitespace)."""
    if not context:
        return ""
    if not isinstance(context, str):
        raise ValueError("context must be a JSON string")
    try:
        parsed = json.loads(context)
    except ValueError as e:
        raise ValueError("unable to parse non-empty context") from e
    return json.dumps(parsed, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def claim_identifier(provider: str, parameters: str, context: str, canonical: bool = True) -> str:
    if canonical:
        context = canonicalize_context(context)
    data = f"{provider}\n{parameters}\n{context or ''}"
    return Web3.to_hex(Web3.keccak(text=data)).lower()


def claim_sign_data(identifier: str, owner: str, timestamp_s: int, epoch: int) -> str:
    return "\n".join([
        identifier.lower(),
        owner.lower(),
        str(int(timestamp_s)),
        str(int(epoch)),
    ])


def recover_signers(sign_data: str, signatures: Iterable[str]) -> List[str]:
    message = encode_defunct(text=sign_data)
    return [
        Account.recover_message(message, signature=sig).lower()
        for sig in signatures
    ]


def sign_claim(claim: Dict[str, Any], private_key: str) -> str:
    """Witness-side signature over a claim dict (identifier/owner/timestampS/epoch)."""
    data = claim_sign_data(claim["identifier"], claim["owner"], claim["timestampS"], claim["epoch"])
    signed = Account.sign_message(encode_defunct(text=data), private_key=private_key)
    return Web3.to_hex(signed.signature)


def proof_context(proof: Dict[str, Any]) -> Dict[str, Any]:
    """Parsed `claimData.context` of a callback proof, `{}` when absent or malformed."""
    claim = proof.get("claimData") if isinstance(proof, dict) else None
    raw = (claim or {}).get("context") or ""
    if not isinstance(raw, str):
        return {}
    try:
        parsed = json.loads(raw) if raw else {}
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


# ---------------------------------------------------------------------------
# Oracle
# ---------------------------------------------------------------------------
class ReclaimOracle:

    def __init__(
        self,
        witnesses: Optional[Iterable[str]] = None,
        share_url: str = DEFAULT_SHARE_URL,
        clock:     Callable[[], float] = time.time,
    ):
        self.witnesses = [w.lower() for w in (witnesses or [])]
        self.share_url = share_url
        self._clock    = clock

    # ------------------------------------------------------------------
    def build_request(
        self,
        provider:        str,
        credentials:     ProviderCredentials,
        callback_url:    str,
        context_address: Optional[str] = None,
        context_message: str = "",
    ) -> OracleRequest:
        timestamp = str(int(self._clock() * 1000))
        payload   = json.dumps(
            {"providerId": credentials.provider_id, "timestamp": timestamp},
            sort_keys=True, separators=(",", ":"),
        )
        try:
            signed = Account.sign_message(
                encode_defunct(primitive=bytes(Web3.keccak(text=payload))),
                private_key=credentials.app_secret,
            )
        except Exception as e:
            raise OracleError(f"Could not sign request for {provider}", details=str(e)) from e

        session_id = uuid.uuid4().hex
        context = json.dumps({
            "contextAddress": context_address or ZERO_ADDRESS,
            "contextMessage": context_message,
        })
        template = {
            "sessionId":     session_id,
            "providerId":    credentials.provider_id,
            "applicationId": credentials.app_id,
            "signature":     Web3.to_hex(signed.signature),
            "timestamp":     timestamp,
            "callbackUrl":   callback_url,
            "context":       context,
            "parameters":    {},
            "redirectUrl":   "",
            "sdkVersion":    SDK_VERSION,
        }
        request_url = f"{self.share_url}?template={quote(json.dumps(template))}"
        config_json = json.dumps({
            "applicationId":  credentials.app_id,
            "providerId":     credentials.provider_id,
            "sessionId":      session_id,
            "context":        context,
            "appCallbackUrl": callback_url,
            "signature":      template["signature"],
            "timeStamp":      timestamp,
            "sdkVersion":     SDK_VERSION,
        })
        logger.info(f"[ORACLE] Built request for {provider} (oracle session {session_id})")
        return OracleRequest(request_url=request_url, config_json=config_json, oracle_session_id=session_id)

    def verify_proof(self, proof: Dict[str, Any]) -> bool:
        """Off-chain verification of a callback proof. Never raises."""
        if not isinstance(proof, dict):
            return False
        claim      = proof.get("claimData")
        signatures = proof.get("signatures") or []
        if not isinstance(claim, dict) or not signatures:
            logger.warning("[ORACLE] Proof without claimData or signatures")
            return False

        try:
            expected_id = claim_identifier(
                claim.get("provider", ""), claim.get("parameters", ""), claim.get("context", ""),
            )
        except ValueError as e:
            logger.warning(f"[ORACLE] {e}")
            return False

        identifier = str(claim.get("identifier") or proof.get("identifier") or "").lower()
        if identifier != expected_id:
            logger.warning("[ORACLE] Claim identifier does not match claim info")
            return False
        if proof.get("identifier") and str(proof["identifier"]).lower() != identifier:
            logger.warning("[ORACLE] Proof identifier differs from claimData identifier")
            return False

        # the witness set comes from configuration, never from the proof itself
        witnesses = self.witnesses
        if not witnesses:
            logger.error("[ORACLE] No RECLAIM_WITNESSES configured, rejecting proof")
            return False

        try:
            sign_data = claim_sign_data(identifier, claim["owner"], claim["timestampS"], claim["epoch"])
            signers   = recover_signers(sign_data, signatures)
        except Exception as e:
            logger.warning(f"[ORACLE] Signature recovery failed: {e}")
            return False

        missing = [w for w in witnesses if w not in signers]
        if missing:
            logger.warning(f"[ORACLE] Missing witness signatures: {missing}")
            return False
        return True

    def verify_signed_claim(self, claim_info: Dict[str, Any], signed_claim: Dict[str, Any]) -> None:
        """On-chain verification primitive. Raises ProofVerificationError on failure."""
        signatures = signed_claim.get("signatures") or []
        if not signatures:
            raise ProofVerificationError("No signatures")

        claim = signed_claim.get("claim") or {}
        expected_id = claim_identifier(
            claim_info.get("provider", ""),
            claim_info.get("parameters", ""),
            claim_info.get("context", ""),
            canonical=False,
        )
        identifier = str(claim.get("identifier", "")).lower()
        if identifier != expected_id:
            raise ProofVerificationError("Claim identifier mismatch")

        if not self.witnesses:
            raise ProofVerificationError("No witnesses for epoch")

        try:
            signers = recover_signers(
                claim_sign_data(identifier, claim["owner"], claim["timestampS"], claim["epoch"]),
                signatures,
            )
        except Exception as e:
            raise ProofVerificationError("Invalid signature") from e

        for witness in self.witnesses:
            if witness not in signers:
                raise ProofVerificationError("Missing witness signature")
