"""
SocialProofPass — SocialProofRegistry
=====================================

Python model of the SocialProofPass ERC-721 contract. It is the reference
for the Solidity contract's behaviour and backs the in-process chain client
used in development and tests.

Two mint paths with separate trust models:
  * mint_social_proof_pass       — owner only; proofs were checked off-chain
                                   by the backend and are stored opaquely.
  * mint_with_proof_verification — anyone; every proof is checked here with
                                   the oracle's on-chain primitive.

Every mutating call validates first and writes last, so a revert leaves the
state untouched (transaction atomicity). One mint per holder address.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Sequence, Tuple

from web3 import Web3

from socialproof.config import Provider
from socialproof.errors import ContractRevert
from socialproof.metadata import STYLE_JSON, render_token_uri
from socialproof.reclaim import ProofVerificationError, ReclaimOracle

logger = logging.getLogger("socialproof.registry")

NAME   = "SocialProofPass"
SYMBOL = "SPP"
ZERO_ADDRESS            = "0x0000000000000000000000000000000000000000"
DEFAULT_RECLAIM_ADDRESS = "0xAe94FB09711e1c6B057853a515483792d8e474d0"

EVENT_MINTED         = "SocialProofPassMinted"
EVENT_PROOF_VERIFIED = "ProofVerifiedOnChain"
EVENT_PROVIDERS_ADDED = "ProvidersAdded"


@dataclass
class SocialProof:
    holder:             str
    verified_providers: List[str]
    verification_count: int
    timestamp:          int
    verified:           bool  = True
    proof_data:         bytes = field(default=b"", repr=False)

    def to_dict(self) -> dict:
        return {
            "holder":            self.holder,
            "verifiedProviders": list(self.verified_providers),
            "verificationCount": self.verification_count,
            "timestamp":         self.timestamp,
            "verified":          self.verified,
        }


def _checksum(address: Any) -> str:
    if not isinstance(address, str) or not Web3.is_address(address):
        raise ContractRevert("Invalid address")
    return Web3.to_checksum_address(address)


class SocialProofRegistry:

    def __init__(
        self,
        owner:           str,
        verifier:        ReclaimOracle,
        clock:           Callable[[], float] = time.time,
        metadata_style:  str = STYLE_JSON,
        reclaim_address: str = DEFAULT_RECLAIM_ADDRESS,
    ):
        self.name   = NAME
        self.symbol = SYMBOL
        self.owner  = _checksum(owner)
        self.metadata_style = metadata_style
        self._verifier = verifier
        self._clock    = clock
        self._reclaim_address = _checksum(reclaim_address)

        self.supported_providers: Dict[str, bool] = {p.value: True for p in Provider}
        self.events: List[Dict[str, Any]] = []

        self._proofs:   Dict[int, SocialProof] = {}
        self._owners:   Dict[int, str]         = {}
        self._balances: Dict[str, int]         = {}
        self._minted:   Dict[str, bool]        = {}
        self._next_token_id = 0

    # ── Modifiers ─────────────────────────────────────────────────────────────
    def _only_owner(self, sender: str) -> None:
        if _checksum(sender) != self.owner:
            raise ContractRevert("Ownable: caller is not the owner")

    def _require_token(self, token_id: int) -> SocialProof:
        proof = self._proofs.get(token_id)
        if proof is None:
            raise ContractRevert("Token does not exist")
        return proof

    def _emit(self, event: str, **args) -> None:
        self.events.append({"event": event, "args": args})

    def _now(self) -> int:
        return int(self._clock())

    # ── Admin ─────────────────────────────────────────────────────────────────
    def add_supported_provider(self, sender: str, provider: str) -> None:
        self._only_owner(sender)
        if not provider:
            raise ContractRevert("Empty provider")
        self.supported_providers[provider] = True

    def remove_supported_provider(self, sender: str, provider: str) -> None:
        self._only_owner(sender)
        self.supported_providers[provider] = False

    def is_supported_provider(self, provider: str) -> bool:
        return self.supported_providers.get(provider, False)

    def update_reclaim_address(self, sender: str, address: str) -> None:
        self._only_owner(sender)
        self._reclaim_address = _checksum(address)

    def get_reclaim_address(self) -> str:
        return self._reclaim_address

    # ── Proof verification ────────────────────────────────────────────────────
    def _verify_batch(self, proofs: Sequence[dict], providers: Sequence[str]) -> None:
        if len(proofs) != len(providers):
            raise ContractRevert("Array length mismatch")
        if not providers:
            raise ContractRevert("No providers specified")
        for provider in providers:
            if not self.is_supported_provider(provider):
                raise ContractRevert("Provider not supported")
        for proof in proofs:
            try:
                self._verifier.verify_signed_claim(proof.get("claimInfo") or {}, proof.get("signedClaim") or {})
            except ProofVerificationError as e:
                raise ContractRevert(str(e)) from e

    def verify_proof_and_extract_data(self, proof: dict) -> Tuple[bool, str]:
        """View: checks one transformed proof, returns (valid, claim context)."""
        try:
            self._verifier.verify_signed_claim(proof.get("claimInfo") or {}, proof.get("signedClaim") or {})
        except ProofVerificationError as e:
            logger.info(f"[REGISTRY] Proof rejected: {e}")
            return False, ""
        return True, (proof.get("claimInfo") or {}).get("context", "")

    # ── Minting ───────────────────────────────────────────────────────────────
    def _mint(self, to: str, providers: Sequence[str], proof_data: bytes) -> int:
        token_id  = self._next_token_id
        timestamp = self._now()
        self._next_token_id += 1

        self._proofs[token_id] = SocialProof(
            holder             = to,
            verified_providers = list(providers),
            verification_count = len(providers),
            timestamp          = timestamp,
            verified           = True,
            proof_data         = bytes(proof_data),
        )
        self._owners[token_id] = to
        self._balances[to]     = self._balances.get(to, 0) + 1
        self._minted[to]       = True

        self._emit(EVENT_MINTED, to=to, tokenId=token_id, providers=list(providers), timestamp=timestamp)
        logger.info(f"[REGISTRY] Minted token {token_id} to {to} ({', '.join(providers)})")
        return token_id

    def mint_social_proof_pass(self, sender: str, to: str, providers: Sequence[str], proof_data: bytes = b"") -> int:
        self._only_owner(sender)
        if not providers:
            raise ContractRevert("No providers specified")
        if not isinstance(to, str) or not Web3.is_address(to) or to.lower() == ZERO_ADDRESS:
            raise ContractRevert("Invalid recipient")
        to = _checksum(to)
        if self._minted.get(to):
            raise ContractRevert("Already minted")
        return self._mint(to, providers, proof_data)

    def mint_with_proof_verification(self, sender: str, proofs: Sequence[dict], providers: Sequence[str]) -> int:
        sender = _checksum(sender)
        if len(proofs) != len(providers):
            raise ContractRevert("Array length mismatch")
        if self._minted.get(sender):
            raise ContractRevert("Already minted")
        self._verify_batch(proofs, providers)

        token_id = self._mint(sender, providers, json.dumps(list(proofs)).encode())
        for provider in providers:
            self._emit(EVENT_PROOF_VERIFIED, user=sender, tokenId=token_id, provider=provider, timestamp=self._now())
        return token_id

    # ── Append-only growth ────────────────────────────────────────────────────
    def _append(self, token_id: int, providers: Sequence[str], proof_data: bytes) -> List[str]:
        social = self._proofs[token_id]
        added = []
        for provider in providers:
            if provider not in social.verified_providers and provider not in added:
                added.append(provider)
        social.verified_providers.extend(added)
        social.verification_count = len(social.verified_providers)
        social.proof_data += bytes(proof_data)
        self._emit(EVENT_PROVIDERS_ADDED, tokenId=token_id, providers=added)
        return added

    def add_verified_providers(self, sender: str, token_id: int, providers: Sequence[str], proof_data: bytes = b"") -> List[str]:
        self._only_owner(sender)
        self._require_token(token_id)
        if not providers:
            raise ContractRevert("No providers specified")
        return self._append(token_id, providers, proof_data)

    def add_providers_with_verification(
        self,
        sender:    str,
        token_id:  int,
        proofs:    Sequence[dict],
        providers: Sequence[str],
    ) -> List[str]:
        sender = _checksum(sender)
        self._require_token(token_id)
        if self._owners[token_id] != sender:
            raise ContractRevert("Not token owner")
        self._verify_batch(proofs, providers)

        added = self._append(token_id, providers, json.dumps(list(proofs)).encode())
        for provider in added:
            self._emit(EVENT_PROOF_VERIFIED, user=sender, tokenId=token_id, provider=provider, timestamp=self._now())
        return added

    # ── Views ─────────────────────────────────────────────────────────────────
    def has_already_minted(self, user: str) -> bool:
        return self._minted.get(_checksum(user), False)

    def get_social_proof(self, token_id: int) -> SocialProof:
        return self._require_token(token_id)

    def balance_of(self, owner: str) -> int:
        return self._balances.get(_checksum(owner), 0)

    def owner_of(self, token_id: int) -> str:
        self._require_token(token_id)
        return self._owners[token_id]

    def total_supply(self) -> int:
        return self._next_token_id

    def token_uri(self, token_id: int) -> str:
        social = self._require_token(token_id)
        return render_token_uri(
            token_id,
            social.verified_providers,
            social.verification_count,
            social.timestamp,
            verified=social.verified,
            style=self.metadata_style,
        )
