"""
SocialProofPass — MintCoordinator
=================================

Turns verified provider proofs into a mint. Two tagged intents, kept apart
because they carry different authorization:

  offchain — the backend already verified the proofs; the deployer key calls
             the owner-gated `mintSocialProofPass` and the contract trusts it.
  onchain  — the backend only reshapes proofs into the contract's tuple
             layout; the user's wallet submits `mintWithProofVerification`
             and the contract checks every proof itself.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from socialproof.chain import REGISTRY_ABI, RegistryClient
from socialproof.errors import EventParseFailure, InvalidRequest, ServerMisconfigured
from socialproof.reclaim import ZERO_ADDRESS, ZERO_IDENTIFIER

logger = logging.getLogger("socialproof.mint")

MODE_OFFCHAIN = "offchain"
MODE_ONCHAIN  = "onchain"
UNKNOWN_TOKEN = "unknown"


@dataclass
class MintResult:
    transaction_hash: str
    token_id:         Union[int, str]
    providers:        List[str]
    block_number:     int

    def to_dict(self) -> dict:
        return {
            "success":         True,
            "transactionHash": self.transaction_hash,
            "tokenId":         str(self.token_id),
            "providers":       self.providers,
            "blockNumber":     self.block_number,
        }


def transform_proof(proof: Dict[str, Any], default_owner: str, now_s: int) -> Dict[str, Any]:
    """
    Reshape a Reclaim proof into the contract's (claimInfo, signedClaim) tuple.
    Missing fields get defaults; the contract's own check is what rejects junk.
    """
    claim = proof.get("claimData") if isinstance(proof.get("claimData"), dict) else {}

    def pick(key: str, default: Any) -> Any:
        return claim.get(key) or proof.get(key) or default

    return {
        "claimInfo": {
            "provider":   pick("provider", ""),
            "parameters": pick("parameters", ""),
            "context":    pick("context", ""),
        },
        "signedClaim": {
            "claim": {
                "identifier": pick("identifier", ZERO_IDENTIFIER),
                "owner":      pick("owner", default_owner),
                "timestampS": int(pick("timestampS", now_s)),
                "epoch":      int(pick("epoch", 1)),
            },
            "signatures": proof.get("signatures") or [],
        },
    }


class MintCoordinator:

    def __init__(
        self,
        client: Optional[RegistryClient],
        clock:  Callable[[], float] = time.time,
    ):
        self.client = client
        self._clock = clock

    def _require_client(self) -> RegistryClient:
        if self.client is None:
            raise ServerMisconfigured(
                "Please set RPC_URL, DEPLOYER_PRIVATE_KEY and NFT_CONTRACT_ADDRESS in environment variables"
            )
        return self.client

    def pack_proof_data(self, proofs: Dict[str, Any], verified_providers: List[str], mode: str) -> bytes:
        selected = {
            key: {"claimData": proof["claimData"], "signatures": proof.get("signatures")}
            for key, proof in proofs.items()
            if isinstance(proof, dict) and proof.get("claimData")
        }
        return json.dumps({
            "timestamp": int(self._clock() * 1000),
            "mode":      mode or MODE_OFFCHAIN,
            "providers": verified_providers,
            "proofs":    selected,
        }).encode("utf-8")

    # ------------------------------------------------------------------
    def mint_off_chain(
        self,
        wallet_address:     Optional[str],
        proofs:             Optional[Dict[str, Any]],
        verified_providers: Optional[List[str]],
        mode:               Optional[str] = MODE_OFFCHAIN,
    ) -> MintResult:
        if not wallet_address or not proofs or not verified_providers:
            raise InvalidRequest("walletAddress, proofs and verifiedProviders are required")
        client = self._require_client()

        proof_data = self.pack_proof_data(proofs, verified_providers, mode)
        logger.info(f"[MINT] Minting Social Proof Pass for {wallet_address}")
        logger.info(f"[MINT] Verified providers: {', '.join(verified_providers)}")

        receipt = client.mint_social_proof_pass(wallet_address, verified_providers, proof_data)
        logger.info(f"[MINT] Transaction confirmed in block {receipt.block_number}")

        try:
            token_id: Union[int, str] = client.extract_minted_token_id(receipt)
        except EventParseFailure as e:
            logger.error(f"[MINT] Error parsing mint event: {e} {e.details}".rstrip())
            token_id = UNKNOWN_TOKEN

        logger.info(f"[MINT] NFT minted successfully! TokenId: {token_id}")
        return MintResult(
            transaction_hash = receipt.transaction_hash,
            token_id         = token_id,
            providers        = list(verified_providers),
            block_number     = receipt.block_number,
        )

    # ------------------------------------------------------------------
    def prepare_on_chain_payload(
        self,
        wallet_address:     Optional[str],
        raw_proofs:         Optional[Dict[str, Any]],
        verified_providers: Optional[List[str]],
    ) -> Dict[str, Any]:
        if not wallet_address or raw_proofs is None or verified_providers is None:
            raise InvalidRequest("walletAddress, reclaimProofs and verifiedProviders are required")
        client = self._require_client()

        now_s = int(self._clock())
        transformed = [
            transform_proof(proof if isinstance(proof, dict) else {}, wallet_address, now_s)
            for proof in raw_proofs.values()
        ]
        return {
            "transformedProofs": transformed,
            "contractAddress":   client.contract_address,
            "abi":               REGISTRY_ABI,
            "verifiedProviders": verified_providers,
            "chainId":           client.chain_id(),
        }

    # ------------------------------------------------------------------
    def test_proof_verification(self, proof: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        if not proof or not isinstance(proof, dict):
            raise InvalidRequest("proof is required")
        client = self._require_client()

        transformed = transform_proof(proof, ZERO_ADDRESS, int(self._clock()))
        is_valid, context = client.verify_proof_and_extract_data(transformed)
        return {"isValid": is_valid, "contextData": context, "transformedProof": transformed}
