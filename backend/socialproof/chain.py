"""
SocialProofPass — registry chain clients.

`Web3RegistryClient` talks to the deployed contract over JSON-RPC with the
deployer key; it is the client the gateway builds. `LocalRegistryClient` is
the in-process client used by the tests: it drives the SocialProofRegistry
model through the same interface with a hardhat-style chain id and address.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_account import Account
from web3 import Web3
from web3.logs import DISCARD

from socialproof.config import Settings
from socialproof.errors import ChainError, ContractRevert, EventParseFailure
from socialproof.registry import EVENT_MINTED, EVENT_PROOF_VERIFIED, EVENT_PROVIDERS_ADDED, SocialProofRegistry

logger = logging.getLogger("socialproof.chain")

LOCAL_CHAIN_ID         = 31337
LOCAL_CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


# ─── ABI ──────────────────────────────────────────────────────────────────────
def _p(name: str, type_: str, components: Optional[list] = None, indexed: Optional[bool] = None) -> dict:
    param: Dict[str, Any] = {"name": name, "type": type_, "internalType": type_}
    if components is not None:
        param["components"] = components
    if indexed is not None:
        param["indexed"] = indexed
    return param


def _fn(name: str, inputs: list, outputs: list, mutability: str = "nonpayable") -> dict:
    return {"type": "function", "name": name, "inputs": inputs, "outputs": outputs, "stateMutability": mutability}


_CLAIM_INFO = [_p("provider", "string"), _p("parameters", "string"), _p("context", "string")]
_CLAIM      = [_p("identifier", "bytes32"), _p("owner", "address"), _p("timestampS", "uint32"), _p("epoch", "uint32")]
_SIGNED     = [_p("claim", "tuple", _CLAIM), _p("signatures", "bytes[]")]
_PROOF      = [_p("claimInfo", "tuple", _CLAIM_INFO), _p("signedClaim", "tuple", _SIGNED)]

REGISTRY_ABI: List[dict] = [
    _fn("mintSocialProofPass",
        [_p("to", "address"), _p("providers", "string[]"), _p("proofData", "bytes")],
        [_p("", "uint256")]),
    _fn("mintWithProofVerification",
        [_p("proofs", "tuple[]", _PROOF), _p("providers", "string[]")],
        [_p("", "uint256")]),
    _fn("addVerifiedProviders",
        [_p("tokenId", "uint256"), _p("providers", "string[]"), _p("proofData", "bytes")],
        []),
    _fn("addProvidersWithVerification",
        [_p("tokenId", "uint256"), _p("proofs", "tuple[]", _PROOF), _p("providers", "string[]")],
        []),
    _fn("hasAlreadyMinted", [_p("user", "address")], [_p("", "bool")], "view"),
    _fn("getSocialProof",
        [_p("tokenId", "uint256")],
        [_p("holder", "address"), _p("verifiedProviders", "string[]"), _p("verificationCount", "uint8"),
         _p("timestamp", "uint256"), _p("verified", "bool")],
        "view"),
    _fn("tokenURI", [_p("tokenId", "uint256")], [_p("", "string")], "view"),
    _fn("verifyProofAndExtractData",
        [_p("proof", "tuple", _PROOF)],
        [_p("", "bool"), _p("", "string")],
        "view"),
    {
        "type": "event", "name": EVENT_MINTED, "anonymous": False,
        "inputs": [_p("to", "address", indexed=True), _p("tokenId", "uint256", indexed=True),
                   _p("providers", "string[]", indexed=False), _p("timestamp", "uint256", indexed=False)],
    },
    {
        "type": "event", "name": EVENT_PROOF_VERIFIED, "anonymous": False,
        "inputs": [_p("user", "address", indexed=True), _p("tokenId", "uint256", indexed=True),
                   _p("provider", "string", indexed=False), _p("timestamp", "uint256", indexed=False)],
    },
    {
        "type": "event", "name": EVENT_PROVIDERS_ADDED, "anonymous": False,
        "inputs": [_p("tokenId", "uint256", indexed=True), _p("providers", "string[]", indexed=False)],
    },
]


@dataclass
class MintReceipt:
    transaction_hash: str
    block_number:     int
    logs:             List[Any] = field(default_factory=list)
    raw:              Any       = None


class RegistryClient(ABC):
    contract_address: str

    @abstractmethod
    def mint_social_proof_pass(self, to: str, providers: Sequence[str], proof_data: bytes) -> MintReceipt: ...

    @abstractmethod
    def extract_minted_token_id(self, receipt: MintReceipt) -> int: ...

    @abstractmethod
    def chain_id(self) -> int: ...

    @abstractmethod
    def verify_proof_and_extract_data(self, proof: dict) -> Tuple[bool, str]: ...


# ─── JSON-RPC client ──────────────────────────────────────────────────────────
class Web3RegistryClient(RegistryClient):

    def __init__(self, rpc_url: str, private_key: str, contract_address: str, tx_timeout: int = 120):
        self.web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
        self.account = Account.from_key(private_key)
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.contract = self.web3.eth.contract(address=self.contract_address, abi=REGISTRY_ABI)
        self.tx_timeout = tx_timeout
        logger.info(f"[CHAIN] Registry {self.contract_address} via {rpc_url}, signer {self.account.address}")

    def mint_social_proof_pass(self, to: str, providers: Sequence[str], proof_data: bytes) -> MintReceipt:
        sender = self.account.address
        try:
            tx = self.contract.functions.mintSocialProofPass(
                Web3.to_checksum_address(to), list(providers), proof_data,
            ).build_transaction({
                "from":    sender,
                "nonce":   self.web3.eth.get_transaction_count(sender, "pending"),
                "chainId": self.web3.eth.chain_id,
            })
            signed  = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
            logger.info(f"[CHAIN] Transaction submitted: {Web3.to_hex(tx_hash)}")
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        except Exception as e:
            raise ChainError("Failed to mint NFT", details=str(e)) from e

        if receipt["status"] != 1:
            raise ChainError("Failed to mint NFT", details="Transaction failed on chain")
        return MintReceipt(
            transaction_hash = Web3.to_hex(receipt["transactionHash"]),
            block_number     = receipt["blockNumber"],
            logs             = list(receipt["logs"]),
            raw              = receipt,
        )

    def extract_minted_token_id(self, receipt: MintReceipt) -> int:
        try:
            events = self.contract.events.SocialProofPassMinted().process_receipt(receipt.raw, errors=DISCARD)
        except Exception as e:
            raise EventParseFailure("Could not decode receipt logs", details=str(e)) from e
        if not events:
            raise EventParseFailure(f"No {EVENT_MINTED} event in receipt")
        return int(events[0]["args"]["tokenId"])

    def chain_id(self) -> int:
        try:
            return int(self.web3.eth.chain_id)
        except Exception as e:
            raise ChainError("Could not reach RPC node", details=str(e)) from e

    def verify_proof_and_extract_data(self, proof: dict) -> Tuple[bool, str]:
        try:
            is_valid, context = self.contract.functions.verifyProofAndExtractData(proof).call()
        except Exception as e:
            raise ChainError("Failed to test proof verification", details=str(e)) from e
        return bool(is_valid), context


# ─── In-process client ────────────────────────────────────────────────────────
class LocalRegistryClient(RegistryClient):

    def __init__(
        self,
        registry:         SocialProofRegistry,
        signer_address:   Optional[str] = None,
        chain_id:         int = LOCAL_CHAIN_ID,
        contract_address: str = LOCAL_CONTRACT_ADDRESS,
    ):
        self.registry = registry
        self.signer_address   = signer_address or registry.owner
        self.contract_address = contract_address
        self._chain_id = chain_id
        self._block    = 0

    def mint_social_proof_pass(self, to: str, providers: Sequence[str], proof_data: bytes) -> MintReceipt:
        first_log = len(self.registry.events)
        try:
            self.registry.mint_social_proof_pass(self.signer_address, to, providers, proof_data)
        except ContractRevert as e:
            raise ChainError("Failed to mint NFT", details=f"execution reverted: {e.reason}") from e

        self._block += 1
        tx_hash = Web3.to_hex(Web3.keccak(text=f"{self._block}:{to}:{','.join(providers)}"))
        return MintReceipt(
            transaction_hash = tx_hash,
            block_number     = self._block,
            logs             = self.registry.events[first_log:],
        )

    def extract_minted_token_id(self, receipt: MintReceipt) -> int:
        for log in receipt.logs:
            if isinstance(log, dict) and log.get("event") == EVENT_MINTED:
                return int(log["args"]["tokenId"])
        raise EventParseFailure(f"No {EVENT_MINTED} event in receipt")

    def chain_id(self) -> int:
        return self._chain_id

    def verify_proof_and_extract_data(self, proof: dict) -> Tuple[bool, str]:
        return self.registry.verify_proof_and_extract_data(proof)


def build_registry_client(settings: Settings) -> Optional[RegistryClient]:
    if not settings.chain_configured:
        return None
    try:
        return Web3RegistryClient(
            settings.rpc_url,
            settings.deployer_private_key,
            settings.nft_contract_address,
            tx_timeout=settings.tx_timeout_sec,
        )
    except Exception as e:
        logger.critical(f"[CHAIN] Registry client disabled, bad chain configuration: {e}")
        return None
