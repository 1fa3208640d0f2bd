"""
SocialProofPass — VerificationWizard
====================================

Client-side driver for the verification flow, talking to the gateway over
HTTP:

    connect wallet → pick providers → start verification (request URL)
      → poll status every 3 s (5 min cap) → mint (offchain | onchain)

Per-provider states: idle → loading → verified | failed | timeout.
A timeout only stops polling; the backend session stays pending.
Errors from requests or minting land in `error` (a dismissable banner);
errors inside a poll tick are logged and polling continues.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import requests
from web3 import Web3

from socialproof.mint import MODE_OFFCHAIN, MODE_ONCHAIN

logger = logging.getLogger("socialproof.wizard")

POLL_INTERVAL_SEC = 3.0
POLL_TIMEOUT_SEC  = 300.0
HTTP_TIMEOUT_SEC  = 15


class ProviderState(str, Enum):
    IDLE     = "idle"
    LOADING  = "loading"
    VERIFIED = "verified"
    FAILED   = "failed"
    TIMEOUT  = "timeout"


class WizardError(RuntimeError):
    pass


# Submits (transformedProofs, providers, payload) through the user's wallet
# and returns the transaction result; stands in for the browser wallet.
OnChainSubmitter = Callable[[List[dict], List[str], Dict[str, Any]], Dict[str, Any]]


class VerificationWizard:

    def __init__(
        self,
        backend_url:   str,
        http:          Optional[requests.Session] = None,
        poll_interval: float = POLL_INTERVAL_SEC,
        poll_timeout:  float = POLL_TIMEOUT_SEC,
        sleep:         Callable[[float], None] = time.sleep,
        clock:         Callable[[], float]     = time.monotonic,
    ):
        self.backend_url   = backend_url.rstrip("/")
        self.http          = http or requests.Session()
        self.poll_interval = poll_interval
        self.poll_timeout  = poll_timeout
        self._sleep        = sleep
        self._clock        = clock

        self.wallet_address: Optional[str] = None
        self.selected:  List[str]                 = []
        self.states:    Dict[str, ProviderState]  = {}
        self.proofs:    Dict[str, Any]            = {}
        self.request_urls: Dict[str, str]         = {}
        self.config_status: Optional[dict]        = None
        self.minted:    Optional[dict]            = None
        self.error:     str                       = ""

    # ── HTTP helpers ──────────────────────────────────────────────────────────
    def _url(self, path: str) -> str:
        return f"{self.backend_url}{path}"

    def _get(self, path: str, **params) -> dict:
        resp = self.http.get(self._url(path), params=params or None, timeout=HTTP_TIMEOUT_SEC)
        return self._json(resp)

    def _post(self, path: str, body: dict) -> dict:
        resp = self.http.post(self._url(path), json=body, timeout=HTTP_TIMEOUT_SEC)
        return self._json(resp)

    @staticmethod
    def _json(resp: requests.Response) -> dict:
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not resp.ok:
            message = data.get("message") or data.get("error") or f"Backend error: {resp.status_code}"
            raise WizardError(message)
        if isinstance(data, dict) and data.get("error"):
            raise WizardError(data.get("message") or data["error"])
        return data

    # ── Setup ─────────────────────────────────────────────────────────────────
    def load_config_status(self) -> Optional[dict]:
        try:
            self.config_status = self._get("/config-status")
        except (requests.RequestException, WizardError) as e:
            logger.error(f"[WIZARD] Failed to check config status: {e}")
        return self.config_status

    def connect_wallet(self, address: str) -> bool:
        self.error = ""
        if not Web3.is_address(address):
            self.error = f"Invalid wallet address: {address}"
            return False
        self.wallet_address = Web3.to_checksum_address(address)
        return True

    def toggle_provider(self, provider: str) -> List[str]:
        if provider in self.selected:
            self.selected.remove(provider)
        else:
            self.selected.append(provider)
        return self.selected

    def dismiss_error(self) -> None:
        self.error = ""

    def verified_providers(self) -> List[str]:
        return [p for p, state in self.states.items() if state == ProviderState.VERIFIED]

    # ── Verification ──────────────────────────────────────────────────────────
    def start_verification(self, provider: str) -> Optional[str]:
        """Ask the backend for a request URL; the user opens it to run the proof."""
        self.states[provider] = ProviderState.LOADING
        self.error = ""
        try:
            data = self._get("/generate-config", provider=provider, address=self.wallet_address or "")
        except (requests.RequestException, WizardError) as e:
            logger.error(f"[WIZARD] Verification error for {provider}: {e}")
            self.states[provider] = ProviderState.FAILED
            self.error = str(e)
            return None

        self.request_urls[provider] = data["requestUrl"]
        return data["requestUrl"]

    def poll(self, provider: str) -> ProviderState:
        deadline = self._clock() + self.poll_timeout
        while True:
            self._sleep(self.poll_interval)
            try:
                status = self._get("/verification-status", provider=provider)
            except (requests.RequestException, WizardError) as e:
                logger.warning(f"[WIZARD] Polling error for {provider}: {e}")
                status = {}

            if status.get("status") == "verified":
                self.states[provider] = ProviderState.VERIFIED
                self.proofs[provider] = status.get("proof")
                self.request_urls.pop(provider, None)
                return ProviderState.VERIFIED
            if status.get("status") == "failed":
                self.states[provider] = ProviderState.FAILED
                self.error = f"Verification failed for {provider}"
                return ProviderState.FAILED

            if self._clock() >= deadline:
                self.states[provider] = ProviderState.TIMEOUT
                self.error = f"Verification timeout for {provider}. Please try again."
                return ProviderState.TIMEOUT

    def verify(self, provider: str, open_url: Optional[Callable[[str], Any]] = None) -> ProviderState:
        url = self.start_verification(provider)
        if url is None:
            return self.states[provider]
        if open_url is not None:
            open_url(url)
        return self.poll(provider)

    def verify_selected(self, open_url: Optional[Callable[[str], Any]] = None) -> Dict[str, ProviderState]:
        """Run every selected provider's verification side by side."""
        if not self.selected:
            return {}
        with ThreadPoolExecutor(max_workers=len(self.selected)) as pool:
            futures = {p: pool.submit(self.verify, p, open_url) for p in self.selected}
        return {p: f.result() for p, f in futures.items()}

    # ── Minting ───────────────────────────────────────────────────────────────
    def mint(self, mode: str = MODE_OFFCHAIN, submit_onchain: Optional[OnChainSubmitter] = None) -> Optional[dict]:
        if not self.wallet_address:
            self.error = "Please connect your wallet first"
            return None
        verified = self.verified_providers()
        if not verified:
            self.error = "Please verify at least one provider before minting"
            return None

        self.error = ""
        proofs = {p: self.proofs.get(p) for p in verified}
        try:
            if mode == MODE_ONCHAIN:
                if submit_onchain is None:
                    raise WizardError("On-chain mode needs a wallet to submit the transaction")
                payload = self._post("/prepare-onchain-mint", {
                    "walletAddress":     self.wallet_address,
                    "reclaimProofs":     proofs,
                    "verifiedProviders": verified,
                })
                try:
                    result = submit_onchain(payload["transformedProofs"], verified, payload)
                except Exception as e:
                    raise WizardError(f"Wallet transaction failed: {e}") from e
            else:
                result = self._post("/mint-social-proof-nft", {
                    "walletAddress":     self.wallet_address,
                    "proofs":            proofs,
                    "verifiedProviders": verified,
                    "mode":              MODE_OFFCHAIN,
                })
                if not result.get("success"):
                    raise WizardError(result.get("error") or "Minting failed. Please try again.")
        except (requests.RequestException, WizardError) as e:
            logger.error(f"[WIZARD] Minting failed: {e}")
            self.error = str(e)
            return None

        self.minted = result
        logger.info(f"[WIZARD] Minted ({mode}) token {result.get('tokenId')}")
        return result
