"""
SocialProofPass — runtime configuration.

All settings come from environment variables (a `.env` file is loaded by the
gateway through python-dotenv before `Settings.from_env()` runs).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

logger = logging.getLogger("socialproof.config")

PLACEHOLDER_MARKER = "your_"

DEFAULT_BASE_URL      = "http://localhost:3000"
DEFAULT_SHARE_URL     = "https://share.reclaimprotocol.org/verifier/"
DEFAULT_ORIGINS       = "http://localhost:5173,http://127.0.0.1:5173"
DEFAULT_RATE_LIMIT    = "10/minute"


class Provider(str, Enum):
    GITHUB   = "github"
    GMAIL    = "gmail"
    LINKEDIN = "linkedin"
    TWITTER  = "twitter"


class SessionMatching(str, Enum):
    LATEST_PENDING = "latest_pending"   # first pending session for the provider
    CONTEXT        = "context"          # session id carried in the oracle context


@dataclass
class ProviderCredentials:
    app_id:      Optional[str] = None
    app_secret:  Optional[str] = None
    provider_id: Optional[str] = None

    def _values(self) -> List[Optional[str]]:
        return [self.app_id, self.app_secret, self.provider_id]

    @property
    def has_placeholders(self) -> bool:
        return any(v and PLACEHOLDER_MARKER in v for v in self._values())

    @property
    def is_configured(self) -> bool:
        return all(self._values()) and not self.has_placeholders

    @property
    def is_present(self) -> bool:
        """All three values set, placeholders included (what /health reports)."""
        return all(self._values())

    @classmethod
    def from_env(cls, provider: str) -> "ProviderCredentials":
        prefix = provider.upper()
        return cls(
            app_id      = os.getenv(f"{prefix}_APP_ID"),
            app_secret  = os.getenv(f"{prefix}_APP_SECRET"),
            provider_id = os.getenv(f"{prefix}_PROVIDER_ID"),
        )


def _split_csv(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    providers:            Dict[str, ProviderCredentials] = field(default_factory=dict)
    base_url:             str           = DEFAULT_BASE_URL
    port:                 int           = 3000
    rpc_url:              Optional[str] = None
    deployer_private_key: Optional[str] = None
    nft_contract_address: Optional[str] = None
    allowed_origins:      List[str]     = field(default_factory=lambda: _split_csv(DEFAULT_ORIGINS))
    rate_limit_mint:      str           = DEFAULT_RATE_LIMIT
    session_backend:      str           = "memory"
    redis_url:            str           = "redis://localhost:6379/0"
    session_matching:     SessionMatching = SessionMatching.LATEST_PENDING
    reclaim_witnesses:    List[str]     = field(default_factory=list)
    reclaim_share_url:    str           = DEFAULT_SHARE_URL
    tx_timeout_sec:       int           = 120

    @property
    def chain_configured(self) -> bool:
        return bool(self.rpc_url and self.deployer_private_key and self.nft_contract_address)

    def callback_url(self, provider: str) -> str:
        return f"{self.base_url.rstrip('/')}/receive-proofs/{provider}"

    def credentials_for(self, provider: str) -> Optional[ProviderCredentials]:
        return self.providers.get(provider)

    @classmethod
    def from_env(cls) -> "Settings":
        matching_raw = os.getenv("SESSION_MATCHING", SessionMatching.LATEST_PENDING.value)
        try:
            matching = SessionMatching(matching_raw.strip().lower())
        except ValueError:
            logger.warning(
                f"[CONFIG] Unknown SESSION_MATCHING '{matching_raw}', "
                f"falling back to '{SessionMatching.LATEST_PENDING.value}'"
            )
            matching = SessionMatching.LATEST_PENDING

        return cls(
            providers            = {p.value: ProviderCredentials.from_env(p.value) for p in Provider},
            base_url             = os.getenv("BASE_URL", DEFAULT_BASE_URL),
            port                 = int(os.getenv("PORT", "3000")),
            rpc_url              = os.getenv("RPC_URL") or None,
            deployer_private_key = os.getenv("DEPLOYER_PRIVATE_KEY") or None,
            nft_contract_address = os.getenv("NFT_CONTRACT_ADDRESS") or None,
            allowed_origins      = _split_csv(os.getenv("ALLOWED_ORIGINS", DEFAULT_ORIGINS)),
            rate_limit_mint      = os.getenv("RATE_LIMIT_MINT", DEFAULT_RATE_LIMIT),
            session_backend      = os.getenv("SESSION_BACKEND", "memory").strip().lower(),
            redis_url            = os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            session_matching     = matching,
            reclaim_witnesses    = _split_csv(os.getenv("RECLAIM_WITNESSES", "")),
            reclaim_share_url    = os.getenv("RECLAIM_SHARE_URL", DEFAULT_SHARE_URL),
            tx_timeout_sec       = int(os.getenv("TX_TIMEOUT_SEC", "120")),
        )

    def startup_warnings(self) -> List[str]:
        warnings_found = []
        configured = [name for name, creds in self.providers.items() if creds.is_configured]
        if not configured:
            warnings_found.append(
                "NO PROVIDER IS CONFIGURED — /generate-config will fail for every provider. "
                "Set {PROVIDER}_APP_ID, {PROVIDER}_APP_SECRET and {PROVIDER}_PROVIDER_ID "
                "from https://dev.reclaimprotocol.org/."
            )
        if not self.chain_configured:
            warnings_found.append(
                "RPC_URL, DEPLOYER_PRIVATE_KEY or NFT_CONTRACT_ADDRESS missing — "
                "off-chain minting and on-chain preparation are disabled."
            )
        if not self.reclaim_witnesses:
            warnings_found.append(
                "RECLAIM_WITNESSES is empty: every callback proof will be rejected as invalid. "
                "Set it to the comma-separated witness addresses for the current epoch."
            )
        return warnings_found
