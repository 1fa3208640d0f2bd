"""
Shared fixtures: deterministic accounts, witness-signed Reclaim proofs and a
settings object with a mix of configured / placeholder / missing providers.
"""

import json
import os
import sys
from urllib.parse import quote

import pytest

# ── Path setup ────────────────────────────────────────────────────────────────
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))
os.environ.setdefault("RATE_LIMIT_MINT", "1000/minute")

from eth_account import Account

from socialproof.config import ProviderCredentials, Settings
from socialproof.reclaim import ReclaimOracle, claim_identifier, sign_claim

WITNESS_KEY  = "0x" + "11" * 32
APP_KEY      = "0x" + "22" * 32
DEPLOYER_KEY = "0x" + "33" * 32
OTHER_KEY    = "0x" + "44" * 32

WITNESS  = Account.from_key(WITNESS_KEY).address
DEPLOYER = Account.from_key(DEPLOYER_KEY).address
ALICE    = "0x" + "a1" * 20
BOB      = "0x" + "b2" * 20

FIXED_NOW = 1_700_000_000.0


def canonical(obj) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"))


def make_proof(
    username:    str = "octocat",
    owner:       str = ALICE,
    context:     str = "",
    signer_key:  str = WITNESS_KEY,
    timestamp_s: int = 1_699_999_000,
    epoch:       int = 1,
) -> dict:
    parameters = canonical({"username": username})
    identifier = claim_identifier("http", parameters, context)
    claim = {
        "provider":   "http",
        "parameters": parameters,
        "owner":      owner.lower(),
        "timestampS": timestamp_s,
        "context":    context,
        "identifier": identifier,
        "epoch":      epoch,
    }
    return {
        "identifier": identifier,
        "claimData":  claim,
        "signatures": [sign_claim(claim, signer_key)],
        "witnesses":  [{"id": WITNESS.lower(), "url": "wss://witness.reclaimprotocol.org/ws"}],
    }


def encode_callback(proof: dict) -> str:
    return quote(json.dumps(proof))


class FakeClock:
    def __init__(self, start: float = FIXED_NOW):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        providers={
            "github":   ProviderCredentials("gh-app", APP_KEY, "gh-provider"),
            "gmail":    ProviderCredentials("your_app_id", "your_app_secret", "your_provider_id"),
            "linkedin": ProviderCredentials(None, None, None),
            "twitter":  ProviderCredentials("tw-app", APP_KEY, "tw-provider"),
        },
        base_url="https://relay.example.org",
        reclaim_witnesses=[WITNESS],
    )


@pytest.fixture
def oracle(clock):
    return ReclaimOracle(witnesses=[WITNESS], clock=clock)
