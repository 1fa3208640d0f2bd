"""
Gateway route tests through FastAPI's TestClient, with an in-memory store
and the in-process registry client.
"""

import pytest
from eth_account import Account
from fastapi.testclient import TestClient

from conftest import ALICE, DEPLOYER, OTHER_KEY, WITNESS, encode_callback, make_proof
from gateway.main import create_app
from socialproof.chain import LOCAL_CHAIN_ID, LocalRegistryClient
from socialproof.registry import SocialProofRegistry
from socialproof.reclaim import ReclaimOracle
from socialproof.session_store import InMemorySessionStore


@pytest.fixture
def registry():
    return SocialProofRegistry(owner=DEPLOYER, verifier=ReclaimOracle(witnesses=[WITNESS]))


@pytest.fixture
def client(settings, oracle, registry):
    app = create_app(settings, InMemorySessionStore(), oracle, LocalRegistryClient(registry))
    return TestClient(app)


@pytest.fixture
def offline_client(settings, oracle):
    app = create_app(settings, InMemorySessionStore(), oracle, registry_client=None)
    return TestClient(app)


class TestInfoRoutes:

    def test_root(self, client):
        assert client.get("/").json() == {"message": "Backend server is running", "status": "ok"}

    def test_config_status(self, client):
        body = client.get("/config-status").json()
        assert body["providers"]["github"]["configured"] is True
        assert body["providers"]["gmail"]["hasPlaceholders"] is True
        assert body["hasAnyConfigured"] is True

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "healthy"
        assert body["contractConfigured"] is True
        assert body["supportedProviders"] == ["github", "gmail", "linkedin", "twitter"]
        assert "gmail" in body["configuredProviders"]
        assert "linkedin" not in body["configuredProviders"]
        assert body["sessions"] == 0


class TestVerificationFlow:

    def test_generate_config(self, client):
        res = client.get("/generate-config", params={"provider": "github", "address": ALICE})
        assert res.status_code == 200
        body = res.json()
        assert body["provider"] == "github"
        assert body["sessionId"].startswith("github-")
        assert body["requestUrl"].startswith("https://share.reclaimprotocol.org/verifier/")

    def test_generate_config_unknown_provider(self, client):
        res = client.get("/generate-config", params={"provider": "discord"})
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid provider"
        assert client.get("/debug/sessions").json() == {"sessions": []}

    def test_generate_config_missing_provider(self, client):
        assert client.get("/generate-config").status_code == 400

    def test_generate_config_placeholder_credentials(self, client):
        res = client.get("/generate-config", params={"provider": "gmail"})
        assert res.status_code == 500
        body = res.json()
        assert body["error"] == "Provider not configured"
        assert "GMAIL_APP_ID" in body["details"]

    def test_callback_then_status(self, client):
        session_id = client.get("/generate-config", params={"provider": "github", "address": ALICE}).json()["sessionId"]
        assert client.get("/verification-status", params={"provider": "github"}).json()["status"] == "pending"

        proof = make_proof()
        res = client.post("/receive-proofs/github", content=encode_callback(proof))
        assert res.status_code == 200
        assert res.text == "OK"

        status = client.get("/verification-status", params={"provider": "github"}).json()
        assert status == {"status": "verified", "sessionId": session_id, "proof": proof, "provider": "github"}

    def test_callback_invalid_proof(self, client):
        res = client.post("/receive-proofs/github", content=encode_callback(make_proof(signer_key=OTHER_KEY)))
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid proof"

    def test_callback_object_context(self, client):
        proof = make_proof()
        proof["claimData"]["context"] = {"contextMessage": "github-1"}
        res = client.post("/receive-proofs/github", content=encode_callback(proof))
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid proof"
        assert "message" in res.json()

    def test_default_oracle_without_witnesses_rejects_self_signed_proof(self, settings):
        settings.reclaim_witnesses = []
        client = TestClient(create_app(settings, InMemorySessionStore()))
        client.get("/generate-config", params={"provider": "github", "address": ALICE})
        proof = make_proof(signer_key=OTHER_KEY)
        proof["witnesses"] = [{"id": Account.from_key(OTHER_KEY).address.lower()}]
        res = client.post("/receive-proofs/github", content=encode_callback(proof))
        assert res.status_code == 400
        assert client.get("/verification-status", params={"provider": "github"}).json()["status"] == "pending"

    def test_callback_garbage_body(self, client):
        res = client.post("/receive-proofs/github", content="%7Bnope")
        assert res.status_code == 500
        assert res.json()["error"] == "Failed to process proof"

    def test_callback_unknown_provider(self, client):
        assert client.post("/receive-proofs/discord", content=encode_callback(make_proof())).status_code == 400

    def test_status_not_found(self, client):
        assert client.get("/verification-status", params={"provider": "twitter"}).json() == {"status": "not_found"}

    def test_debug_sessions(self, client):
        client.get("/generate-config", params={"provider": "twitter", "address": ALICE})
        sessions = client.get("/debug/sessions").json()["sessions"]
        assert len(sessions) == 1
        assert sessions[0]["provider"] == "twitter"
        assert sessions[0]["address"] == ALICE


class TestMintRoutes:

    def test_mint(self, client, registry):
        res = client.post("/mint-social-proof-nft", json={
            "walletAddress":     ALICE,
            "proofs":            {"github": make_proof()},
            "verifiedProviders": ["github"],
        })
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["tokenId"] == "0"
        assert registry.has_already_minted(ALICE)

    def test_mint_twice_is_chain_error(self, client):
        payload = {"walletAddress": ALICE, "proofs": {"github": make_proof()}, "verifiedProviders": ["github"]}
        client.post("/mint-social-proof-nft", json=payload)
        res = client.post("/mint-social-proof-nft", json=payload)
        assert res.status_code == 500
        assert "Already minted" in res.json()["details"]

    def test_mint_missing_fields(self, client):
        res = client.post("/mint-social-proof-nft", json={"walletAddress": ALICE})
        assert res.status_code == 400
        assert res.json()["error"] == "Invalid request data"

    def test_mint_without_chain_config(self, offline_client):
        res = offline_client.post("/mint-social-proof-nft", json={
            "walletAddress": ALICE, "proofs": {"github": make_proof()}, "verifiedProviders": ["github"],
        })
        assert res.status_code == 500
        assert res.json()["error"] == "Server configuration incomplete"

    def test_prepare_onchain(self, client):
        res = client.post("/prepare-onchain-mint", json={
            "walletAddress": ALICE, "reclaimProofs": {"github": make_proof()}, "verifiedProviders": ["github"],
        })
        assert res.status_code == 200
        body = res.json()
        assert body["chainId"] == LOCAL_CHAIN_ID
        assert len(body["transformedProofs"]) == 1
        assert any(entry.get("name") == "mintWithProofVerification" for entry in body["abi"])

    def test_test_proof_verification(self, client):
        assert client.post("/test-proof-verification", json={"proof": make_proof()}).json()["isValid"] is True
        forged = client.post("/test-proof-verification", json={"proof": make_proof(signer_key=OTHER_KEY)})
        assert forged.json()["isValid"] is False

    def test_test_proof_verification_requires_proof(self, client):
        assert client.post("/test-proof-verification", json={}).status_code == 400
