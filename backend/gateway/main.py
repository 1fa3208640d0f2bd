"""
SocialProofPass — zkTLS Social Proof Gateway
FastAPI server exposing the proof relay and mint coordinator to the dApp.

Routes:
  - GET  /config-status             per-provider credential status
  - GET  /generate-config           Reclaim request URL + pending session
  - POST /receive-proofs/{provider} oracle callback (URL-encoded JSON body)
  - GET  /verification-status       latest session for a provider
  - POST /mint-social-proof-nft     off-chain verified mint (deployer key)
  - POST /prepare-onchain-mint      contract-shaped proofs for wallet submission
  - POST /test-proof-verification   dry-run of the contract's proof check
  - GET  /health, GET /debug/sessions
"""

import logging
import os
import time
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from socialproof import __version__
from socialproof.chain import RegistryClient, build_registry_client
from socialproof.config import DEFAULT_RATE_LIMIT, Settings
from socialproof.errors import SocialProofError
from socialproof.mint import MODE_OFFCHAIN, MintCoordinator
from socialproof.reclaim import ReclaimOracle
from socialproof.relay import ProofRelay
from socialproof.session_store import SessionStore, build_store

load_dotenv()

# ─── Setup ────────────────────────────────────────────────────────────────────
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] SOCIALPROOF :: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
log = logging.getLogger("socialproof.api")

# ─── Rate Limiter ─────────────────────────────────────────────────────────────
# Limit configurable via env: e.g. RATE_LIMIT_MINT="10/minute"
RATE_LIMIT_MINT = os.getenv("RATE_LIMIT_MINT", DEFAULT_RATE_LIMIT)
limiter = Limiter(key_func=get_remote_address)

router = APIRouter()


# ─── Request Models ───────────────────────────────────────────────────────────
# Fields are optional so missing data maps to 400 "Invalid request data"
class MintRequest(BaseModel):
    walletAddress:     Optional[str]            = None
    proofs:            Optional[Dict[str, Any]] = None
    verifiedProviders: Optional[List[str]]      = None
    mode:              Optional[str]            = MODE_OFFCHAIN


class PrepareOnChainRequest(BaseModel):
    walletAddress:     Optional[str]            = None
    reclaimProofs:     Optional[Dict[str, Any]] = None
    verifiedProviders: Optional[List[str]]      = None


class TestProofRequest(BaseModel):
    proof: Optional[Dict[str, Any]] = None


# ─── Error handling ───────────────────────────────────────────────────────────
async def _social_proof_error_handler(request: Request, exc: SocialProofError) -> JSONResponse:
    level = logging.WARNING if exc.status_code < 500 else logging.ERROR
    log.log(level, f"[{request.url.path}] {exc.error}: {exc} {exc.details}".rstrip())
    content = {"error": exc.error, "message": str(exc)}
    if exc.details:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


def _relay(request: Request) -> ProofRelay:
    return request.app.state.relay


def _minter(request: Request) -> MintCoordinator:
    return request.app.state.minter


# ─── Routes ───────────────────────────────────────────────────────────────────

@router.get("/")
async def root():
    return {"message": "Backend server is running", "status": "ok"}


@router.get("/config-status", summary="Provider Configuration Status")
async def config_status(request: Request) -> Dict[str, Any]:
    return _relay(request).config_status()


@router.get("/generate-config", summary="Generate Reclaim Proof Request")
async def generate_config(
    request:  Request,
    provider: Optional[str] = Query(default=None),
    address:  Optional[str] = Query(default=None),
) -> Dict[str, Any]:
    return _relay(request).request_configuration(provider, address).to_dict()


@router.post("/receive-proofs/{provider}", summary="Reclaim Proof Callback")
async def receive_proofs(provider: str, request: Request):
    body = await request.body()
    _relay(request).receive_callback(provider, body)
    return PlainTextResponse("OK")


@router.get("/verification-status", summary="Latest Verification Session")
async def verification_status(request: Request, provider: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    return _relay(request).query_status(provider)


@router.post("/mint-social-proof-nft", summary="Mint with Off-Chain Verification")
@limiter.limit(RATE_LIMIT_MINT)
async def mint_social_proof_nft(request: Request, body: MintRequest) -> Dict[str, Any]:
    result = _minter(request).mint_off_chain(
        body.walletAddress, body.proofs, body.verifiedProviders, body.mode,
    )
    return result.to_dict()


@router.post("/prepare-onchain-mint", summary="Prepare On-Chain Verification Payload")
async def prepare_onchain_mint(request: Request, body: PrepareOnChainRequest) -> Dict[str, Any]:
    return _minter(request).prepare_on_chain_payload(
        body.walletAddress, body.reclaimProofs, body.verifiedProviders,
    )


@router.post("/test-proof-verification", summary="Dry-run Contract Proof Check")
async def test_proof_verification(request: Request, body: TestProofRequest) -> Dict[str, Any]:
    return _minter(request).test_proof_verification(body.proof)


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    settings: Settings = request.app.state.settings
    store:    SessionStore = request.app.state.store
    return {
        "status":              "healthy",
        "version":             __version__,
        "timestamp":           int(time.time() * 1000),
        "supportedProviders":  list(settings.providers),
        "configuredProviders": [p for p, c in settings.providers.items() if c.is_present],
        "contractConfigured":  _minter(request).client is not None,
        "sessions":            store.session_count(),
        "proofs":              store.proof_count(),
    }


@router.get("/debug/sessions")
async def debug_sessions(request: Request) -> Dict[str, Any]:
    store: SessionStore = request.app.state.store
    return {"sessions": [s.to_dict() for s in store.sessions()]}


# ─── App factory ──────────────────────────────────────────────────────────────
def create_app(
    settings:        Optional[Settings]       = None,
    store:           Optional[SessionStore]   = None,
    oracle:          Optional[ReclaimOracle]  = None,
    registry_client: Optional[RegistryClient] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    store    = store or build_store(settings.session_backend, settings.redis_url)
    oracle   = oracle or ReclaimOracle(witnesses=settings.reclaim_witnesses, share_url=settings.reclaim_share_url)
    if registry_client is None:
        registry_client = build_registry_client(settings)

    app = FastAPI(
        title="SocialProofPass — zkTLS Social Proof Gateway",
        description="Reclaim proof relay and Social Proof Pass minting",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.limiter  = limiter
    app.state.settings = settings
    app.state.store    = store
    app.state.relay    = ProofRelay(settings, store, oracle)
    app.state.minter   = MintCoordinator(registry_client)

    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(SocialProofError, _social_proof_error_handler)

    log.info(f"CORS allowed origins: {settings.allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(router)

    @app.on_event("startup")
    async def _startup_validation():
        """Report missing credentials at boot instead of at the first request."""
        log.info(f"Base URL: {settings.base_url}")
        log.info(f"Supported providers: {', '.join(settings.providers)}")
        warnings_found = settings.startup_warnings()
        for w in warnings_found:
            log.critical(f"\n{'='*70}\nCONFIGURATION WARNING: {w}\n{'='*70}")
        if not warnings_found:
            log.info("Startup validation passed. Providers and chain credentials are configured.")

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.port)


if __name__ == "__main__":
    run()
