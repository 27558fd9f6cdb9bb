"""
zkx402 Access API Server

FastAPI server for identity-gated, pay-per-access content.

Endpoints:
- POST /upload - Register content and wait for its proof
- GET /access/{id} - Price an access request (always 402)
- GET /secret/{id}, GET /discount/{id} - Aliases of /access/{id}
- POST /pay/{id} - Deliver after payment at the public price
- POST /pay/{route}/{id} - Deliver after payment at a tier price
- GET /audit/{id} - Content record and its deliveries
- GET /health, GET /api/v1/status, GET /api/v1/tiers
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, Field

from zkx402 import __version__
from zkx402.auth.credentials import CredentialVerifier, DidJwtCredentialVerifier
from zkx402.auth.identity_parser import DISCRETE_FIELDS
from zkx402.auth.payment import PAYMENT_RESPONSE_HEADER, X402Paywall
from zkx402.auth.verifier import IdentityVerifier
from zkx402.backends import (
    ContentStore,
    InMemoryContentStore,
    InMemoryLedgerStore,
    LedgerStore,
    SQLiteContentStore,
    SQLiteLedgerStore,
)
from zkx402.connectors.credential_service import RemoteCredentialVerifier
from zkx402.connectors.facilitator import Facilitator, HttpFacilitator
from zkx402.connectors.proving_client import HttpProvingClient, MockProvingClient, ProvingClient
from zkx402.core.audit_ledger import AuditLedger
from zkx402.core.content_registry import DEFAULT_PROOF_TIMEOUT, ContentRegistry
from zkx402.core.errors import AccessProtocolError, InvalidInput, NotFound
from zkx402.core.gateway import AccessGateway
from zkx402.core.models import PaymentClaim
from zkx402.core.pricing import DEFAULT_NETWORK, PriceTable, PriceTier, default_tiers


# =============================================================================
# Configuration
# =============================================================================

def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class ServerConfig(BaseModel):
    """API server configuration."""

    host: str = Field(
        default="127.0.0.1",
        description="Server host (use 0.0.0.0 for Docker/cloud, set via ZKX402_API_HOST env var)"
    )
    port: int = Field(default=3001, description="Server port")
    workers: int = Field(default=1, description="Number of worker processes")
    reload: bool = Field(default=False, description="Auto-reload on code changes")

    # Storage
    store_backend: str = Field(default="memory", description="Record store (memory, sqlite)")
    db_path: Path = Field(default=Path("zkx402.db"), description="SQLite database file")

    # Proving service
    proof_timeout: float = Field(default=DEFAULT_PROOF_TIMEOUT, description="Seconds to wait for a proof")
    prover_url: str = Field(default="", description="Proving service URL")
    mock_prover: bool = Field(default=False, description="Use the scripted mock prover when no PROVER_URL is set")
    prover_poll_interval: float = Field(default=1.0, description="Seconds between prover polls")

    # Identity
    credential_verifier_url: str = Field(
        default="",
        description="Remote credential verification service (empty: in-process DID-JWT)"
    )
    allowed_issuers: List[str] = Field(default_factory=list, description="Trusted credential issuers")
    signing_domain: str = Field(default="", description="Ownership message prefix")

    # Pricing
    pay_network: str = Field(default=DEFAULT_NETWORK, description="Settlement network")
    price_journalist: Decimal = Field(default=Decimal("1.00"))
    price_premium: Decimal = Field(default=Decimal("2.50"))
    price_public: Decimal = Field(default=Decimal("5.00"))

    # Payment settlement
    receiver_wallet: str = Field(default="", description="Wallet receiving payments")
    pay_asset: str = Field(default="", description="Payment token contract address")
    facilitator_url: str = Field(default="", description="x402 facilitator (empty: trust upstream)")

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Build configuration from environment variables."""
        issuers = [i.strip() for i in os.getenv("ALLOWED_ISSUERS", "").split(",") if i.strip()]
        return cls(
            host=os.getenv("ZKX402_API_HOST", "127.0.0.1"),
            port=int(os.getenv("ZKX402_API_PORT", "3001")),
            workers=int(os.getenv("WORKERS", "1")),
            reload=_env_flag("RELOAD"),
            store_backend=os.getenv("STORE_BACKEND", "memory"),
            db_path=Path(os.getenv("DB_PATH", "zkx402.db")),
            proof_timeout=float(os.getenv("PROOF_TIMEOUT", str(DEFAULT_PROOF_TIMEOUT))),
            prover_url=os.getenv("PROVER_URL", ""),
            mock_prover=_env_flag("ZKX402_MOCK_PROVER"),
            prover_poll_interval=float(os.getenv("PROVER_POLL_INTERVAL", "1.0")),
            credential_verifier_url=os.getenv("CREDENTIAL_VERIFIER_URL", ""),
            allowed_issuers=issuers,
            signing_domain=os.getenv("SIGNING_DOMAIN", ""),
            pay_network=os.getenv("PAY_NETWORK", DEFAULT_NETWORK),
            price_journalist=Decimal(os.getenv("PRICE_JOURNALIST", "1.00")),
            price_premium=Decimal(os.getenv("PRICE_PREMIUM", "2.50")),
            price_public=Decimal(os.getenv("PRICE_PUBLIC", "5.00")),
            receiver_wallet=os.getenv("RECEIVER_WALLET", ""),
            pay_asset=os.getenv("PAY_ASSET", ""),
            facilitator_url=os.getenv("FACILITATOR_URL", ""),
        )

    def price_table(self) -> PriceTable:
        return PriceTable(default_tiers(
            network=self.pay_network,
            journalist=self.price_journalist,
            premium=self.price_premium,
            public=self.price_public,
        ))


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """
    Application state.

    Collaborators passed in are used as-is; anything left out is built from
    the configuration in `initialize`.
    """

    def __init__(
        self,
        content_store: Optional[ContentStore] = None,
        ledger_store: Optional[LedgerStore] = None,
        prover: Optional[ProvingClient] = None,
        credential_verifier: Optional[CredentialVerifier] = None,
        facilitator: Optional[Facilitator] = None,
    ):
        self.config: Optional[ServerConfig] = None
        self.content_store = content_store
        self.ledger_store = ledger_store
        self.prover = prover
        self.credential_verifier = credential_verifier
        self.facilitator = facilitator

        self.prices: Optional[PriceTable] = None
        self.registry: Optional[ContentRegistry] = None
        self.ledger: Optional[AuditLedger] = None
        self.verifier: Optional[IdentityVerifier] = None
        self.gateway: Optional[AccessGateway] = None
        self.paywall: Optional[X402Paywall] = None
        self.upload_counter: int = 0

    async def initialize(self, config: ServerConfig):
        """Initialize application state."""
        self.config = config

        sqlite = config.store_backend == "sqlite"
        if self.content_store is None:
            self.content_store = SQLiteContentStore(str(config.db_path)) if sqlite else InMemoryContentStore()
        if self.ledger_store is None:
            self.ledger_store = SQLiteLedgerStore(str(config.db_path)) if sqlite else InMemoryLedgerStore()

        if self.prover is None:
            if config.prover_url:
                self.prover = HttpProvingClient(config.prover_url, poll_interval=config.prover_poll_interval)
            elif config.mock_prover:
                logger.warning("📦 [MOCK] No PROVER_URL set, using mock prover")
                self.prover = MockProvingClient()
            else:
                logger.error("No PROVER_URL set and ZKX402_MOCK_PROVER is not enabled")
                raise RuntimeError("PROVER_URL is required (set ZKX402_MOCK_PROVER=true for development)")

        if self.credential_verifier is None:
            if config.credential_verifier_url:
                self.credential_verifier = RemoteCredentialVerifier(config.credential_verifier_url)
            else:
                self.credential_verifier = DidJwtCredentialVerifier()

        if self.facilitator is None and config.facilitator_url:
            self.facilitator = HttpFacilitator(config.facilitator_url)

        self.prices = config.price_table()
        self.registry = ContentRegistry(self.content_store, self.prover, config.proof_timeout)
        self.ledger = AuditLedger(self.ledger_store)
        self.verifier = IdentityVerifier(
            self.credential_verifier,
            allowed_issuers=config.allowed_issuers,
            signing_domain=config.signing_domain,
        )
        self.gateway = AccessGateway(self.registry, self.ledger, self.verifier, self.prices)

        if self.facilitator is not None:
            self.paywall = X402Paywall(
                self.facilitator,
                pay_to=config.receiver_wallet,
                asset=config.pay_asset,
            )

        logger.info("✅ zkx402 access gateway initialized")
        logger.info("   Store: {}", config.store_backend)
        logger.info("   Prover: {}", config.prover_url or "mock")
        logger.info("   Credentials: {}", config.credential_verifier_url or "in-process DID-JWT")
        logger.info("   Allowed issuers: {}", ", ".join(config.allowed_issuers) or "any")
        logger.info("   Network: {}", config.pay_network)
        logger.info("   Payments: {}", "facilitator " + config.facilitator_url if self.paywall else "trusted upstream")

    async def shutdown(self):
        """Cleanup resources."""
        for component in (self.prover, self.credential_verifier, self.facilitator):
            close = getattr(component, "close", None)
            if close is not None:
                await close()
        for store in (self.content_store, self.ledger_store):
            if store is not None:
                store.close()
        logger.info("✅ zkx402 API server shutdown complete")


def get_state(request: Request) -> AppState:
    return request.app.state.zkx402


async def _json_body(request: Request) -> Dict[str, Any]:
    """Request body as a JSON object; anything else reads as empty."""
    body = await request.body()
    if not body:
        return {}
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


# =============================================================================
# Health & Status Endpoints
# =============================================================================

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    state = get_state(request)
    return {
        "status": "healthy",
        "service": "zkx402-access-api",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "gateway_initialized": state.gateway is not None,
    }


@router.get("/api/v1/status")
async def get_status(request: Request):
    """Get API status and configuration."""
    state = get_state(request)
    config = state.config
    return {
        "service": "zkx402 Access Gateway",
        "version": __version__,
        "storage": {"backend": config.store_backend},
        "prover": {
            "url": config.prover_url or None,
            "mock": not config.prover_url,
            "timeout": config.proof_timeout,
        },
        "identity": {
            "credential_verifier": config.credential_verifier_url or "did-jwt",
            "allowed_issuers": config.allowed_issuers,
        },
        "payments": {
            "network": config.pay_network,
            "facilitator": config.facilitator_url or None,
        },
        "total_uploads": state.upload_counter,
        "total_deliveries": len(state.ledger),
    }


@router.get("/api/v1/tiers")
async def list_tiers(request: Request):
    """List price tiers and their pay routes."""
    return {
        "tiers": [
            {
                "name": tier.name,
                "price": tier.display_price,
                "network": tier.network,
                "payRoute": f"/pay/{tier.pay_route}/{{id}}",
                "description": tier.description,
            }
            for tier in get_state(request).prices.tiers
        ]
    }


# =============================================================================
# Content Registration
# =============================================================================

@router.post("/upload")
async def upload_content(request: Request):
    """
    Register content and wait for the prover to authenticate it.

    Body: {contentRef, contentHash, proofJobHash}. `reference` and
    `proofJobId` are accepted as aliases.
    """
    state = get_state(request)
    body = await _json_body(request)

    content_id = state.registry.register(
        body.get("contentRef", body.get("reference")),
        body.get("contentHash"),
        body.get("proofJobHash", body.get("proofJobId")),
    )
    state.upload_counter += 1
    record = await state.registry.await_verification(content_id)

    logger.info("✅ Verified content {} ({})", record.id, record.reference)
    return {"id": record.id, "verified": True}


# =============================================================================
# Access Challenge
# =============================================================================

@router.get("/access/{content_id}")
@router.get("/secret/{content_id}")
@router.get("/discount/{content_id}")
async def request_access(content_id: str, request: Request):
    """
    Price an access request.

    Identity comes from the X-Proof header or the did/nonce/signature/vcJwt
    fields (query string or JSON body). The answer is always 402: there is
    no free path to content.
    """
    state = get_state(request)

    fields = {key: request.query_params[key] for key in DISCRETE_FIELDS if key in request.query_params}
    body = await _json_body(request)
    fields.update({key: body[key] for key in DISCRETE_FIELDS if key in body})

    challenge = await state.gateway.request_access(content_id, request.headers, fields or None)
    return JSONResponse(challenge.to_dict(), status_code=status.HTTP_402_PAYMENT_REQUIRED)


# =============================================================================
# Payment & Delivery
# =============================================================================

async def _deliver(request: Request, content_id: str, tier: PriceTier) -> JSONResponse:
    state = get_state(request)
    state.gateway.ensure_deliverable(content_id)

    if state.paywall is not None:
        claim = await state.paywall.collect(request.headers, tier, str(request.url))
    else:
        # Settled upstream; the caller reports payer and receipt
        body = await _json_body(request)
        claim = PaymentClaim(payer=str(body.get("payer") or "unknown"), receipt=body.get("receipt"))

    delivery = state.gateway.complete_delivery(content_id, claim, tier)
    response = JSONResponse(delivery.to_dict())

    payment_response = X402Paywall.response_header(claim) if state.paywall else None
    if payment_response:
        response.headers[PAYMENT_RESPONSE_HEADER] = payment_response
    return response


@router.post("/pay/{content_id}")
async def pay_public(content_id: str, request: Request):
    """Deliver after payment at the public price."""
    return await _deliver(request, content_id, get_state(request).prices.public)


@router.post("/pay/{pay_route}/{content_id}")
async def pay_tier(pay_route: str, content_id: str, request: Request):
    """Deliver after payment at the price of the tier behind `pay_route`."""
    tier = get_state(request).prices.by_route(pay_route)
    if tier is None:
        raise NotFound(f"unknown pay route {pay_route}")
    return await _deliver(request, content_id, tier)


# =============================================================================
# Audit
# =============================================================================

@router.get("/audit/{content_id}")
async def audit_content(content_id: str, request: Request):
    """Content record and every delivery of it, oldest first."""
    state = get_state(request)
    record = state.registry.get(content_id)
    return {
        "record": record.to_dict(),
        "accesses": [grant.to_dict() for grant in state.ledger.list_for(content_id)],
    }


# =============================================================================
# FastAPI Application
# =============================================================================

async def protocol_error_handler(request: Request, exc: AccessProtocolError):
    if exc.status_code >= 500:
        logger.error("{} {} failed: {}", request.method, request.url.path, exc)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    return await protocol_error_handler(request, InvalidInput(detail=str(exc)))


async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on {} {}", request.method, request.url.path)
    return JSONResponse({"error": "internal_error"}, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(config: Optional[ServerConfig] = None, state: Optional[AppState] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        config: Server configuration (default: from environment)
        state: Pre-wired application state (tests)
    """
    app_state = state or AppState()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan."""
        await app_state.initialize(config or ServerConfig.from_env())
        yield
        await app_state.shutdown()

    app = FastAPI(
        title="zkx402 Access API",
        description="Identity-gated, pay-per-access content over HTTP 402",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.zkx402 = app_state

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[PAYMENT_RESPONSE_HEADER],
    )

    app.add_exception_handler(AccessProtocolError, protocol_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
    app.include_router(router)
    return app


app = create_app()


# =============================================================================
# Main Entry Point
# =============================================================================

def main():
    """Run API server."""
    # Configure logging
    logger.add(
        "logs/zkx402_api_{time}.log",
        rotation="1 day",
        retention="30 days",
        level="INFO"
    )

    config = ServerConfig.from_env()

    logger.info("🚀 Starting zkx402 Access API server on {}:{}", config.host, config.port)
    logger.info("   Store: {} ({})", config.store_backend, config.db_path)
    logger.info("   Prover: {}", config.prover_url or "mock")
    logger.info("   Reload: {}", config.reload)
    logger.info("   Workers: {}", config.workers)

    # Run server
    uvicorn.run(
        "zkx402.api_server:app",
        host=config.host,
        port=config.port,
        reload=config.reload,
        workers=config.workers if not config.reload else 1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
