import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gtx_privacy.api.routes import router
from gtx_privacy.config import EngineConfig
from gtx_privacy.core.ledger import LedgerRejection
from gtx_privacy.crypto.prover import ProofGenerationFailure
from gtx_privacy.engine.engine import PrivacyEngine
from gtx_privacy.errors import PrivacyError

logger = logging.getLogger("gtx_privacy.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Load configuration
    config = EngineConfig.from_env()
    if not config.ledger_url:
        logger.warning("GTX_LEDGER_URL not set; serving against the in-memory reference ledger.")

    app.state.engine = PrivacyEngine.from_config(config)
    app.state.sessions = {}

    yield

    for session in app.state.sessions.values():
        session.lock()
    app.state.sessions.clear()


app = FastAPI(
    title="GridTokenX Privacy Engine API",
    description="REST API wrapping the confidential balance and transaction engine",
    version="0.1.0",
    lifespan=lifespan,
)

# Allow CORS for easy frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(router)


@app.exception_handler(LedgerRejection)
async def ledger_rejection_handler(request: Request, exc: LedgerRejection):
    return JSONResponse(
        status_code=409,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(ProofGenerationFailure)
async def proof_failure_handler(request: Request, exc: ProofGenerationFailure):
    return JSONResponse(
        status_code=502,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(PrivacyError)
async def privacy_error_handler(request: Request, exc: PrivacyError):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc), "error": type(exc).__name__},
    )


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        status_code=400,
        content={"detail": str(exc)},
    )


@app.get("/health")
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}
