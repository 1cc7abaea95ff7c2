import secrets

from fastapi import APIRouter, Header, HTTPException, Request

from gtx_privacy.api.models import (
    AmountRequest,
    BalanceResponse,
    BatchShieldRequest,
    HistoryEntryResponse,
    ReceiptResponse,
    RollupOperationRequest,
    RollupOperationResponse,
    SessionResponse,
    ShieldRequest,
    SolvencyResponse,
    StealthLinkRequest,
    StealthLinkResponse,
    TradeInviteRequest,
    TradeInviteResponse,
    TradeOfferRequest,
    TradeOfferResponse,
    TransferRequest,
    UnlockRequest,
    UnshieldRequest,
    ViewKeyRequest,
)
from gtx_privacy.core.models import LedgerReceipt
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.wallet import LocalSigner, WalletError
from gtx_privacy.engine.engine import PrivacyEngine

router = APIRouter(tags=["Private Balance"])


def get_engine(request: Request) -> PrivacyEngine:
    """Dependency to retrieve the initialized PrivacyEngine from app state."""
    engine = getattr(request.app.state, "engine", None)
    if not engine:
        raise HTTPException(status_code=500, detail="privacy engine not initialized")
    return engine


def get_session(request: Request, token: str | None) -> UnlockedSession:
    sessions: dict[str, UnlockedSession] = request.app.state.sessions
    session = sessions.get(token or "")
    if session is None:
        raise HTTPException(status_code=401, detail="Unknown or missing X-Session-Token")
    return session


def _receipt(receipt: LedgerReceipt) -> ReceiptResponse:
    return ReceiptResponse(**receipt.model_dump())


def _open(request: Request, session: UnlockedSession) -> SessionResponse:
    token = secrets.token_urlsafe(32)
    request.app.state.sessions[token] = session
    return SessionResponse(session_token=token, owner=session.owner, read_only=session.read_only)


# ------------------------------------------------------------------
# Sessions
# ------------------------------------------------------------------

@router.post("/session/unlock", response_model=SessionResponse)
def unlock(request: Request, req: UnlockRequest):
    """
    Unlock a signing session.

    The server signs the unlock challenge once and keeps only the derived
    seed in memory; the secret key is not retained.
    """
    try:
        signer = LocalSigner.from_secret_hex(req.secret_key)
    except WalletError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return _open(request, UnlockedSession.unlock(signer))


@router.post("/session/view", response_model=SessionResponse)
def open_view(request: Request, req: ViewKeyRequest):
    """Open a read-only session that can only decrypt history."""
    return _open(request, UnlockedSession.from_view_key(req.owner, req.view_key))


@router.post("/session/lock")
def lock(request: Request, x_session_token: str | None = Header(None)):
    session = get_session(request, x_session_token)
    session.lock()
    request.app.state.sessions.pop(x_session_token, None)
    return {"status": "locked"}


@router.get("/view-key")
def view_key(request: Request, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    session = get_session(request, x_session_token)
    return {"owner": session.owner, "view_key": engine.export_view_key(session)}


# ------------------------------------------------------------------
# Balance
# ------------------------------------------------------------------

def _balance(engine: PrivacyEngine, session: UnlockedSession, refresh: bool) -> BalanceResponse:
    state = engine.refresh(session) if refresh else engine.balance(session)
    return BalanceResponse(
        owner=session.owner,
        staked=engine.staked_amount(session.owner),
        **state.model_dump(),
    )


@router.get("/balance", response_model=BalanceResponse)
def balance(request: Request, x_session_token: str | None = Header(None)):
    return _balance(get_engine(request), get_session(request, x_session_token), refresh=False)


@router.post("/balance/refresh", response_model=BalanceResponse)
def refresh(request: Request, x_session_token: str | None = Header(None)):
    """Re-read the ledger account and reconcile with the cached amount."""
    return _balance(get_engine(request), get_session(request, x_session_token), refresh=True)


@router.post("/balance/recover", response_model=BalanceResponse)
def recover(request: Request, x_session_token: str | None = Header(None)):
    """Rebuild a lost cached amount from the on-ledger commitment."""
    engine = get_engine(request)
    session = get_session(request, x_session_token)
    engine.recover_balance(session)
    return _balance(engine, session, refresh=False)


@router.get("/history", response_model=list[HistoryEntryResponse])
def history(request: Request, x_session_token: str | None = Header(None)):
    """Decrypted history, newest first. Works with view-key sessions."""
    engine = get_engine(request)
    session = get_session(request, x_session_token)
    return [HistoryEntryResponse(**e.model_dump()) for e in engine.load_history(session)]


# ------------------------------------------------------------------
# Operations
# ------------------------------------------------------------------

@router.post("/shield", response_model=ReceiptResponse)
def shield(request: Request, req: ShieldRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.shield(get_session(request, x_session_token), req.amount, req.origin))


@router.post("/shield/batch", response_model=ReceiptResponse)
def batch_shield(request: Request, req: BatchShieldRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.batch_shield(get_session(request, x_session_token), req.amounts, req.origin))


@router.post("/transfer", response_model=ReceiptResponse)
def transfer(request: Request, req: TransferRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.transfer(get_session(request, x_session_token), req.recipient, req.amount))


@router.post("/unshield", response_model=ReceiptResponse)
def unshield(request: Request, req: UnshieldRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.unshield(get_session(request, x_session_token), req.amount, req.token_account))


@router.post("/stake", response_model=ReceiptResponse)
def stake(request: Request, req: AmountRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.stake_private(get_session(request, x_session_token), req.amount))


@router.post("/unstake", response_model=ReceiptResponse)
def unstake(request: Request, req: AmountRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.unstake_private(get_session(request, x_session_token), req.amount))


# ------------------------------------------------------------------
# Stealth links
# ------------------------------------------------------------------

@router.post("/stealth", response_model=StealthLinkResponse)
def create_stealth(request: Request, req: AmountRequest, x_session_token: str | None = Header(None)):
    """
    Create a bearer link for `amount`.
    ANYONE HOLDING THE LINK CAN CLAIM IT. Share it over a private channel.
    """
    engine = get_engine(request)
    return StealthLinkResponse(link=engine.create_stealth_link(get_session(request, x_session_token), req.amount))


@router.post("/stealth/claim", response_model=ReceiptResponse)
def claim_stealth(request: Request, req: StealthLinkRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.claim_stealth_link(get_session(request, x_session_token), req.link))


# ------------------------------------------------------------------
# Trade
# ------------------------------------------------------------------

@router.get("/trade/offers", response_model=list[TradeOfferResponse])
def list_offers(request: Request, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    session = get_session(request, x_session_token)
    return [
        TradeOfferResponse(**o.model_dump(mode="json", exclude={"signature"}))
        for o in engine.trade_book.offers(session.owner)
    ]


@router.post("/trade/offers", response_model=TradeInviteResponse)
def create_offer(request: Request, req: TradeOfferRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    invite = engine.create_trade_offer(get_session(request, x_session_token), req.amount, req.price)
    return TradeInviteResponse(invite=invite)


@router.post("/trade/fulfill", response_model=ReceiptResponse)
def fulfill_offer(request: Request, req: TradeInviteRequest, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.fulfill_trade_offer(get_session(request, x_session_token), req.invite))


@router.post("/trade/offers/{offer_id}/cancel", response_model=TradeOfferResponse)
def cancel_offer(request: Request, offer_id: str, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    offer = engine.cancel_trade_offer(get_session(request, x_session_token), offer_id)
    return TradeOfferResponse(**offer.model_dump(mode="json", exclude={"signature"}))


# ------------------------------------------------------------------
# Rollup
# ------------------------------------------------------------------

@router.get("/rollup", response_model=list[RollupOperationResponse])
def rollup_queue(request: Request, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    session = get_session(request, x_session_token)
    return [
        RollupOperationResponse(id=op.id, amount=op.amount, origin=op.origin, commitment=op.commitment)
        for op in engine.rollup_queue(session.owner)
    ]


@router.post("/rollup/operations", response_model=RollupOperationResponse)
def queue_rollup_operation(
    request: Request, req: RollupOperationRequest, x_session_token: str | None = Header(None)
):
    engine = get_engine(request)
    op = engine.prepare_rollup_operation(get_session(request, x_session_token), req.amount, req.origin)
    return RollupOperationResponse(id=op.id, amount=op.amount, origin=op.origin, commitment=op.commitment)


@router.post("/rollup/submit", response_model=ReceiptResponse)
def submit_rollup(request: Request, x_session_token: str | None = Header(None)):
    engine = get_engine(request)
    return _receipt(engine.submit_rollup(get_session(request, x_session_token)))


@router.get("/vault/solvency", response_model=SolvencyResponse)
def solvency(request: Request):
    engine = get_engine(request)
    return SolvencyResponse(asset=engine.asset, solvent=engine.verify_solvency())
