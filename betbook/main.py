"""
FastAPI application for the Betbook wagering engine
Includes REST API, scheduled jobs, and monitoring
"""

from fastapi import FastAPI, Depends, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from sqlalchemy import text
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional
import logging
import os

from betbook.models import Account, get_db, init_db
from betbook.auth import verify_api_key, verify_admin, verify_operator
from betbook.core.errors import BetbookError
from betbook.core.game_config import ROLE_SUBADMIN
from betbook.services import betting, events, settlement, wallet
from betbook.services.reconciliation import reconcile_accounts, run_reconciliation
from betbook.schemas import (
    AccountAssign,
    AccountCreate,
    AccountResponse,
    BalanceAdjust,
    BetCreate,
    BetResponse,
    BulkBetCreate,
    CoinFlipCreate,
    EventClone,
    EventCreate,
    EventResponse,
    MatchResult,
    OverrideRequest,
    ScheduleUpdate,
    SettlementResponse,
    TransactionResponse,
    TwoDigitResult,
    WalletRequestCreate,
    WalletRequestResponse,
    WalletReview,
)

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    logger.info("Starting Betbook")
    init_db()

    enabled = os.getenv("SCHEDULER_ENABLED", "true").lower() == "true"
    if enabled:
        timezone = os.getenv("SCHEDULER_TIMEZONE", "Asia/Kolkata")
        resume_interval = int(os.getenv("SETTLEMENT_RESUME_INTERVAL_MIN", "10"))
        reconcile_hour = int(os.getenv("RECONCILE_CRON_HOUR", "4"))

        # Finish settlements / rollovers interrupted mid-way
        scheduler.add_job(
            _resume_settlements_job,
            IntervalTrigger(minutes=resume_interval),
            id="resume_settlements",
            name="Resume Pending Settlements",
            replace_existing=True,
        )

        # Daily ledger audit
        scheduler.add_job(
            _reconcile_job,
            CronTrigger(hour=reconcile_hour, minute=0, timezone=timezone),
            id="reconcile_ledger",
            name="Ledger Reconciliation",
            replace_existing=True,
        )

        scheduler.start()
        logger.info(
            "Scheduler started: settlement resume every %dmin, reconciliation@%02d:00 %s",
            resume_interval, reconcile_hour, timezone,
        )
    else:
        logger.info("Scheduler disabled (SCHEDULER_ENABLED=false)")

    yield

    logger.info("Shutting down Betbook")
    if scheduler.running:
        scheduler.shutdown()


app = FastAPI(
    title="Betbook",
    description="Operator-run wagering engine: numeric markets, matches, coin flip",
    version="1.0",
    lifespan=lifespan,
)

# CORS (adjust origins for production)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip()
        for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
        if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# SCHEDULED JOBS
# ============================================================================

def _resume_settlements_job():
    """Settle bets left pending by an interrupted run.  Runs every N minutes."""
    try:
        results = settlement.resume_pending_settlements()
        logger.info("Settlement resume: %s", results)
    except Exception as exc:
        logger.error("Settlement resume job failed: %s", exc, exc_info=True)


def _reconcile_job():
    """Compare balances with transaction sums.  Runs daily."""
    try:
        mismatches = run_reconciliation()
        if mismatches:
            logger.warning("Reconciliation found %d mismatched accounts", len(mismatches))
    except Exception as exc:
        logger.error("Reconciliation job failed: %s", exc, exc_info=True)


# ============================================================================
# PUBLIC ENDPOINTS
# ============================================================================

@app.get("/")
async def root():
    """Health check"""
    return {
        "app": "Betbook",
        "version": "1.0",
        "status": "operational",
        "timestamp": datetime.utcnow().isoformat(),
    }


@app.get("/health")
def health_check(db: Session = Depends(get_db)):
    """Health check endpoint"""
    health = {"status": "healthy", "database": "connected", "scheduler": "running"}

    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Health check database error: %s", e)
        health["status"] = "degraded"
        health["database"] = f"error: {str(e)}"

    if not scheduler.running:
        health["scheduler"] = "stopped"

    return health


# ============================================================================
# AUTHENTICATED ENDPOINTS - EVENTS & BETS
# ============================================================================

@app.get("/api/events", response_model=List[EventResponse])
def list_events(
    family: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Events, newest first, optionally filtered by family / status."""
    return events.list_events(db, family=family, status=status)


@app.get("/api/events/{event_id}", response_model=EventResponse)
def get_event(
    event_id: int,
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return events.get_event(db, event_id)


@app.post("/api/events/{event_id}/bets", response_model=BetResponse)
def place_bet(
    event_id: int,
    payload: BetCreate,
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Place a single wager; the stake is debited immediately."""
    return betting.place_bet(
        db, account.id, event_id,
        mode=payload.mode,
        prediction=payload.prediction,
        stake=payload.stake,
        phase=payload.phase,
    )


@app.post("/api/events/{event_id}/bets/bulk", response_model=List[BetResponse])
def place_bets(
    event_id: int,
    payload: BulkBetCreate,
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """Place several wagers on one event; all succeed or none do."""
    slips = [betting.BetSlip(b.mode, b.prediction, b.stake, b.phase) for b in payload.bets]
    return betting.place_bets(db, account.id, event_id, slips)


@app.post("/api/coin-flip", response_model=BetResponse)
def coin_flip(
    payload: CoinFlipCreate,
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return betting.play_coin_flip(db, account.id, payload.prediction, payload.stake)


@app.get("/api/me", response_model=AccountResponse)
def me(account: Account = Depends(verify_api_key)):
    return account


@app.get("/api/me/bets", response_model=List[BetResponse])
def my_bets(
    status: str = Query("all", pattern="^(all|pending|settled)$"),
    limit: int = Query(100, ge=1, le=500),
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return betting.list_account_bets(db, account.id, status=status, limit=limit)


@app.get("/api/me/transactions", response_model=List[TransactionResponse])
def my_transactions(
    limit: int = Query(100, ge=1, le=500),
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return betting.list_account_transactions(db, account.id, limit=limit)


# ============================================================================
# AUTHENTICATED ENDPOINTS - WALLET
# ============================================================================

@app.post("/api/wallet/requests", response_model=WalletRequestResponse)
def create_wallet_request(
    payload: WalletRequestCreate,
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    """File a manual deposit or withdrawal request for operator review."""
    return wallet.create_wallet_request(
        db, account.id,
        amount=payload.amount,
        request_type=payload.request_type,
        payment_mode=payload.payment_mode,
        payment_details=payload.payment_details,
        notes=payload.notes,
    )


@app.get("/api/wallet/my-requests", response_model=List[WalletRequestResponse])
def my_wallet_requests(
    account: Account = Depends(verify_api_key),
    db: Session = Depends(get_db),
):
    return wallet.list_account_requests(db, account.id)


# ============================================================================
# ADMIN ENDPOINTS - EVENTS
# ============================================================================

@app.post("/admin/events", response_model=EventResponse)
def create_event(
    payload: EventCreate,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    event = events.create_event(db, **payload.model_dump(exclude_none=True))
    logger.info("Event %d created by %s", event.id, user.username)
    return event


@app.post("/admin/events/{event_id}/clone", response_model=EventResponse)
def clone_event(
    event_id: int,
    payload: EventClone,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    return events.clone_event(db, event_id, **payload.model_dump(exclude_none=True))


@app.patch("/admin/events/{event_id}/schedule", response_model=EventResponse)
def update_schedule(
    event_id: int,
    payload: ScheduleUpdate,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    return events.update_event_schedule(db, event_id, **payload.model_dump(exclude_unset=True))


@app.delete("/admin/events/{event_id}")
def delete_event(
    event_id: int,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    events.delete_event(db, event_id)
    return {"message": f"Event {event_id} deleted"}


@app.post("/admin/events/{event_id}/open", response_model=EventResponse)
def open_event(event_id: int, user: Account = Depends(verify_admin), db: Session = Depends(get_db)):
    return events.open_event(db, event_id)


@app.post("/admin/events/{event_id}/close", response_model=EventResponse)
def close_event(event_id: int, user: Account = Depends(verify_admin), db: Session = Depends(get_db)):
    return events.close_event(db, event_id)


@app.post("/admin/events/{event_id}/reopen", response_model=EventResponse)
def reopen_event(event_id: int, user: Account = Depends(verify_admin), db: Session = Depends(get_db)):
    return events.reopen_event(db, event_id)


@app.post("/admin/events/{event_id}/open-result", response_model=SettlementResponse)
def declare_open_result(
    event_id: int,
    payload: TwoDigitResult,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    """Declare a numeric market's open result and settle open-phase bets."""
    summary = settlement.declare_open_result(db, event_id, payload.result, performed_by=user.id)
    return summary.to_dict()


@app.post("/admin/events/{event_id}/close-result", response_model=SettlementResponse)
def declare_close_result(
    event_id: int,
    payload: TwoDigitResult,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    """Declare a numeric market's final result; settles and reschedules."""
    summary = settlement.declare_close_result(db, event_id, payload.result, performed_by=user.id)
    return summary.to_dict()


@app.post("/admin/events/{event_id}/result", response_model=SettlementResponse)
def declare_match_result(
    event_id: int,
    payload: MatchResult,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    summary = settlement.declare_match_result(db, event_id, payload.result, performed_by=user.id)
    return summary.to_dict()


@app.get("/admin/events/{event_id}/bets", response_model=List[BetResponse])
def event_bets(
    event_id: int,
    status: str = Query("all", pattern="^(all|pending|settled)$"),
    user: Account = Depends(verify_operator),
    db: Session = Depends(get_db),
):
    """All bets on an event; sub-admins see their assigned players' bets only."""
    subadmin_id = user.id if user.role == ROLE_SUBADMIN else None
    return settlement.list_event_bets(db, event_id, status=status, subadmin_id=subadmin_id)


@app.put("/admin/bets/{bet_id}/override", response_model=BetResponse)
def override_bet(
    bet_id: int,
    payload: OverrideRequest,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    """Re-score one settled bet; the payout difference is booked as an override."""
    return settlement.override_bet_result(db, bet_id, payload.result, performed_by=user.id)


# ============================================================================
# ADMIN ENDPOINTS - ACCOUNTS & WALLET
# ============================================================================

@app.post("/admin/accounts", response_model=AccountResponse)
def create_account(
    payload: AccountCreate,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    return wallet.create_account(db, performed_by=user.id, **payload.model_dump())


@app.patch("/admin/accounts/{account_id}/balance", response_model=AccountResponse)
def adjust_balance(
    account_id: int,
    payload: BalanceAdjust,
    user: Account = Depends(verify_operator),
    db: Session = Depends(get_db),
):
    wallet.adjust_balance(db, account_id, payload.amount, user, payload.description)
    return betting.get_account(db, account_id)


@app.patch("/admin/accounts/{account_id}/block", response_model=AccountResponse)
def block_account(account_id: int, user: Account = Depends(verify_operator), db: Session = Depends(get_db)):
    return wallet.block_account(db, account_id, user)


@app.patch("/admin/accounts/{account_id}/unblock", response_model=AccountResponse)
def unblock_account(account_id: int, user: Account = Depends(verify_operator), db: Session = Depends(get_db)):
    return wallet.unblock_account(db, account_id, user)


@app.patch("/admin/accounts/{account_id}/assign", response_model=AccountResponse)
def assign_account(
    account_id: int,
    payload: AccountAssign,
    user: Account = Depends(verify_admin),
    db: Session = Depends(get_db),
):
    return wallet.assign_account(db, account_id, payload.subadmin_id)


@app.get("/admin/wallet/requests", response_model=List[WalletRequestResponse])
def list_wallet_requests(
    status: Optional[str] = Query(None, pattern="^(pending|approved|rejected)$"),
    user: Account = Depends(verify_operator),
    db: Session = Depends(get_db),
):
    return wallet.list_wallet_requests(db, user, status=status)


@app.patch("/admin/wallet/requests/{request_id}", response_model=WalletRequestResponse)
def review_wallet_request(
    request_id: int,
    payload: WalletReview,
    user: Account = Depends(verify_operator),
    db: Session = Depends(get_db),
):
    return wallet.review_wallet_request(
        db, request_id, user, approve=payload.status == "approved", notes=payload.notes
    )


# ============================================================================
# ADMIN ENDPOINTS - JOBS
# ============================================================================

@app.post("/admin/force-settlement")
def force_settlement(user: Account = Depends(verify_admin), db: Session = Depends(get_db)):
    """Manually trigger the settlement-resume job (admin only)."""
    logger.info("Manual settlement resume triggered by %s", user.username)
    try:
        results = settlement.resume_pending_settlements(db)
        return {"message": "Settlement resume complete", **results}
    except Exception as exc:
        raise HTTPException(status_code=500, detail=str(exc))


@app.get("/admin/reconcile")
def reconcile(user: Account = Depends(verify_admin), db: Session = Depends(get_db)):
    """Run the ledger audit now and return any mismatched accounts."""
    mismatches = reconcile_accounts(db)
    return {
        "status": "ok" if not mismatches else "mismatch",
        "mismatches": [m.to_dict() for m in mismatches],
    }


@app.get("/admin/scheduler/status")
async def get_scheduler_status(user: Account = Depends(verify_admin)):
    """Get scheduler job status"""
    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
        })

    return {
        "running": scheduler.running,
        "jobs": jobs,
    }


@app.exception_handler(BetbookError)
async def betbook_exception_handler(request, exc: BetbookError):
    """Domain errors → 4xx with a machine-readable code"""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Catch-all exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": type(exc).__name__}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
