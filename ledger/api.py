import asyncio
from contextlib import asynccontextmanager, suppress
from typing import Optional

from fastapi import FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from referrals.engine import ReferralEngine

from .config import Settings, get_settings
from .logging_config import get_logger, setup_logging
from .models import (
    Account, RankedEntry, RegisterRequest, RegisterResponse,
    UpdateCoinsRequest, UpdateCoinsResponse,
)
from .service import AccountNotFoundError, InvalidAmountError, LedgerService

logger = get_logger(__name__)


def log_bot_exit(task: asyncio.Task) -> None:
    """Report a bot polling task that stopped on its own.

    The HTTP API keeps serving; the failure is retrieved here so shutdown
    does not re-raise it.
    """
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("bot_failed", error=repr(error))
    else:
        logger.warning("bot_stopped")


def create_app(
    ledger_service: Optional[LedgerService] = None,
    settings: Optional[Settings] = None,
    root_path: str = "",
) -> FastAPI:
    settings = settings or get_settings()
    ledger_service = ledger_service or LedgerService(settings=settings)
    engine = ReferralEngine(ledger_service, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings)
        bot_task = None
        if settings.telegram_bot_token:
            from telegram_bot.handlers import run_bot

            bot_task = asyncio.create_task(run_bot(engine, settings))
            bot_task.add_done_callback(log_bot_exit)
        else:
            logger.info("bot_disabled", reason="TELEGRAM_BOT_TOKEN not set")
        app.state.bot_task = bot_task
        yield
        if bot_task is not None and not bot_task.done():
            bot_task.cancel()
            with suppress(asyncio.CancelledError):
                await bot_task

    app = FastAPI(
        title="Referral Coin Ledger API",
        description="Coin balances with a daily cap, referral bonuses and a referral leaderboard",
        version="1.0.0",
        root_path=root_path,
        lifespan=lifespan,
    )
    app.state.ledger_service = ledger_service
    app.state.referral_engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/", response_class=PlainTextResponse, tags=["System"])
    def root():
        return "Bot is running"

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "referral-coin-ledger"}

    @app.post("/register", response_model=RegisterResponse, tags=["Users"])
    def register(request: RegisterRequest) -> RegisterResponse:
        if not request.user_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing userId")
        ledger_service.get_or_create(request.user_id, request.username)
        return RegisterResponse()

    @app.post("/update-coins", response_model=UpdateCoinsResponse, tags=["Coins"])
    def update_coins(request: UpdateCoinsRequest) -> UpdateCoinsResponse:
        if not request.user_id or request.coins is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing userId or coins")
        try:
            granted = ledger_service.credit_with_daily_cap(request.user_id, request.coins)
        except AccountNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
        except InvalidAmountError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        return UpdateCoinsResponse(coins_added=granted)

    @app.get("/leaderboard", response_model=list[RankedEntry], tags=["Leaderboard"])
    def leaderboard(limit: int = Query(default=settings.leaderboard_limit, ge=0)) -> list[RankedEntry]:
        return engine.top_ranked(limit)

    @app.get("/users/{user_id}", response_model=Account, tags=["Users"])
    def get_user(user_id: str) -> Account:
        try:
            return ledger_service.get_account(user_id)
        except AccountNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

