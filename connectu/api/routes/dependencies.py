"""
Shared dependencies for API routes.

Provides FastAPI dependency injection for:
- AppContext (store, ledger, resolver, realtime hub, services)
- the authenticated User behind a bearer token
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional

from fastapi import Depends, FastAPI, Request

from connectu.core.auth import TokenManager, resolve_secret
from connectu.core.chat_service import ChatService
from connectu.core.config import AppConfig, load_config
from connectu.core.errors import Unauthorized
from connectu.core.ledger import ChatLedger
from connectu.core.logger import set_level
from connectu.core.messages import MessageStore
from connectu.core.otp import build_provider
from connectu.core.realtime import RealtimeHub
from connectu.core.storage import Database
from connectu.core.visibility import VisibilityResolver
from connectu.models.chat import User


@dataclass
class AppContext:
    """Everything a request handler needs, built once per application"""

    config: AppConfig
    db: Database
    messages: MessageStore
    ledger: ChatLedger
    resolver: VisibilityResolver
    hub: RealtimeHub
    chats: ChatService
    tokens: TokenManager
    otp: Any

    @classmethod
    def from_config(
        cls,
        cfg: AppConfig,
        otp_provider: Any = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> "AppContext":
        set_level(cfg.log_level)
        db = Database(cfg.database_path, clock=clock) if clock else Database(cfg.database_path)
        messages = MessageStore(db)
        ledger = ChatLedger(db)
        resolver = VisibilityResolver(db, messages, ledger, page_size=cfg.chat_page_size)
        hub = RealtimeHub(db, ledger)
        return cls(
            config=cfg,
            db=db,
            messages=messages,
            ledger=ledger,
            resolver=resolver,
            hub=hub,
            chats=ChatService(db, messages, ledger, resolver, hub),
            tokens=TokenManager(
                resolve_secret(cfg.jwt_secret),
                algorithm=cfg.jwt_algorithm,
                expire_days=cfg.jwt_expire_days,
            ),
            otp=otp_provider or build_provider(cfg),
        )


def context_for(app: FastAPI) -> AppContext:
    """Return the app's context, building it from on-disk config on first use"""
    ctx = getattr(app.state, "context", None)
    if ctx is None:
        ctx = AppContext.from_config(load_config())
        app.state.context = ctx
    return ctx


def get_context(request: Request) -> AppContext:
    return context_for(request.app)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header"""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request, ctx: AppContext = Depends(get_context)) -> User:
    """Resolve the authenticated user.

    Raises:
        Unauthorized: If the token is missing or invalid, or its user is gone
    """
    token = bearer_token(request.headers.get("authorization"))
    if not token:
        raise Unauthorized("Not authorized, no token provided")
    user = ctx.db.get_user(ctx.tokens.verify(token))
    if user is None:
        raise Unauthorized("User not found")
    return user
