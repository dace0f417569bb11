"""
ConnectU - FastAPI Application

Main entry point for the ConnectU messaging backend.
Provides REST endpoints for OTP login, profiles and chats, plus the
realtime websocket at /ws.
"""

from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from connectu.api.routes.dependencies import AppContext
from connectu.core.errors import ConnectUError
from connectu.core.logger import get_logger


log = get_logger("connectu.app")


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


def _validation_message(exc: RequestValidationError) -> str:
    parts = []
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
        parts.append(f"{field}: {err.get('msg')}" if field else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """Build the application.

    Args:
        context: Pre-built AppContext (tests); when omitted the context is
            created from on-disk configuration on first use
    """
    app = FastAPI(
        title="ConnectU",
        description="One-to-one messaging backend with OTP login and realtime delivery",
        version="1.0.0",
    )
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConnectUError)
    async def _domain_error(request: Request, exc: ConnectUError):
        return _failure(exc.status_code, exc.message)

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException):
        return _failure(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_error(request: Request, exc: RequestValidationError):
        return _failure(400, _validation_message(exc))

    @app.exception_handler(Exception)
    async def _unhandled_error(request: Request, exc: Exception):
        log.exception("unhandled error on %s %s", request.method, request.url.path)
        return _failure(500, str(exc) or "Internal server error")

    @app.get("/")
    async def root():
        return {"message": "ConnectU API is running", "docs": "/docs"}

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {"status": "ok"}

    # Include routers
    from connectu.api.routes import chats, otp, realtime, users

    app.include_router(otp.router, prefix="/otp", tags=["otp"])
    app.include_router(users.router, prefix="/users", tags=["users"])
    app.include_router(chats.router, prefix="/chats", tags=["chats"])
    app.include_router(realtime.router, tags=["realtime"])

    return app


app = create_app()
