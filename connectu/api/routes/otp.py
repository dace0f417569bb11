"""
OTP routes for the ConnectU API.

Provides the public login/registration endpoints:
- Send an OTP by SMS to a phone number
- Verify the OTP, creating the user on first login, and issue a token
"""

import re
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from connectu.api.routes.dependencies import AppContext, get_context
from connectu.core.errors import ValidationError
from connectu.core.logger import get_logger


router = APIRouter()
log = get_logger("connectu.api.otp")

PHONE_RE = re.compile(r"^[0-9]{10}$")


class SendOtpRequest(BaseModel):
    """Request model for OTP dispatch"""

    phone: Optional[str] = None


class VerifyOtpRequest(BaseModel):
    """Request model for OTP verification"""

    phone: Optional[str] = None
    otp: Optional[str] = None
    sessionId: Optional[str] = None
    name: Optional[str] = None


class SendOtpResponse(BaseModel):
    """Response model for OTP dispatch"""

    success: bool
    message: str
    sessionId: str


@router.post("/send", response_model=SendOtpResponse)
async def send_otp(req: SendOtpRequest, ctx: AppContext = Depends(get_context)):
    """Text an OTP to the phone; the client keeps the returned sessionId"""
    if not req.phone or not PHONE_RE.match(req.phone):
        raise ValidationError("Invalid phone number")

    session_id = await ctx.otp.send(req.phone)
    return {"success": True, "message": "OTP sent successfully", "sessionId": session_id}


@router.post("/verify")
async def verify_otp(req: VerifyOtpRequest, ctx: AppContext = Depends(get_context)):
    """Verify an OTP and log the user in, registering them if new"""
    if not req.phone or not req.otp or not req.sessionId:
        raise ValidationError("Phone, OTP and sessionId are required")

    if not await ctx.otp.verify(req.sessionId, req.otp):
        raise ValidationError("Invalid or expired OTP")

    user = ctx.db.get_user_by_phone(req.phone)
    is_new_user = user is None
    if is_new_user:
        name = (req.name or "").strip()
        if not name:
            raise ValidationError("Name required for new users")
        if len(name) > 50:
            raise ValidationError("Name must be between 1 and 50 characters")
        user = ctx.db.create_user(req.phone, name)
        log.info("user registered user=%s", user.id)
    else:
        user = ctx.db.set_status(user.id, "active")

    return {
        "success": True,
        "message": "Registration successful" if is_new_user else "Login successful",
        "isNewUser": is_new_user,
        "token": ctx.tokens.issue(user.id),
        "user": user.to_dict(),
    }
