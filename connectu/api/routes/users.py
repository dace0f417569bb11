"""
User routes for the ConnectU API.

Profile and account endpoints for the authenticated user:
- Read / update profile (phone is immutable)
- Update settings (read receipts)
- Update online status
- Look up registered users by phone numbers
- Logout
"""

import re
from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, StrictBool

from connectu.api.routes.dependencies import AppContext, get_context, get_current_user
from connectu.core.errors import ValidationError
from connectu.core.realtime import EVENT_USER_STATUS
from connectu.models.chat import User, iso


router = APIRouter()

LOOKUP_PHONE_RE = re.compile(r"^[0-9]{10,15}$")
MAX_LOOKUP_PHONES = 100


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    profilePic: Optional[str] = None
    about: Optional[str] = None
    phone: Optional[str] = None


class SettingsRequest(BaseModel):
    readReceipts: Optional[StrictBool] = None


class StatusRequest(BaseModel):
    isOnline: Optional[StrictBool] = None


class FindByPhonesRequest(BaseModel):
    phones: Any = None


class SuccessResponse(BaseModel):
    success: bool
    message: str


@router.get("/me")
async def get_my_profile(user: User = Depends(get_current_user)):
    return {"success": True, "user": user.to_dict()}


@router.put("/me")
async def update_profile(
    req: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Update name / profile picture / about"""
    if req.phone:
        raise ValidationError("Phone number cannot be updated")
    if req.name is not None and (not req.name.strip() or len(req.name) > 50):
        raise ValidationError("Name must be between 1 and 50 characters")
    if req.about is not None and len(req.about) > 139:
        raise ValidationError("About must be 139 characters or less")

    updated = ctx.db.update_profile(
        user.id, name=req.name, profile_pic=req.profilePic, about=req.about
    )
    return {"success": True, "message": "Profile updated successfully", "user": updated.to_dict()}


@router.patch("/me/settings")
async def update_settings(
    req: SettingsRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    if req.readReceipts is None:
        raise ValidationError("At least one setting must be provided")

    updated = ctx.db.update_settings(user.id, req.readReceipts)
    return {
        "success": True,
        "message": "Settings updated successfully",
        "settings": {"readReceipts": updated.settings.read_receipts},
    }


@router.patch("/me/status")
async def update_online_status(
    req: StatusRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    if req.isOnline is None:
        raise ValidationError("isOnline field is required")

    updated = ctx.db.set_presence(user.id, req.isOnline, last_seen=ctx.db.now())
    await ctx.hub.broadcast(
        EVENT_USER_STATUS,
        {"userId": user.id, "isOnline": updated.is_online, "lastSeen": iso(updated.last_seen)},
    )
    return {
        "success": True,
        "message": "Status updated successfully",
        "isOnline": updated.is_online,
        "lastSeen": iso(updated.last_seen),
    }


@router.post("/find-by-phones")
async def find_users_by_phones(
    req: FindByPhonesRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Which of these phone numbers belong to registered users"""
    if not isinstance(req.phones, list):
        raise ValidationError("phones must be an array")
    if not req.phones:
        raise ValidationError("phones array cannot be empty")
    if len(req.phones) > MAX_LOOKUP_PHONES:
        raise ValidationError(f"Maximum {MAX_LOOKUP_PHONES} phone numbers allowed per request")

    valid: List[str] = [p for p in req.phones if isinstance(p, str) and LOOKUP_PHONE_RE.match(p)]
    if not valid:
        raise ValidationError("No valid phone numbers provided")

    users = ctx.db.find_users_by_phones(valid)
    return {
        "success": True,
        "count": len(users),
        "requestedCount": len(valid),
        "users": [
            {
                "_id": u.id,
                "phone": u.phone,
                "name": u.name,
                "profilePic": u.profile_pic,
                "about": u.about,
                "isOnline": u.is_online,
                "lastSeen": iso(u.last_seen),
                "createdAt": iso(u.created_at),
            }
            for u in users
        ],
    }


@router.post("/logout", response_model=SuccessResponse)
async def logout(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    ctx.db.set_status(user.id, "inactive")
    return {"success": True, "message": "Logged out successfully"}
