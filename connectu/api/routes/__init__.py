"""API route modules"""

from connectu.api.routes import (
    chats,
    otp,
    realtime,
    users,
)

__all__ = ["chats", "otp", "realtime", "users"]
