"""
Chat routes for the ConnectU API.

Provides endpoints for:
- Chat list and message history of the authenticated user
- Sending, editing and deleting messages
- Clearing a chat, marking it read
- Creating a chat (optionally saving the contact) and listing contacts
"""

from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from connectu.api.routes.dependencies import AppContext, get_context, get_current_user
from connectu.models.chat import User, iso


router = APIRouter()


class SendMessageRequest(BaseModel):
    receiverPhone: Optional[str] = None
    content: Optional[str] = None
    type: str = "text"


class EditMessageRequest(BaseModel):
    messageId: Optional[str] = None
    newContent: Optional[str] = None


class MessageRefRequest(BaseModel):
    messageId: Optional[str] = None


class ChatRefRequest(BaseModel):
    chatId: Optional[str] = None


class CreateChatRequest(BaseModel):
    phone: Optional[str] = None
    name: Optional[str] = None
    isNewContact: bool = False


class ContactResponse(BaseModel):
    """Response model for a saved contact"""

    phone: str
    name: str


class ContactListResponse(BaseModel):
    """Response model for contact list"""

    success: bool
    contacts: List[ContactResponse]


@router.get("")
async def list_chats(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    """Chat list, most recently active first"""
    summaries = ctx.resolver.chat_list(user.id)
    return {"success": True, "chats": [s.to_dict() for s in summaries]}


@router.get("/contacts", response_model=ContactListResponse)
async def list_contacts(user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    contacts = ctx.db.list_contacts(user.id)
    return {"success": True, "contacts": [c.to_dict() for c in contacts]}


@router.get("/{chat_id}/messages")
async def get_chat_messages(
    chat_id: str, user: User = Depends(get_current_user), ctx: AppContext = Depends(get_context)
):
    """Visible message history of one chat, oldest first"""
    messages = ctx.resolver.history(chat_id, user.id)
    return {"success": True, "messages": [m.to_dict() for m in messages]}


@router.post("/send", status_code=201)
async def send_message(
    req: SendMessageRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Send a message by phone number, creating the chat if needed"""
    message = await ctx.chats.send_message(user, req.receiverPhone, req.content, req.type)
    return {"success": True, "message": message.to_dict()}


@router.put("/edit-message")
async def edit_message(
    req: EditMessageRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    message, is_last = await ctx.chats.edit_message(user, req.messageId, req.newContent)
    return {"success": True, "message": message.to_dict(), "isLastMessage": is_last}


@router.delete("/delete-message")
async def delete_message(
    req: MessageRefRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Hide a message for the caller only"""
    await ctx.chats.delete_for_me(user, req.messageId)
    return {"success": True, "message": "Message deleted for you", "messageId": req.messageId}


@router.delete("/delete-message-for-everyone")
async def delete_message_for_everyone(
    req: MessageRefRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    message = await ctx.chats.delete_for_everyone(user, req.messageId)
    return {
        "success": True,
        "message": "Message deleted for everyone",
        "messageId": message.id,
        "chatId": message.chat_id,
    }


@router.delete("/clear-chat")
async def clear_chat(
    req: ChatRefRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    cleared_at = await ctx.chats.clear_chat(user, req.chatId)
    return {"success": True, "message": "Chat cleared", "chatId": req.chatId, "clearedAt": iso(cleared_at)}


@router.post("/mark-read")
async def mark_read(
    req: ChatRefRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    count = await ctx.chats.mark_read(user, req.chatId)
    return {"success": True, "chatId": req.chatId, "count": count}


@router.post("/create")
async def create_chat(
    req: CreateChatRequest,
    user: User = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    """Open a chat with a registered phone number, saving it as a contact if asked"""
    summary, created = await ctx.chats.create_chat(user, req.phone, req.name, req.isNewContact)
    return JSONResponse(
        status_code=201 if created else 200,
        content={"success": True, "chat": summary.to_dict()},
    )
