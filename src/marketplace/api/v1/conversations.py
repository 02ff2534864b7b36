"""
Conversation routes.

Handlers parse input, resolve the requester and call MessagingService; every
application error propagates to the handlers in error_handlers.py.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from marketplace.schemas import Ack, SendMessageRequest, StartConversationRequest
from marketplace.services.messaging_service import MessagingService
from .dependencies import get_messaging_service, get_requester_id

router = APIRouter(prefix="/conversations", tags=["conversations"])


def success(**data: BaseModel | list[BaseModel] | int | str | None) -> dict:
    """`{"status": "success", "data": {...}}` with pydantic values dumped to JSON types."""

    def dump(value):
        if isinstance(value, BaseModel):
            return value.model_dump(mode="json")
        if isinstance(value, list):
            return [dump(item) for item in value]
        return value

    return {"status": "success", "data": {key: dump(value) for key, value in data.items()}}


def acknowledged(ack: Ack) -> dict:
    return {"status": "success", "message": ack.message, "data": {"affected": ack.affected}}


@router.post("/start")
async def start_conversation(
    body: StartConversationRequest,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    conversation = await service.start_conversation(
        requester_id, body.product_id, body.receiver_id, body.initial_message
    )
    return success(conversation=conversation)


@router.get("")
async def list_conversations(
    page: int = Query(1),
    limit: int | None = Query(None),
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    result = await service.list_conversations(requester_id, page, limit)
    return success(
        conversations=result.items,
        total=result.total,
        current_page=result.page,
        limit=result.page_size,
    )


@router.get("/{conversation_id}")
async def get_conversation(
    conversation_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    conversation = await service.get_conversation(requester_id, conversation_id)
    return success(conversation=conversation)


@router.get("/{conversation_id}/messages")
async def get_messages(
    conversation_id: UUID,
    page: int = Query(1),
    limit: int | None = Query(None),
    anchor: UUID | None = Query(None),
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    history = await service.history(requester_id, conversation_id, page, limit, anchor)
    return success(
        messages=history.items,
        total=history.total,
        total_pages=history.total_pages,
        current_page=history.page,
        limit=history.page_size,
        anchor=str(history.anchor) if history.anchor else None,
    )


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: UUID,
    body: SendMessageRequest,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    message = await service.send_message(requester_id, conversation_id, body.message, body.type)
    return success(message=message)


@router.put("/{conversation_id}/read")
async def mark_read(
    conversation_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return acknowledged(await service.mark_read(requester_id, conversation_id))


@router.delete("/{conversation_id}")
async def delete_conversation(
    conversation_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return acknowledged(await service.delete_conversation(requester_id, conversation_id))


@router.post("/{conversation_id}/block")
async def block_conversation(
    conversation_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return acknowledged(await service.block_conversation(requester_id, conversation_id))


@router.post("/{conversation_id}/unblock")
async def unblock_conversation(
    conversation_id: UUID,
    requester_id: UUID = Depends(get_requester_id),
    service: MessagingService = Depends(get_messaging_service),
):
    return acknowledged(await service.unblock_conversation(requester_id, conversation_id))
