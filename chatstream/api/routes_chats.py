from typing import Any

from fastapi import APIRouter, Query

from chatstream.schemas.chat import ChatMessageCreateRequest, ChatMessagesResponse, FinalMessageSaveRequest
from chatstream.services import message_store

router = APIRouter(prefix="/chats", tags=["chats"])


@router.get("/{chat_id}/messages", response_model=ChatMessagesResponse)
def chat_messages(chat_id: str, limit: int = Query(default=100, ge=1, le=500)) -> ChatMessagesResponse:
    chat = message_store.get_chat(chat_id)
    return ChatMessagesResponse(
        chat_id=chat_id,
        is_chat_loading=bool(chat and chat["is_chat_loading"]),
        messages=message_store.list_messages(chat_id, limit=limit),
    )


@router.post("/{chat_id}/messages")
def chat_append_message(chat_id: str, payload: ChatMessageCreateRequest) -> dict[str, Any]:
    return message_store.append_message(chat_id, payload.message, is_streaming=payload.is_streaming)


@router.put("/{chat_id}/messages/final")
def chat_save_final_message(chat_id: str, payload: FinalMessageSaveRequest) -> dict[str, Any]:
    """Replace the streaming placeholder with the finished message, or append it."""
    return message_store.save_final_message(
        chat_id,
        payload.message.to_record(),
        is_chat_loading=payload.is_chat_loading,
    )


@router.post("/{chat_id}/loading")
def chat_set_loading(chat_id: str, is_chat_loading: bool = Query(default=False)) -> dict[str, bool]:
    message_store.set_chat_loading(chat_id, is_chat_loading)
    return {"is_chat_loading": is_chat_loading}
