from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Literal, Optional
from datetime import datetime

Role = Literal["system", "user", "assistant", "tool"]


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = ""  # JSON-строка, как её прислала модель


class ChatMessage(BaseModel):
    role: Role
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = None
    tool_call_id: Optional[str] = None

    def to_openai(self) -> dict[str, Any]:
        """Сообщение в формате chat.completions."""
        message: dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        if self.tool_call_id:
            message["tool_call_id"] = self.tool_call_id
        return message

    def to_parts(self) -> dict[str, Any]:
        """Содержимое для колонки messages.parts (всё, кроме роли)."""
        return self.model_dump(exclude={"role"}, exclude_none=True)

    @classmethod
    def from_row(cls, role: str, parts: Any) -> "ChatMessage":
        if isinstance(parts, str):
            return cls(role=role, content=parts)
        return cls(role=role, **(parts or {}))


class ChatSummary(BaseModel):
    id: str
    title: str
    created_at: datetime
    updated_at: datetime


class Chat(ChatSummary):
    messages: list[ChatMessage]


class ChatRequest(BaseModel):
    """Тело POST /api/chat."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage] = Field(min_length=1)
    chat_id: str = Field(alias="chatId", min_length=1, max_length=255)
    is_new_chat: bool = Field(default=False, alias="isNewChat")
