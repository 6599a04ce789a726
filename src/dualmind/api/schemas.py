"""HTTP API のリクエスト・レスポンススキーマ.

リクエストは camelCase（sessionId 等）と snake_case の両方を受け付け、
レスポンスは camelCase で返す。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..db.models import ChatSession, Message, MessagePage


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    """POST /api/chat"""

    prompt: str
    models: list[str] = Field(min_length=1)
    session_id: str | None = None


class CreateSessionRequest(CamelModel):
    """POST /api/sessions"""

    model_type: str | None = None
    title: str | None = None
    # タイトル未指定の場合、最初のプロンプトからタイトルを作る
    first_prompt: str | None = None


class RenameSessionRequest(CamelModel):
    """PATCH /api/sessions?id=..."""

    title: str | None = None


class CompareRequest(CamelModel):
    """POST /api/compare（プリセットIDまたは任意のプロンプト）"""

    prompt_id: str | None = None
    prompt: str | None = None


class SessionResponse(CamelModel):
    id: str
    title: str
    model_type: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: ChatSession) -> "SessionResponse":
        return cls(
            id=session.id,
            title=session.title,
            model_type=session.model_type,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class MessageResponse(CamelModel):
    id: str
    session_id: str
    role: str
    content: str
    reasoning: str | None = None
    model_type: str | None = None
    created_at: datetime

    @classmethod
    def from_message(cls, message: Message) -> "MessageResponse":
        return cls(
            id=message.id,
            session_id=message.session_id,
            role=message.role.value,
            content=message.content,
            reasoning=message.reasoning,
            model_type=message.model_type,
            created_at=message.created_at,
        )


class MessagePageResponse(CamelModel):
    messages: list[MessageResponse]
    has_more: bool

    @classmethod
    def from_page(cls, page: MessagePage) -> "MessagePageResponse":
        return cls(
            messages=[MessageResponse.from_message(m) for m in page.messages],
            has_more=page.has_more,
        )
