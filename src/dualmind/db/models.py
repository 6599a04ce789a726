"""セッション管理のデータモデル."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from uuid import uuid4

from ..providers.base import ModelIdentifier


def utcnow() -> datetime:
    """タイムゾーン付きの現在時刻（UTC）."""
    return datetime.now(UTC)


def new_id() -> str:
    """新しいID（UUID4文字列）を生成."""
    return str(uuid4())


def coerce_model_type(value: str | None) -> str:
    """保存されているモデル種別を既知の値に揃える（不明な値は claude 扱い）."""
    if value and ModelIdentifier.is_valid(value):
        return value
    return ModelIdentifier.CLAUDE.value


class MessageRole(str, Enum):
    """メッセージの役割."""

    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """メッセージ.

    作成順（created_at 昇順、同時刻は挿入順）が会話順となる。
    """

    session_id: str
    role: MessageRole
    content: str
    reasoning: str | None = None
    model_type: str | None = None  # アシスタントメッセージを生成したモデル
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """辞書形式に変換."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role.value,
            "content": self.content,
            "reasoning": self.reasoning,
            "model_type": self.model_type,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """辞書から作成."""
        created_at = data["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        # 不明な role はアシスタント扱い
        role = data["role"]
        if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
            role = MessageRole.ASSISTANT
        return cls(
            id=data["id"],
            session_id=data["session_id"],
            role=MessageRole(role),
            content=data["content"],
            reasoning=data.get("reasoning"),
            model_type=data.get("model_type"),
            created_at=created_at,
        )


@dataclass
class ChatSession:
    """チャットセッション.

    ephemeral=True のセッションは一回限りのリクエストの保存先としてのみ使われ、
    読み取り系の操作からは見えない。
    """

    title: str
    model_type: str
    id: str = field(default_factory=new_id)
    messages: list[Message] = field(default_factory=list)
    ephemeral: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        """辞書形式に変換."""
        return {
            "id": self.id,
            "title": self.title,
            "model_type": self.model_type,
            "messages": [msg.to_dict() for msg in self.messages],
            "ephemeral": self.ephemeral,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChatSession":
        """辞書から作成."""
        created_at = data["created_at"]
        updated_at = data["updated_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        if isinstance(updated_at, str):
            updated_at = datetime.fromisoformat(updated_at)
        return cls(
            id=data["id"],
            title=data["title"],
            model_type=coerce_model_type(data.get("model_type")),
            messages=[Message.from_dict(msg) for msg in data.get("messages", [])],
            ephemeral=bool(data.get("ephemeral", False)),
            created_at=created_at,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class MessagePage:
    """ページ単位のメッセージ一覧（古い順）."""

    messages: list[Message]
    has_more: bool
