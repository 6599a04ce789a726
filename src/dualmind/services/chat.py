"""チャットサービス（ディスパッチと会話の永続化）."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import timedelta

from ..constants import SessionConstants
from ..db.models import ChatSession, Message, MessageRole, utcnow
from ..errors.database import StoreError
from ..errors.request import PersistenceError, SessionNotFoundError
from ..providers.base import ModelIdentifier
from .dispatcher import RequestDispatcher, SlotResult, validate
from .session import SessionGateway, derive_session_title

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatReply:
    """1回の送信の結果.

    Attributes:
        session_id: 保存先のセッションID（一時セッションの場合は削除済み）
        results: モデル識別子 → 結果またはエラー
        ephemeral: 一時セッションを使ったかどうか
    """

    session_id: str
    results: dict[ModelIdentifier, SlotResult]
    ephemeral: bool = False

    def results_dict(self) -> dict[str, dict]:
        return {model.value: result.to_dict() for model, result in self.results.items()}


def is_ephemeral_request(session_id: str | None) -> bool:
    """セッションIDが未指定または "ephemeral" なら一時セッションを使う."""
    return not session_id or session_id == SessionConstants.EPHEMERAL_SESSION_ID


class ChatService:
    """プロンプトの送信から会話の保存までを行う.

    一時セッションは読み込み系の操作から見えない状態で作成され、
    メッセージの保存後（成否にかかわらず）すぐに削除される。
    """

    def __init__(self, dispatcher: RequestDispatcher, gateway: SessionGateway):
        self.dispatcher = dispatcher
        self.gateway = gateway

    async def create_session(
        self,
        model_type: str | None,
        title: str | None = None,
        first_prompt: str | None = None,
    ) -> ChatSession:
        """セッションを作成（タイトル未指定なら最初のプロンプトから作成）."""
        if not title and first_prompt:
            title = derive_session_title(first_prompt)
        return await self.gateway.create_session(model_type, title)

    async def submit(
        self, session_id: str | None, prompt: str, models: Iterable[str]
    ) -> ChatReply:
        """プロンプトを送信し、ユーザーメッセージとモデルごとの応答を保存.

        Args:
            session_id: セッションID（未指定または "ephemeral" なら一時セッション）
            prompt: ユーザープロンプト
            models: モデル識別子

        Returns:
            モデルごとの結果

        Raises:
            InvalidRequestError: 入力が不正な場合
            SessionNotFoundError: セッションが存在しない場合（上流への呼び出し前）
            PersistenceError: モデルは応答したが保存に失敗した場合
            StoreError: セッションの作成・取得に失敗した場合
        """
        validated = validate(prompt, models)
        ephemeral = is_ephemeral_request(session_id)

        if ephemeral:
            session = await self.gateway.create_session(
                validated[0].value, derive_session_title(prompt), ephemeral=True
            )
        else:
            session = await self.gateway.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

        try:
            results = await self.dispatcher.dispatch(prompt, validated)
            await self._persist(session.id, prompt, results)
            return ChatReply(
                session_id=session.id, results=results, ephemeral=ephemeral
            )
        finally:
            if ephemeral:
                await self.gateway.discard_ephemeral_session(session.id)

    async def _persist(
        self,
        session_id: str,
        prompt: str,
        results: dict[ModelIdentifier, SlotResult],
    ) -> None:
        # 作成時刻を1マイクロ秒ずつずらし、created_at 昇順で会話順を復元できるようにする
        created_at = utcnow()
        step = timedelta(microseconds=1)
        messages = [
            Message(
                session_id=session_id,
                role=MessageRole.USER,
                content=prompt,
                created_at=created_at,
            )
        ]
        for index, (model, result) in enumerate(results.items(), start=1):
            messages.append(
                Message(
                    session_id=session_id,
                    role=MessageRole.ASSISTANT,
                    content=result.content,
                    reasoning=result.reasoning,
                    model_type=model.value,
                    created_at=created_at + step * index,
                )
            )

        try:
            await self.gateway.append_messages(session_id, messages)
        except StoreError as e:
            logger.error(f"Failed to persist conversation for {session_id}: {e}")
            raise PersistenceError(
                f"Responses were generated but could not be saved: {e}",
                results={m.value: r.to_dict() for m, r in results.items()},
                kind=e.kind,
            ) from e
