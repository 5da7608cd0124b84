import logging
import secrets
from datetime import timedelta
from typing import Any, Dict, Optional
from urllib.parse import quote

from sqlalchemy.orm import Session

from rewardapi.config import settings
from rewardapi.core.exceptions import NotFoundError, ValidationError
from rewardapi.models.base import utc_now
from rewardapi.models.game import GameProvider
from rewardapi.repositories.game_session_repository import GameSessionRepository
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.schemas.game import (
    GameStartResponse,
    ProviderConfig,
    SessionContext,
    SessionState,
)
from rewardapi.services.provider_config import get_provider_config

logger = logging.getLogger(__name__)


def generate_session_token() -> str:
    return secrets.token_hex(16)


def build_launch_url(
    config: ProviderConfig, user_id: str, game_id: str, session_token: str
) -> str:
    template = config.launch_url_template or ""
    return (
        template.replace("{userId}", quote(user_id, safe=""))
        .replace("{gameId}", quote(game_id, safe=""))
        .replace("{sessionToken}", quote(session_token, safe=""))
        .replace("{appId}", quote(config.app_id or "", safe=""))
    )


def build_sdk_config(
    config: ProviderConfig, user_id: str, game_id: str
) -> Dict[str, Any]:
    if config.provider == GameProvider.GAMEZOP:
        return {"partnerId": config.app_id, "userId": user_id, "gameId": game_id}
    if config.provider == GameProvider.ADJOE:
        return {"appId": config.app_id, "userId": user_id, "sdkKey": config.api_key}
    return {"apiKey": config.api_key, "userId": user_id, "quizId": game_id}


class GameSessionService:
    """게임 실행 세션 발급 / 조회"""

    def __init__(self, db: Session):
        self.db = db
        self.session_repo = GameSessionRepository(db)
        self.user_repo = UserRepository(db)

    def create_game_session(
        self, user_id: str, provider: GameProvider, game_id: str
    ) -> GameStartResponse:
        """세션 토큰 발급 + 실행 URL 생성

        Raises:
            ValidationError: 비활성 제공자
            NotFoundError: 존재하지 않는 사용자
        """
        config = get_provider_config(provider)
        if not config.enabled:
            raise ValidationError(f"Provider {config.provider.value} is not enabled")

        if self.user_repo.get_balance(user_id) is None:
            raise NotFoundError(f"User {user_id} not found", details={"user_id": user_id})

        session_token = generate_session_token()
        expires_at = utc_now() + timedelta(seconds=settings.GAME_SESSION_EXPIRY_SECONDS)

        record = self.session_repo.create_session(
            user_id=user_id,
            provider=config.provider.value,
            game_id=game_id,
            session_token=session_token,
            expires_at=expires_at,
        )
        logger.info(
            f"Game session {record.id} created for user {user_id} ({config.provider.value}/{game_id})"
        )

        return GameStartResponse(
            success=True,
            session_token=session_token,
            launch_url=build_launch_url(config, user_id, game_id, session_token),
            sdk_config=build_sdk_config(config, user_id, game_id),
            expires_at=expires_at,
        )

    def resolve_session(self, session_token: Optional[str]) -> Optional[SessionContext]:
        """콜백의 세션 토큰 조회

        Returns:
            None: 토큰 없음
            SessionContext(state=not_found): 토큰은 있으나 발급 기록 없음
            SessionContext(state=expired|active): 발급된 세션
        """
        if not session_token:
            return None

        record = self.session_repo.get_by_token(session_token)
        if record is None:
            return SessionContext(state=SessionState.NOT_FOUND)

        state = SessionState.ACTIVE
        if utc_now() > record.expires_at:
            state = SessionState.EXPIRED

        return SessionContext(
            state=state,
            session_id=record.id,
            user_id=record.user_id,
            provider=GameProvider(record.provider),
            expires_at=record.expires_at,
        )

    def mark_session_used(self, session_id: int) -> bool:
        return self.session_repo.mark_used(session_id)
