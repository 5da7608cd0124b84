from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from rewardapi.models.base import utc_now
from rewardapi.models.game import GameSession
from rewardapi.repositories.base import BaseRepository
from rewardapi.schemas.game import GameSessionRecord


class GameSessionRepository(BaseRepository[GameSession, GameSessionRecord]):
    """게임 세션 리포지토리"""

    def __init__(self, db: Session):
        super().__init__(GameSession, GameSessionRecord, db)

    def create_session(
        self,
        user_id: str,
        provider: str,
        game_id: str,
        session_token: str,
        expires_at: datetime,
    ) -> GameSessionRecord:
        instance = self.create(
            commit=True,
            user_id=user_id,
            provider=provider,
            game_id=game_id,
            session_token=session_token,
            expires_at=expires_at,
            used=False,
        )
        return self._to_schema(instance)

    def get_by_token(self, session_token: str) -> Optional[GameSessionRecord]:
        instance = (
            self.db.query(self.model_class)
            .filter(self.model_class.session_token == session_token)
            .first()
        )
        return self._to_schema(instance)

    def mark_used(self, session_id: int) -> bool:
        try:
            updated = (
                self.db.query(self.model_class)
                .filter(self.model_class.id == session_id)
                .update(
                    {"used": True, "used_at": utc_now()}, synchronize_session=False
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return updated > 0
