import hashlib
import hmac
import json
import os
from datetime import timedelta
from typing import Any, Dict, Optional

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("GAMEZOP_WEBHOOK_SECRET", "gamezop-secret")
os.environ.setdefault("ADJOE_WEBHOOK_SECRET", "adjoe-secret")
os.environ.setdefault("QUREKA_WEBHOOK_SECRET", "qureka-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rewardapi.database.session import get_db, get_session_factory
from rewardapi.main import create_app
from rewardapi.models import Base
from rewardapi.models.base import utc_now
from rewardapi.models.game import GameTransaction, GameTransactionStatus
from rewardapi.models.user import User

GAMEZOP_SECRET = os.environ["GAMEZOP_WEBHOOK_SECRET"]
ADJOE_SECRET = os.environ["ADJOE_WEBHOOK_SECRET"]
QUREKA_SECRET = os.environ["QUREKA_WEBHOOK_SECRET"]
ADMIN_HEADERS = {"X-Admin-Key": os.environ["ADMIN_API_KEY"], "X-Admin-Id": "admin-1"}


def hmac_hex(secret: str, message: str) -> str:
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def signed_gamezop(
    transaction_id: str, user_id: str, reward: Any, **extra
) -> Dict[str, Any]:
    payload = {"transactionId": transaction_id, "userId": user_id, "reward": reward, **extra}
    payload["signature"] = hmac_hex(
        GAMEZOP_SECRET, json.dumps(payload, separators=(",", ":"))
    )
    return payload


def signed_adjoe(
    transaction_id: str, user_id: str, playtime: Any, **extra
) -> Dict[str, Any]:
    payload = {
        "transactionId": transaction_id,
        "userId": user_id,
        "playtimeSeconds": playtime,
        **extra,
    }
    payload["signature"] = hmac_hex(
        ADJOE_SECRET, f"{user_id}|{transaction_id}|{playtime}"
    )
    return payload


def signed_qureka(
    transaction_id: str, user_id: str, coins: Any, **extra
) -> Dict[str, Any]:
    payload = {"transactionId": transaction_id, "userId": user_id, "coins": coins, **extra}
    message = "&".join(f"{k}={payload[k]}" for k in sorted(payload))
    payload["signature"] = hmac_hex(QUREKA_SECRET, message)
    return payload


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(
        autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False
    )


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db_session):
    """사용자 생성 헬퍼"""

    def _make(user_id: str = "user-1", points: int = 0) -> User:
        user = User(
            id=user_id,
            email=f"{user_id}@example.com",
            points=points,
            total_points=points,
            total_earnings=points,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make


@pytest.fixture
def add_credited_tx(db_session):
    """이미 적립된 게임 트랜잭션을 직접 추가 (속도 검사용)"""
    counter = {"n": 0}

    def _add(
        user_id: str = "user-1",
        provider: str = "gamezop",
        points: int = 10,
        age: Optional[timedelta] = None,
    ) -> GameTransaction:
        counter["n"] += 1
        tx = GameTransaction(
            provider_transaction_id=f"seed-{provider}-{counter['n']}",
            provider=provider,
            user_id=user_id,
            original_value=points,
            value_type="reward",
            points_credited=points,
            status=GameTransactionStatus.CREDITED.value,
            signature_valid=True,
            fraud_check_passed=True,
            created_at=utc_now() - (age or timedelta(seconds=5)),
        )
        db_session.add(tx)
        db_session.commit()
        return tx

    return _add


@pytest.fixture
def app(db_session, session_factory):
    application = create_app()

    def _override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = _override_get_db
    # 콜백 워커는 요청 세션 대신 팩토리에서 자기 세션을 연다
    application.dependency_overrides[get_session_factory] = lambda: session_factory
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
def client(app):
    """테스트 클라이언트 픽스처"""
    return TestClient(app)
