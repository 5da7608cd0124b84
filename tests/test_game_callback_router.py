"""
게임 콜백 / 세션 라우터 테스트
"""

import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

import rewardapi.database.session as session_module
from rewardapi.config import settings
from rewardapi.main import create_app
from rewardapi.models import Base
from rewardapi.models.game import GameTransaction
from rewardapi.models.user import User
from rewardapi.models.wallet import WalletTransaction
from rewardapi.repositories.user_repository import UserRepository
from rewardapi.services.game_provider_service import GameProviderService
from tests.conftest import ADJOE_SECRET, hmac_hex, signed_gamezop, signed_qureka

CALLBACK_URL = "/api/v1/games/callback"


class TestGameCallbackRouter:
    """POST/GET /games/callback/{provider}"""

    def test_credit_then_duplicate(self, client, make_user, db_session):
        # Given
        make_user("user-1")
        payload = signed_gamezop("gz-1", "user-1", 50)

        # When
        first = client.post(f"{CALLBACK_URL}/gamezop", json=payload)
        second = client.post(f"{CALLBACK_URL}/gamezop", json=payload)

        # Then
        assert first.status_code == 200
        body = first.json()
        assert body["success"] is True
        assert body["status"] == "credited"
        assert body["points_credited"] == 50

        assert second.status_code == 200
        assert second.json()["status"] == "duplicate"
        assert second.json()["is_duplicate"] is True
        assert UserRepository(db_session).get_balance("user-1") == 50

    def test_request_id_header_propagated(self, client, make_user):
        make_user("user-1")

        response = client.post(
            f"{CALLBACK_URL}/qureka",
            json=signed_qureka("q-1", "user-1", 100),
            headers={"X-Request-ID": "provider-req-7"},
        )

        assert response.status_code == 200
        assert response.json()["request_id"] == "provider-req-7"
        assert response.headers["X-Request-ID"] == "provider-req-7"

    def test_get_callback_with_query_params(self, client, make_user, db_session):
        make_user("user-1")
        params = {
            "transactionId": "adj-1",
            "userId": "user-1",
            "playtimeSeconds": "600",
            "signature": hmac_hex(ADJOE_SECRET, "user-1|adj-1|600"),
        }

        response = client.get(f"{CALLBACK_URL}/adjoe", params=params)

        assert response.status_code == 200
        assert response.json()["points_credited"] == 10

    def test_invalid_signature_403(self, client, make_user):
        make_user("user-1")
        payload = signed_gamezop("gz-1", "user-1", 50)
        payload["signature"] = "0" * 64

        response = client.post(f"{CALLBACK_URL}/gamezop", json=payload)

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "SIGNATURE_001"
        assert error["details"]["retriable"] is False

    def test_schema_error_400(self, client):
        response = client.post(f"{CALLBACK_URL}/gamezop", json={"reward": 5})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "CALLBACK_001"

    def test_non_json_body_400(self, client):
        response = client.post(
            f"{CALLBACK_URL}/gamezop",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400

    def test_array_body_400(self, client):
        response = client.post(f"{CALLBACK_URL}/gamezop", json=[1, 2, 3])
        assert response.status_code == 400

    def test_unknown_provider_400(self, client):
        response = client.post(f"{CALLBACK_URL}/nope", json={})
        assert response.status_code == 400

    def test_unknown_user_404(self, client):
        response = client.post(
            f"{CALLBACK_URL}/gamezop", json=signed_gamezop("gz-1", "ghost", 50)
        )
        assert response.status_code == 404

    def test_below_minimum_200(self, client, make_user):
        make_user("user-1")

        response = client.post(
            f"{CALLBACK_URL}/qureka", json=signed_qureka("q-1", "user-1", 5)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["points_credited"] == 0

    def test_fraud_rejection_403(self, client, make_user, add_credited_tx):
        make_user("user-1")
        for _ in range(5):
            add_credited_tx("user-1")

        response = client.post(
            f"{CALLBACK_URL}/gamezop", json=signed_gamezop("gz-new", "user-1", 50)
        )

        assert response.status_code == 403
        error = response.json()["error"]
        assert error["code"] == "FRAUD_001"
        assert error["details"]["status"] == "fraud_flagged"
        assert error["details"]["fraud_signals"] == ["rate_limit_minute_exceeded"]

    def test_timeout_returns_retriable_503(self, client, monkeypatch):
        # Given
        monkeypatch.setattr(settings, "CALLBACK_TIMEOUT_SECONDS", 0.05)

        # When
        with patch.object(
            GameProviderService,
            "process_callback",
            side_effect=lambda *args, **kwargs: time.sleep(0.3),
        ):
            response = client.post(f"{CALLBACK_URL}/gamezop", json={"a": 1})

        # Then
        assert response.status_code == 503
        error = response.json()["error"]
        assert error["code"] == "INFRA_001"
        assert error["details"]["retriable"] is True


@pytest.fixture
def file_session_factory(tmp_path, monkeypatch):
    """파일 SQLite 에 붙은 실제 SessionLocal 경로 (의존성 override 없음)"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 10},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(
        autocommit=False, autoflush=False, bind=engine, expire_on_commit=False
    )
    monkeypatch.setattr(session_module, "SessionLocal", factory)
    yield factory
    engine.dispose()


def _ledger_snapshot(factory, user_id):
    with factory() as db:
        game_tx = db.scalar(select(func.count()).select_from(GameTransaction))
        wallet_tx = db.scalar(select(func.count()).select_from(WalletTransaction))
        balance = db.scalar(select(User.points).where(User.id == user_id))
    return game_tx, wallet_tx, balance


class TestCallbackTimeoutConsistency:
    """시간 초과 후에도 적립이 통째로 기록되거나 통째로 빠져야 한다"""

    def test_slow_credit_completes_and_retry_is_duplicate(
        self, file_session_factory, monkeypatch
    ):
        # Given: 잔액 갱신이 응답 시간 제한보다 오래 걸림
        with file_session_factory() as db:
            db.add(User(id="user-1", email="user-1@example.com"))
            db.commit()

        monkeypatch.setattr(settings, "CALLBACK_TIMEOUT_SECONDS", 0.2)
        original_increment = UserRepository.increment_balance

        def slow_increment(self, user_id, amount):
            time.sleep(0.8)
            return original_increment(self, user_id, amount)

        monkeypatch.setattr(UserRepository, "increment_balance", slow_increment)
        payload = signed_gamezop("gz-slow", "user-1", 50)

        with TestClient(create_app()) as client:
            # When: 첫 콜백은 시간 초과
            first = client.post(f"{CALLBACK_URL}/gamezop", json=payload)

            # Then: 재시도 가능한 503
            assert first.status_code == 503
            assert first.json()["error"]["details"]["retriable"] is True

            # 워커가 끝날 때까지 원장과 잔액은 항상 서로 맞아야 한다
            deadline = time.time() + 5
            snapshot = _ledger_snapshot(file_session_factory, "user-1")
            while snapshot != (1, 1, 50) and time.time() < deadline:
                game_tx, wallet_tx, balance = snapshot
                assert game_tx == wallet_tx
                assert balance == 50 * wallet_tx
                time.sleep(0.05)
                snapshot = _ledger_snapshot(file_session_factory, "user-1")
            assert snapshot == (1, 1, 50)

            # When: 제공자 재전송
            retry = client.post(f"{CALLBACK_URL}/gamezop", json=payload)

        # Then: 중복으로 응답하고 다시 적립하지 않는다
        assert retry.status_code == 200
        assert retry.json()["status"] == "duplicate"
        assert _ledger_snapshot(file_session_factory, "user-1") == (1, 1, 50)

class TestStartGame:
    """POST /games/start"""

    def test_start_and_use_session(self, client, make_user):
        make_user("user-1")

        response = client.post(
            "/api/v1/games/start",
            json={"user_id": "user-1", "provider": "gamezop", "game_id": "g-1"},
        )

        assert response.status_code == 200
        token = response.json()["session_token"]
        assert token in response.json()["launch_url"]

        callback = client.post(
            f"{CALLBACK_URL}/gamezop",
            json=signed_gamezop("gz-1", "user-1", 50, sessionToken=token),
        )
        assert callback.status_code == 200
        assert callback.json()["status"] == "credited"

    def test_unknown_user(self, client):
        response = client.post(
            "/api/v1/games/start",
            json={"user_id": "ghost", "provider": "adjoe", "game_id": "app"},
        )
        assert response.status_code == 404

    def test_invalid_provider(self, client):
        response = client.post(
            "/api/v1/games/start",
            json={"user_id": "user-1", "provider": "nope", "game_id": "app"},
        )
        assert response.status_code == 422
