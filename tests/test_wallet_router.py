"""
지갑 라우터 테스트
"""

from tests.conftest import signed_gamezop


class TestWalletRouter:
    """GET /wallet/{user_id}/..."""

    def test_balance(self, client, make_user):
        make_user("user-1", points=120)

        response = client.get("/api/v1/wallet/user-1/balance")

        assert response.status_code == 200
        assert response.json() == {"user_id": "user-1", "balance": 120}

    def test_balance_unknown_user(self, client):
        response = client.get("/api/v1/wallet/ghost/balance")

        assert response.status_code == 404
        assert response.json()["success"] is False
        assert response.json()["error"]["code"] == "NOT_FOUND_001"

    def test_history_after_callbacks(self, client, make_user):
        # Given
        make_user("user-1")
        for i in range(3):
            client.post(
                "/api/v1/games/callback/gamezop",
                json=signed_gamezop(f"gz-{i}", "user-1", 10),
            )

        # When
        response = client.get("/api/v1/wallet/user-1/history", params={"limit": 2})

        # Then
        assert response.status_code == 200
        body = response.json()
        assert body["balance"] == 30
        assert body["total_count"] == 3
        assert body["has_next"] is True
        assert len(body["entries"]) == 2
        assert body["entries"][0]["source"] == "game"

    def test_history_limit_validated(self, client, make_user):
        make_user("user-1")

        response = client.get("/api/v1/wallet/user-1/history", params={"limit": 500})

        assert response.status_code == 422


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "ok"
