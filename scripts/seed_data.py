"""
로컬 개발용 사용자 시드 스크립트
콜백을 수동으로 보내볼 수 있도록 잔액 0 인 테스트 사용자를 만든다
"""

import sys
import os

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rewardapi.database.session import get_db_context
from rewardapi.models.user import User


DEFAULT_USERS = [
    ("demo-user-1", "demo1@example.com", "Demo One"),
    ("demo-user-2", "demo2@example.com", "Demo Two"),
]


def seed_users():
    """테스트 사용자 시드 (이미 있으면 건너뜀)"""
    created = 0
    with get_db_context() as db:
        for user_id, email, name in DEFAULT_USERS:
            if db.get(User, user_id) is not None:
                continue
            db.add(User(id=user_id, email=email, name=name))
            created += 1

    print(f"Seeded {created} user(s), skipped {len(DEFAULT_USERS) - created}")


if __name__ == "__main__":
    seed_users()
