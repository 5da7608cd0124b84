"""
세션 수명 관리

- get_db: 요청 단위 세션 (FastAPI 의존성, 요청이 끝나면 롤백/close)
- get_session_factory: 요청보다 오래 살 수 있는 작업용 팩토리
- owned_session: 팩토리에서 세션을 열어 호출한 스레드가 끝까지 소유

Session 은 스레드 간에 공유하지 않는다. 콜백 워커처럼 응답 이후에도 진행될 수 있는
작업은 get_db 세션을 쓰지 않고 owned_session 으로 자기 세션을 연다.
"""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session, sessionmaker

from rewardapi.database.connection import SessionLocal


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


def get_session_factory() -> sessionmaker:
    """워커 스레드용 세션 팩토리 (테스트에서 dependency_overrides 로 교체)"""
    return SessionLocal


@contextmanager
def owned_session(factory: sessionmaker) -> Iterator[Session]:
    """호출 스레드 전용 세션 - commit 은 안쪽 코드가, 남은 트랜잭션 정리는 여기서"""
    db = factory()
    try:
        yield db
    except Exception:
        if db.in_transaction():
            db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Iterator[Session]:
    """스크립트용 - 블록이 정상 종료되면 commit"""
    with owned_session(SessionLocal) as db:
        yield db
        db.commit()
