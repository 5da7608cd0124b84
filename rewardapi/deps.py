from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from rewardapi.database.session import get_db

# Services
from rewardapi.services.wallet_service import WalletService
from rewardapi.services.fraud_service import FraudService
from rewardapi.services.game_provider_service import GameProviderService
from rewardapi.services.game_session_service import GameSessionService
from rewardapi.services.reconciliation_service import ReconciliationService


def get_wallet_service(db: Session = Depends(get_db)) -> WalletService:
    return WalletService(db=db)


def get_fraud_service(db: Session = Depends(get_db)) -> FraudService:
    return FraudService(db=db)


def get_game_provider_service(db: Session = Depends(get_db)) -> GameProviderService:
    return GameProviderService(db=db)


def get_game_session_service(db: Session = Depends(get_db)) -> GameSessionService:
    return GameSessionService(db=db)


def get_reconciliation_service(
    db: Session = Depends(get_db),
) -> ReconciliationService:
    return ReconciliationService(db=db)


def get_request_id(request: Request) -> Optional[str]:
    """LoggingMiddleware 가 부여한 request id"""
    return getattr(request.state, "request_id", None)
