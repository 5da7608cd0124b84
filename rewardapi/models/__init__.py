from rewardapi.models.base import Base
from rewardapi.models.user import User
from rewardapi.models.game import GameSession, GameTransaction
from rewardapi.models.wallet import AdminAdjustmentLog, WalletTransaction
from rewardapi.models.fraud import FraudReviewQueueEntry, SuspiciousEvent
from rewardapi.models.reconciliation import (
    ReconciliationDiscrepancy,
    ReconciliationReport,
)

__all__ = [
    "Base",
    "User",
    "GameSession",
    "GameTransaction",
    "WalletTransaction",
    "AdminAdjustmentLog",
    "SuspiciousEvent",
    "FraudReviewQueueEntry",
    "ReconciliationReport",
    "ReconciliationDiscrepancy",
]
