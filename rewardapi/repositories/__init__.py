from .user_repository import UserRepository
from .game_transaction_repository import GameTransactionRepository
from .wallet_repository import WalletRepository
from .fraud_repository import FraudReviewQueueRepository, SuspiciousEventRepository
from .game_session_repository import GameSessionRepository
from .reconciliation_repository import ReconciliationRepository
