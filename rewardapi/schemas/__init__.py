from .game import ConversionRules, GameCallbackResult, GameCreditMetadata, ParsedCallback
from .wallet import WalletAdjustmentResult, WalletCreditResult
from .fraud import FraudCheckResult, FraudConfig
