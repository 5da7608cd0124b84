from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Any, Dict, Optional
from urllib.parse import quote_plus


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file="rewardapi/.env",
        env_file_encoding="utf-8",
        extra="allow",
    )
    # Application
    APP_NAME: str = "Reward Ledger API"
    PROJECT_NAME: str = "Reward Ledger API"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USERNAME: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DATABASE: str = "postgres"
    POSTGRES_SCHEMA: str = "rewards"

    # DATABASE_URL이 지정되면 POSTGRES_* 설정보다 우선
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    @property
    def database_url(self) -> str:
        """Construct database URL from individual components"""
        if self.DATABASE_URL:
            return self.DATABASE_URL

        # URL encode the password to handle special characters
        encoded_password = quote_plus(self.POSTGRES_PASSWORD)
        return f"postgresql+psycopg2://{self.POSTGRES_USERNAME}:{encoded_password}@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DATABASE}"

    # Admin
    ADMIN_API_KEY: str = ""

    # Game providers (webhook secret 이 비어 있으면 콜백은 서명 실패로 처리)
    GAMEZOP_API_KEY: str = ""
    GAMEZOP_WEBHOOK_SECRET: str = ""
    GAMEZOP_APP_ID: Optional[str] = None
    GAMEZOP_ENABLED: bool = True
    GAMEZOP_LAUNCH_URL: Optional[str] = None

    ADJOE_API_KEY: str = ""
    ADJOE_WEBHOOK_SECRET: str = ""
    ADJOE_APP_ID: Optional[str] = None
    ADJOE_ENABLED: bool = True
    ADJOE_LAUNCH_URL: Optional[str] = None

    QUREKA_API_KEY: str = ""
    QUREKA_WEBHOOK_SECRET: str = ""
    QUREKA_APP_ID: Optional[str] = None
    QUREKA_ENABLED: bool = True
    QUREKA_LAUNCH_URL: Optional[str] = None

    # Conversion rules override, e.g. {"adjoe": {"maximum_credit": 300}}
    CONVERSION_RULE_OVERRIDES: Dict[str, Dict[str, Any]] = {}

    # Game sessions
    GAME_SESSION_EXPIRY_SECONDS: int = 300  # 5분

    # Fraud gate
    FRAUD_MAX_CREDITS_PER_MINUTE: int = 5
    FRAUD_MAX_CREDITS_PER_HOUR: int = 50
    FRAUD_MAX_CREDITS_PER_DAY: int = 200
    FRAUD_FLAG_THRESHOLD: int = 100

    # Wallet
    ADJUSTMENT_REASON_MIN_LENGTH: int = 10
    CALLBACK_TIMEOUT_SECONDS: float = 10.0

    # Timezone
    TIMEZONE: str = "UTC"


settings = Settings()
