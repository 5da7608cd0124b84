"""
게임 리워드 콜백 / 세션 관련 Pydantic 스키마

제공자마다 콜백 페이로드 모양이 다르므로 provider 를 판별자(discriminator)로 하는
태그드 유니온으로 검증한 뒤 ParsedCallback 으로 정규화한다.
검증되지 않은 dict 는 변환/적립 로직으로 흘러가지 않는다.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from rewardapi.models.game import GameProvider, GameTransactionStatus


class ConversionRules(BaseModel):
    """제공자 리워드 값을 포인트로 바꾸는 규칙"""

    multiplier: float = Field(..., gt=0, description="포인트 변환 배수")
    minimum_value: float = Field(..., ge=0, description="적립 최소 원본 값")
    maximum_credit: int = Field(..., ge=0, description="1회 최대 적립 포인트")
    description: str = Field("", description="규칙 설명")


# =============================================================================
# Callback payloads (provider 별 스키마)
# =============================================================================


class _CallbackBase(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    signature: str = Field(
        "", validation_alias=AliasChoices("signature", "sig", "hash")
    )
    session_token: Optional[str] = Field(
        None, validation_alias=AliasChoices("sessionToken", "session_token")
    )


class GamezopCallback(_CallbackBase):
    provider: Literal["gamezop"]
    transaction_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("transactionId", "txnId")
    )
    user_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("userId", "userExternalId")
    )
    reward: float = Field(..., ge=0, validation_alias=AliasChoices("reward", "points"))
    game_id: Optional[str] = Field(None, validation_alias=AliasChoices("gameId"))

    def to_parsed(self, raw_payload: Dict[str, Any]) -> "ParsedCallback":
        return ParsedCallback(
            provider=GameProvider.GAMEZOP,
            transaction_id=self.transaction_id,
            user_id=self.user_id,
            value=self.reward,
            game_id=self.game_id,
            signature=self.signature,
            session_token=self.session_token,
            raw_payload=raw_payload,
        )


class AdjoeCallback(_CallbackBase):
    provider: Literal["adjoe"]
    transaction_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("transactionId", "trans_id")
    )
    user_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("userId", "user_id")
    )
    playtime_seconds: float = Field(
        ..., ge=0, validation_alias=AliasChoices("playtimeSeconds", "playtime")
    )
    app_id: Optional[str] = Field(None, validation_alias=AliasChoices("appId", "gameId"))

    def to_parsed(self, raw_payload: Dict[str, Any]) -> "ParsedCallback":
        return ParsedCallback(
            provider=GameProvider.ADJOE,
            transaction_id=self.transaction_id,
            user_id=self.user_id,
            value=self.playtime_seconds,
            game_id=self.app_id,
            signature=self.signature,
            session_token=self.session_token,
            raw_payload=raw_payload,
        )


class QurekaCallback(_CallbackBase):
    provider: Literal["qureka"]
    transaction_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("transactionId", "txn_id")
    )
    user_id: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("userId", "user_id")
    )
    coins: float = Field(..., ge=0, validation_alias=AliasChoices("coins", "reward"))
    quiz_id: Optional[str] = Field(None, validation_alias=AliasChoices("quizId", "gameId"))

    def to_parsed(self, raw_payload: Dict[str, Any]) -> "ParsedCallback":
        return ParsedCallback(
            provider=GameProvider.QUREKA,
            transaction_id=self.transaction_id,
            user_id=self.user_id,
            value=self.coins,
            game_id=self.quiz_id,
            signature=self.signature,
            session_token=self.session_token,
            raw_payload=raw_payload,
        )


CallbackPayload = Annotated[
    Union[GamezopCallback, AdjoeCallback, QurekaCallback],
    Field(discriminator="provider"),
]

callback_payload_adapter: TypeAdapter = TypeAdapter(CallbackPayload)


class ParsedCallback(BaseModel):
    """제공자와 무관하게 정규화된 콜백"""

    provider: GameProvider
    transaction_id: str
    user_id: str
    value: float
    game_id: Optional[str] = None
    signature: str = ""
    session_token: Optional[str] = None
    raw_payload: Dict[str, Any] = Field(default_factory=dict)


# =============================================================================
# Session
# =============================================================================


class SessionState(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


class SessionContext(BaseModel):
    """콜백에 첨부된 세션 토큰의 조회 결과

    토큰이 아예 없으면 SessionContext 자체가 None 이고,
    토큰이 있었지만 찾지 못했거나 만료되었으면 state 로 구분한다.
    """

    state: SessionState
    session_id: Optional[int] = None
    user_id: Optional[str] = None
    provider: Optional[GameProvider] = None
    expires_at: Optional[datetime] = None

    @property
    def known_user_id(self) -> Optional[str]:
        if self.state == SessionState.NOT_FOUND:
            return None
        return self.user_id


class GameSessionRecord(BaseModel):
    id: int
    user_id: str
    provider: str
    game_id: str
    session_token: str
    expires_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @field_validator("expires_at", "used_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite 는 tz 정보를 저장하지 않는다
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class GameStartRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="사용자 ID")
    provider: GameProvider = Field(..., description="게임 제공자")
    game_id: str = Field(..., min_length=1, description="게임 ID")


class GameStartResponse(BaseModel):
    success: bool
    session_token: Optional[str] = None
    launch_url: Optional[str] = None
    sdk_config: Dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    error: Optional[str] = None


# =============================================================================
# Credit / callback results
# =============================================================================


class GameCreditMetadata(BaseModel):
    """적립 트랜잭션에 기록되는 메타데이터"""

    provider_transaction_id: str = Field(..., min_length=1)
    provider: GameProvider
    original_value: float
    value_type: str
    game_id: Optional[str] = None
    session_id: Optional[int] = None
    request_id: Optional[str] = None
    raw_payload: Dict[str, Any] = Field(default_factory=dict)
    signature_valid: bool
    is_replay: bool = False
    replayed_from: Optional[int] = None


class GameCallbackResult(BaseModel):
    """콜백 처리 결과 - HTTP 계층이 그대로 응답으로 변환"""

    success: bool
    status: GameTransactionStatus
    points_credited: int = 0
    transaction_id: Optional[int] = None
    is_duplicate: bool = False
    error: Optional[str] = None
    error_code: Optional[str] = None
    retriable: bool = False
    status_code: int = 200
    request_id: Optional[str] = None
    fraud_signals: List[str] = Field(default_factory=list)


class GameTransactionResponse(BaseModel):
    id: int
    provider_transaction_id: str
    provider: str
    user_id: str
    original_value: float
    value_type: str
    points_credited: int
    status: str
    signature_valid: bool
    fraud_check_passed: bool
    fraud_signals: Optional[List[str]] = None
    game_id: Optional[str] = None
    is_replay: bool = False
    reconciliation_status: str
    created_at: datetime

    class Config:
        from_attributes = True


class GameTransactionListResponse(BaseModel):
    transactions: List[GameTransactionResponse]
    total_count: int
    has_next: bool


class ReplayRequest(BaseModel):
    transaction_id: int = Field(..., gt=0, description="재처리할 게임 트랜잭션 ID")


class ReplayResponse(BaseModel):
    success: bool
    original_transaction: Optional[GameTransactionResponse] = None
    replay_result: Optional[GameCallbackResult] = None
    error: Optional[str] = None


class ProviderConfig(BaseModel):
    """제공자 연동 설정 - 환경변수 {PROVIDER}_* 에서 로드"""

    provider: GameProvider
    enabled: bool = True
    api_key: str = ""
    webhook_secret: str = ""
    app_id: Optional[str] = None
    launch_url_template: Optional[str] = None
    conversion_rules: ConversionRules


class ProviderStatus(BaseModel):
    """관리자용 제공자 상태 (비밀키/API 키는 노출하지 않는다)"""

    provider: GameProvider
    enabled: bool
    configured: bool = Field(..., description="웹훅 비밀키 설정 여부")
    app_id: Optional[str] = None
    value_type: str
    launch_url_template: Optional[str] = None
    conversion_rules: ConversionRules


class ProviderStatusListResponse(BaseModel):
    providers: List[ProviderStatus]
