from typing import List

from rewardapi.config import settings
from rewardapi.models.game import GameProvider
from rewardapi.schemas.game import ProviderConfig, ProviderStatus
from rewardapi.services.conversion import get_conversion_rules, get_value_type


DEFAULT_LAUNCH_URLS = {
    GameProvider.GAMEZOP: "https://games.gamezop.com/play/{gameId}?userId={userId}&sessionToken={sessionToken}",
    GameProvider.ADJOE: "https://adj.st/playtime?userId={userId}&appId={appId}&sessionToken={sessionToken}",
    GameProvider.QUREKA: "https://qurekagames.com/play?userId={userId}&quizId={gameId}&token={sessionToken}",
}


def get_provider_config(provider: GameProvider) -> ProviderConfig:
    """settings 의 {PROVIDER}_* 값으로 제공자 설정 구성"""
    provider = GameProvider(provider)
    prefix = provider.value.upper()
    return ProviderConfig(
        provider=provider,
        enabled=getattr(settings, f"{prefix}_ENABLED"),
        api_key=getattr(settings, f"{prefix}_API_KEY"),
        webhook_secret=getattr(settings, f"{prefix}_WEBHOOK_SECRET"),
        app_id=getattr(settings, f"{prefix}_APP_ID"),
        launch_url_template=getattr(settings, f"{prefix}_LAUNCH_URL")
        or DEFAULT_LAUNCH_URLS[provider],
        conversion_rules=get_conversion_rules(provider),
    )


def list_provider_statuses() -> List[ProviderStatus]:
    """전체 제공자의 활성 여부와 적용 중인 변환 규칙"""
    statuses = []
    for provider in GameProvider:
        config = get_provider_config(provider)
        statuses.append(
            ProviderStatus(
                provider=provider,
                enabled=config.enabled,
                configured=bool(config.webhook_secret),
                app_id=config.app_id,
                value_type=get_value_type(provider),
                launch_url_template=config.launch_url_template,
                conversion_rules=config.conversion_rules,
            )
        )
    return statuses
