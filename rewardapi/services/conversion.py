"""
제공자 리워드 값 -> 포인트 변환

순수 함수만 둔다 (I/O 없음). 배수 곱셈은 Fraction 으로 계산해서
600초 * 1/60 이 9.999... 가 되어 9 포인트로 내려가는 일이 없도록 한다.
"""

import math
from fractions import Fraction
from typing import Dict, Optional, Union

from rewardapi.config import settings
from rewardapi.models.game import GameProvider
from rewardapi.schemas.game import ConversionRules


# 설정값/페이로드의 float 을 유리수로 되돌릴 때 허용하는 최대 분모
_MAX_DENOMINATOR = 10**6

DEFAULT_CONVERSION_RULES: Dict[GameProvider, ConversionRules] = {
    GameProvider.GAMEZOP: ConversionRules(
        multiplier=1,
        minimum_value=1,
        maximum_credit=1000,
        description="Direct reward - 1 point per reward unit",
    ),
    GameProvider.ADJOE: ConversionRules(
        multiplier=1 / 60,
        minimum_value=60,
        maximum_credit=500,
        description="1 point per minute of playtime",
    ),
    GameProvider.QUREKA: ConversionRules(
        multiplier=0.1,
        minimum_value=10,
        maximum_credit=500,
        description="1 point per 10 coins",
    ),
}

_VALUE_TYPES: Dict[GameProvider, str] = {
    GameProvider.GAMEZOP: "reward",
    GameProvider.ADJOE: "seconds",
    GameProvider.QUREKA: "coins",
}


def _exact(value: Union[int, float]) -> Fraction:
    return Fraction(value).limit_denominator(_MAX_DENOMINATOR)


def get_conversion_rules(provider: GameProvider) -> ConversionRules:
    """기본 규칙에 CONVERSION_RULE_OVERRIDES 를 덮어쓴 규칙"""
    provider = GameProvider(provider)
    rules = DEFAULT_CONVERSION_RULES[provider]
    overrides = settings.CONVERSION_RULE_OVERRIDES.get(provider.value)
    if not overrides:
        return rules
    return ConversionRules(**{**rules.model_dump(), **overrides})


def convert_to_points(
    provider: GameProvider,
    raw_value: Union[int, float],
    rules: Optional[ConversionRules] = None,
) -> int:
    """
    제공자 값을 포인트로 변환

    - raw_value < minimum_value 이면 0
    - floor(raw_value * multiplier) 를 maximum_credit 으로 상한
    - 결과는 항상 0 이상의 정수
    """
    conversion_rules = rules or get_conversion_rules(provider)

    if raw_value < conversion_rules.minimum_value:
        return 0

    points = math.floor(_exact(raw_value) * _exact(conversion_rules.multiplier))
    return max(0, min(points, conversion_rules.maximum_credit))


def get_value_type(provider: GameProvider) -> str:
    return _VALUE_TYPES[GameProvider(provider)]
