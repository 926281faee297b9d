"""Game configuration resolved from Django settings.

Settings are read on every call rather than cached at import time, so
``override_settings`` in tests and environment changes on redeploy apply
immediately.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Tuple

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured


@dataclass(frozen=True)
class GameConfig:
    stake_tiers: Tuple[int, ...]
    capacity: int
    win_multiplier: Decimal
    loss_refund_multiplier: Decimal
    single_flip_multiplier: Decimal
    min_bet: int
    max_bet: int
    expiry_minutes: Optional[int]
    max_admission_attempts: int


def get_game_config() -> GameConfig:
    config = GameConfig(
        stake_tiers=tuple(getattr(settings, "GAME_STAKE_TIERS", (100, 500, 1000))),
        capacity=int(getattr(settings, "GAME_CAPACITY", 10)),
        win_multiplier=Decimal(str(getattr(settings, "GAME_WIN_MULTIPLIER", "1.5"))),
        loss_refund_multiplier=Decimal(
            str(getattr(settings, "GAME_LOSS_REFUND_MULTIPLIER", "0.8"))
        ),
        single_flip_multiplier=Decimal(
            str(getattr(settings, "SINGLE_FLIP_MULTIPLIER", "2.0"))
        ),
        min_bet=int(getattr(settings, "SINGLE_FLIP_MIN_BET", 1)),
        max_bet=int(getattr(settings, "SINGLE_FLIP_MAX_BET", 1000)),
        expiry_minutes=getattr(settings, "GAME_EXPIRY_MINUTES", None),
        max_admission_attempts=int(getattr(settings, "MATCHMAKER_MAX_ATTEMPTS", 5)),
    )
    _validate(config)
    return config


def _validate(config: GameConfig) -> None:
    if not config.stake_tiers or any(tier <= 0 for tier in config.stake_tiers):
        raise ImproperlyConfigured("GAME_STAKE_TIERS must list positive amounts.")
    if config.capacity < 2:
        raise ImproperlyConfigured("GAME_CAPACITY must be at least 2.")
    for name in ("win_multiplier", "loss_refund_multiplier", "single_flip_multiplier"):
        if getattr(config, name) <= 0:
            raise ImproperlyConfigured(f"{name} must be positive.")
    if config.min_bet <= 0 or config.min_bet > config.max_bet:
        raise ImproperlyConfigured("SINGLE_FLIP_MIN_BET must be positive and <= MAX_BET.")
    if config.expiry_minutes is not None and config.expiry_minutes <= 0:
        raise ImproperlyConfigured("GAME_EXPIRY_MINUTES must be positive when set.")
    if config.max_admission_attempts < 1:
        raise ImproperlyConfigured("MATCHMAKER_MAX_ATTEMPTS must be at least 1.")
