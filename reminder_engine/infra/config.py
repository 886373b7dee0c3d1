from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from reminder_engine.core.time_math import DEFAULT_OFFSETS, OffsetKind, parse_offsets

LOGGER = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("data/reminders.db")
_NOTIFIERS = {"log", "webhook"}


@dataclass(frozen=True)
class Settings:
    db_path: Path
    tick_seconds: int
    delivery_timeout_seconds: float
    max_concurrent_deliveries: int
    reminder_offsets: tuple[OffsetKind, ...]
    sweep_enabled: bool
    sweep_hour: int
    sweep_minute: int
    retention_days: int
    notifier: str
    webhook_url: str | None
    webhook_timeout_seconds: float
    webhook_permanent_as_delivered: bool
    webhook_max_attempts: int

    @property
    def retention(self) -> timedelta:
        return timedelta(days=self.retention_days)


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    if env is None:
        load_dotenv()
        env = os.environ

    db_path = Path(env.get("REMINDER_DB_PATH", DEFAULT_DB_PATH))
    tick_seconds = _parse_int_with_default(env.get("TICK_SECONDS"), 60)
    delivery_timeout_seconds = _parse_optional_float(env.get("DELIVERY_TIMEOUT_SECONDS"), 10.0)
    max_concurrent_deliveries = _parse_int_with_default(env.get("MAX_CONCURRENT_DELIVERIES"), 8)
    offsets_raw = (env.get("REMINDER_OFFSETS") or "").strip()
    reminder_offsets = parse_offsets(offsets_raw) if offsets_raw else DEFAULT_OFFSETS
    sweep_enabled = _parse_optional_bool(env.get("SWEEP_ENABLED"))
    if sweep_enabled is None:
        sweep_enabled = True
    sweep_hour = _parse_int_with_default(env.get("SWEEP_HOUR"), 0)
    sweep_minute = _parse_int_with_default(env.get("SWEEP_MINUTE"), 0)
    retention_days = _parse_int_with_default(env.get("EXPIRED_EVENTS_RETENTION_DAYS"), 90)
    notifier = (env.get("NOTIFIER") or "log").strip().lower()
    webhook_url = (env.get("WEBHOOK_URL") or "").strip() or None
    webhook_timeout_seconds = _parse_optional_float(env.get("WEBHOOK_TIMEOUT_SECONDS"), 5.0)
    webhook_permanent_as_delivered = _parse_optional_bool(env.get("WEBHOOK_PERMANENT_AS_DELIVERED")) is True
    webhook_max_attempts = _parse_int_with_default(env.get("WEBHOOK_MAX_ATTEMPTS"), 2)
    return Settings(
        db_path=db_path,
        tick_seconds=tick_seconds,
        delivery_timeout_seconds=delivery_timeout_seconds,
        max_concurrent_deliveries=max_concurrent_deliveries,
        reminder_offsets=reminder_offsets,
        sweep_enabled=sweep_enabled,
        sweep_hour=sweep_hour,
        sweep_minute=sweep_minute,
        retention_days=retention_days,
        notifier=notifier,
        webhook_url=webhook_url,
        webhook_timeout_seconds=webhook_timeout_seconds,
        webhook_permanent_as_delivered=webhook_permanent_as_delivered,
        webhook_max_attempts=webhook_max_attempts,
    )


def validate_settings(settings: Settings, *, logger: logging.Logger | None = None) -> None:
    log = logger or LOGGER
    if settings.tick_seconds <= 0:
        log.error("startup.config invalid: TICK_SECONDS=%s", settings.tick_seconds)
        raise SystemExit("TICK_SECONDS must be positive")
    if settings.delivery_timeout_seconds <= 0:
        log.error("startup.config invalid: DELIVERY_TIMEOUT_SECONDS=%s", settings.delivery_timeout_seconds)
        raise SystemExit("DELIVERY_TIMEOUT_SECONDS must be positive")
    if settings.retention_days <= 0:
        log.error("startup.config invalid: EXPIRED_EVENTS_RETENTION_DAYS=%s", settings.retention_days)
        raise SystemExit("EXPIRED_EVENTS_RETENTION_DAYS must be positive")
    if not 0 <= settings.sweep_hour <= 23 or not 0 <= settings.sweep_minute <= 59:
        log.error("startup.config invalid: SWEEP_HOUR=%s SWEEP_MINUTE=%s", settings.sweep_hour, settings.sweep_minute)
        raise SystemExit("SWEEP_HOUR/SWEEP_MINUTE out of range")
    if settings.notifier not in _NOTIFIERS:
        log.error("startup.config invalid: NOTIFIER=%s", settings.notifier)
        raise SystemExit(f"NOTIFIER must be one of {sorted(_NOTIFIERS)}")
    if settings.notifier == "webhook" and not settings.webhook_url:
        log.error("startup.config invalid: NOTIFIER=webhook without WEBHOOK_URL")
        raise SystemExit("WEBHOOK_URL is not set")
    if settings.notifier == "webhook" and settings.webhook_timeout_seconds >= settings.delivery_timeout_seconds:
        log.warning(
            "startup.config webhook timeout %.1fs not below delivery timeout %.1fs; retries will be cut short",
            settings.webhook_timeout_seconds,
            settings.delivery_timeout_seconds,
        )
    if settings.notifier == "log":
        log.warning("startup.config notifier=log: reminders are logged, not delivered")


def _parse_optional_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    trimmed = value.strip()
    if not trimmed:
        return default
    return float(trimmed)


def _parse_optional_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    trimmed = value.strip().lower()
    if not trimmed:
        return None
    return trimmed in {"1", "true", "yes", "on"}


def _parse_int_with_default(value: str | None, default: int) -> int:
    if value is None:
        return default
    trimmed = value.strip()
    if not trimmed:
        return default
    return int(trimmed)
