"""ジョブ実行パラメータ。"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from tposlive.constants import (
    DEFAULT_PHASE_CUTOFF_MINUTE,
    DEFAULT_UTC_OFFSET_HOURS,
    PRICE_STORAGE_DIVISOR,
)

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class LiveParams:
    """ライブ配信のフェーズ判定パラメータ。"""

    utc_offset_hours: int = DEFAULT_UTC_OFFSET_HOURS
    phase_cutoff_minute: int = DEFAULT_PHASE_CUTOFF_MINUTE  # この分（当日0時起点）以前は午前

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> LiveParams:
        live_cfg = config.get("live", {})
        cutoff = int(live_cfg.get("phase_cutoff_minute", DEFAULT_PHASE_CUTOFF_MINUTE))
        if not 0 <= cutoff < MINUTES_PER_DAY:
            logger.warning(
                "phase_cutoff_minute=%d は範囲外です。%d に補正しました。",
                cutoff,
                DEFAULT_PHASE_CUTOFF_MINUTE,
            )
            cutoff = DEFAULT_PHASE_CUTOFF_MINUTE
        return cls(
            utc_offset_hours=int(live_cfg.get("utc_offset_hours", DEFAULT_UTC_OFFSET_HOURS)),
            phase_cutoff_minute=cutoff,
        )


@dataclass(frozen=True)
class ProgressParams:
    """進捗トラッカーのタイミング（秒）。"""

    debounce_sec: float = 0.3
    heartbeat_check_sec: float = 10
    silence_window_sec: float = 15
    fallback_poll_interval_sec: float = 2
    fallback_max_polls: int = 60
    backup_poll_interval_sec: float = 3
    backup_max_polls: int = 40
    post_subscribe_poll_delay_sec: float = 1
    hard_timeout_sec: float = 120

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ProgressParams:
        cfg = config.get("progress", {})
        defaults = cls()
        return cls(
            debounce_sec=float(cfg.get("debounce_sec", defaults.debounce_sec)),
            heartbeat_check_sec=float(cfg.get("heartbeat_check_sec", defaults.heartbeat_check_sec)),
            silence_window_sec=float(cfg.get("silence_window_sec", defaults.silence_window_sec)),
            fallback_poll_interval_sec=float(
                cfg.get("fallback_poll_interval_sec", defaults.fallback_poll_interval_sec)
            ),
            fallback_max_polls=int(cfg.get("fallback_max_polls", defaults.fallback_max_polls)),
            backup_poll_interval_sec=float(
                cfg.get("backup_poll_interval_sec", defaults.backup_poll_interval_sec)
            ),
            backup_max_polls=int(cfg.get("backup_max_polls", defaults.backup_max_polls)),
            post_subscribe_poll_delay_sec=float(
                cfg.get("post_subscribe_poll_delay_sec", defaults.post_subscribe_poll_delay_sec)
            ),
            hard_timeout_sec=float(cfg.get("hard_timeout_sec", defaults.hard_timeout_sec)),
        )


@dataclass(frozen=True)
class ReconcileParams:
    """発注明細バッチ処理のパラメータ。"""

    match_retry_attempts: int = 3
    match_retry_delay_sec: float = 2
    match_retry_backoff: float = 1.0
    price_divisor: int = PRICE_STORAGE_DIVISOR

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> ReconcileParams:
        cfg = config.get("reconcile", {})
        attempts = int(cfg.get("match_retry_attempts", 3))
        if attempts < 1:
            logger.warning("match_retry_attempts=%d は1未満です。1に補正しました。", attempts)
            attempts = 1
        return cls(
            match_retry_attempts=attempts,
            match_retry_delay_sec=float(cfg.get("match_retry_delay_sec", 2)),
            match_retry_backoff=float(cfg.get("match_retry_backoff", 1.0)),
            price_divisor=int(cfg.get("price_divisor", PRICE_STORAGE_DIVISOR)) or PRICE_STORAGE_DIVISOR,
        )
