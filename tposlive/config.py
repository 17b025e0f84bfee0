"""設定の読み込み・保存。main / job で共有。"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv

from tposlive.constants import (
    DEFAULT_COMPANY_ID,
    DEFAULT_CRM_TEAM_ID,
    DEFAULT_PHASE_CUTOFF_MINUTE,
    DEFAULT_UTC_OFFSET_HOURS,
    DEFAULT_WAREHOUSE_ID,
    PRICE_STORAGE_DIVISOR,
)

load_dotenv()

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent.parent


def default_config() -> dict[str, Any]:
    """デフォルト設定を返す。"""
    return {
        "tpos": {
            "default_crm_team_id": DEFAULT_CRM_TEAM_ID,
            "warehouse_id": DEFAULT_WAREHOUSE_ID,
            "company_id": DEFAULT_COMPANY_ID,
        },
        "live": {
            "utc_offset_hours": DEFAULT_UTC_OFFSET_HOURS,
            "phase_cutoff_minute": DEFAULT_PHASE_CUTOFF_MINUTE,  # 12:30 まで午前
        },
        "progress": {
            "debounce_sec": 0.3,
            "heartbeat_check_sec": 10,
            "silence_window_sec": 15,
            "fallback_poll_interval_sec": 2,
            "fallback_max_polls": 60,
            "backup_poll_interval_sec": 3,
            "backup_max_polls": 40,
            "post_subscribe_poll_delay_sec": 1,
            "hard_timeout_sec": 120,
        },
        "reconcile": {
            "match_retry_attempts": 3,
            "match_retry_delay_sec": 2,
            "match_retry_backoff": 1.0,
            "price_divisor": PRICE_STORAGE_DIVISOR,
        },
    }


def load_config(config_path: Optional[str] = None) -> dict[str, Any]:
    """config.yaml を読み込む。存在しなければデフォルトを返す。読み込みエラー時もデフォルトを返す。"""
    path = config_path or os.getenv("CONFIG_PATH") or str(ROOT / "config.yaml")
    if not os.path.isfile(path):
        return default_config()
    try:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        logger.warning("config.yaml の読み込みに失敗したためデフォルトを使用: %s", e)
        return default_config()
    if not isinstance(loaded, dict):
        return default_config()
    merged = default_config()
    for section, values in loaded.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def save_config(config: dict[str, Any], config_path: Optional[str] = None) -> None:
    """config.yaml に保存する。"""
    path = config_path or str(ROOT / "config.yaml")
    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, allow_unicode=True, default_flow_style=False)
