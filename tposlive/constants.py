"""共通定数。"""
from __future__ import annotations

TPOS_BASE_URL = "https://tomato.tpos.vn"
TPOS_APP_VERSION = "5.9.10.1"

# CRM Team が DB にも TPOS にも見つからない場合の既定値
DEFAULT_CRM_TEAM_ID = "10052"
DEFAULT_CRM_TEAM_NAME = "Default Team"

DEFAULT_WAREHOUSE_ID = 1
DEFAULT_COMPANY_ID = 1

# ライブ配信のタイムゾーン（ベトナム, UTC+7）と午前/夜の境界（12:30 = 750分）
DEFAULT_UTC_OFFSET_HOURS = 7
DEFAULT_PHASE_CUTOFF_MINUTE = 750

PHASE_MORNING = "morning"
PHASE_EVENING = "evening"

COMMENT_TYPE_ORDERED = "hang_dat"
COMMENT_TYPE_RETAIL = "hang_le"

# purchase_order_items.tpos_sync_status
SYNC_PENDING = "pending"
SYNC_PENDING_NO_MATCH = "pending_no_match"
SYNC_PROCESSING = "processing"
SYNC_SUCCESS = "success"
SYNC_FAILED = "failed"

ELIGIBLE_SYNC_STATUSES = (SYNC_PENDING, SYNC_PENDING_NO_MATCH, SYNC_FAILED)

# ローカル保存価格は 1000 倍で保持している
PRICE_STORAGE_DIVISOR = 1000
