"""ストア用データモデル。"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class InventoryProductRow:
    id: int
    product_code: str
    product_name: str
    variant: Optional[str]
    base_product_code: Optional[str]
    tpos_image_url: Optional[str]
    tpos_product_id: Optional[int]


@dataclass
class LivePhaseRow:
    id: int
    live_session_id: int
    phase_date: str  # YYYY-MM-DD（ローカル日付）
    phase_type: str  # morning / evening


@dataclass
class LiveProductRow:
    id: int
    live_session_id: int
    live_phase_id: int
    product_code: str
    product_name: str
    variant: str
    product_type: str  # hang_dat / hang_le
    prepared_quantity: int
    sold_quantity: int
    image_url: Optional[str]

    @property
    def is_oversold(self) -> bool:
        """準備数以上に売れているか。LiveOrder 作成時点の判定に使う。"""
        return self.sold_quantity >= self.prepared_quantity


@dataclass
class LiveOrderRow:
    id: int
    facebook_comment_id: str
    live_product_id: int
    live_session_id: int
    live_phase_id: int
    order_code: Optional[str]
    tpos_order_id: Optional[str]
    is_oversell: bool


@dataclass
class PendingOrderRow:
    id: int
    facebook_comment_id: str
    facebook_user_id: Optional[str]
    facebook_post_id: Optional[str]
    name: Optional[str]
    session_index: Optional[str]
    code: Optional[str]
    phone: Optional[str]
    comment: Optional[str]
    created_time: Optional[str]
    tpos_order_id: Optional[str]
    order_count: int
    product_codes: list[str] = field(default_factory=list)
    comment_type: Optional[str] = None


@dataclass
class PurchaseOrderRow:
    id: str
    supplier_name: Optional[str]


@dataclass
class PurchaseOrderItemRow:
    id: str
    purchase_order_id: str
    position: int
    product_code: str
    product_name: str
    variant: Optional[str]
    purchase_price: float
    selling_price: float
    quantity: int
    product_images: list[str]
    selected_attribute_value_ids: list[str]
    tpos_sync_status: str  # pending / pending_no_match / processing / success / failed
    tpos_sync_started_at: Optional[str]
    tpos_sync_completed_at: Optional[str]
    tpos_sync_error: Optional[str]
    tpos_product_id: Optional[int]


@dataclass
class AttributeValueRow:
    id: str
    attribute_id: str
    attribute_name: str
    display_order: int
    value: str
    code: Optional[str]
    tpos_id: int
    tpos_attribute_id: int
    sequence: Optional[int]
    name_get: Optional[str]
