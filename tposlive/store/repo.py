"""
ストアリポジトリの集約エントリポイント。
在庫キャッシュ / ライブ商品・注文 / 保留注文 / 発注明細 の CRUD を一元提供。
"""
from __future__ import annotations

from tposlive.store.repo_live import (
    create_live_product,
    create_live_session,
    find_live_products,
    get_live_orders_by_comment,
    get_live_product,
    get_phase,
    insert_live_order,
    set_prepared_quantity,
)
from tposlive.store.repo_pages import (
    get_bearer_token,
    get_live_campaign_id,
    get_page,
    save_bearer_token,
    save_live_campaign_id,
    upsert_page_team,
)
from tposlive.store.repo_pending import (
    archive_comment,
    count_pending_orders,
    enqueue_pending_live_order,
    get_pending_order,
    get_recent_session_indexes,
    mark_archive_synced,
    upsert_pending_order,
)
from tposlive.store.repo_products import (
    get_product_by_code,
    get_products_by_base_code,
    upsert_product,
)
from tposlive.store.repo_purchase import (
    add_attribute,
    add_attribute_value,
    add_item,
    append_item_error,
    claim_items,
    create_purchase_order,
    delete_purchase_order,
    finalize_items,
    get_attribute_values,
    get_eligible_items,
    get_item,
    get_items,
    get_pending_variant_items,
    get_purchase_order,
    get_status_counts,
    release_stale_claims,
    requeue_failed_items,
    update_item_product,
)

__all__ = [
    "add_attribute",
    "add_attribute_value",
    "add_item",
    "append_item_error",
    "archive_comment",
    "claim_items",
    "count_pending_orders",
    "create_live_product",
    "create_live_session",
    "create_purchase_order",
    "delete_purchase_order",
    "enqueue_pending_live_order",
    "finalize_items",
    "find_live_products",
    "get_attribute_values",
    "get_bearer_token",
    "get_eligible_items",
    "get_item",
    "get_items",
    "get_live_campaign_id",
    "get_live_orders_by_comment",
    "get_live_product",
    "get_page",
    "get_pending_order",
    "get_pending_variant_items",
    "get_phase",
    "get_product_by_code",
    "get_products_by_base_code",
    "get_purchase_order",
    "get_recent_session_indexes",
    "get_status_counts",
    "insert_live_order",
    "mark_archive_synced",
    "release_stale_claims",
    "requeue_failed_items",
    "save_bearer_token",
    "save_live_campaign_id",
    "set_prepared_quantity",
    "update_item_product",
    "upsert_page_team",
    "upsert_pending_order",
    "upsert_product",
]
