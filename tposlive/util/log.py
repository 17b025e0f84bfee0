"""簡易ロギング。注文・バッチのサマリを必ず出せるようにする。"""
import logging
import sys
from typing import Any, Optional

def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

def log_order_summary(
    logger: logging.Logger,
    comment_id: str,
    tpos_order_id: Optional[str],
    order_code: Optional[str],
    product_codes: list[str],
    live_orders_created: int,
    skipped_codes: list[str],
    order_count: int,
    **extra: Any,
) -> None:
    logger.info(
        "order_summary comment_id=%s tpos_order_id=%s code=%s product_codes=%s live_orders=%s skipped=%s order_count=%s",
        comment_id,
        tpos_order_id or "(none)",
        order_code or "(none)",
        ",".join(product_codes) or "(none)",
        live_orders_created,
        ",".join(skipped_codes) or "(none)",
        order_count,
        extra=extra,
    )

def log_batch_summary(
    logger: logging.Logger,
    purchase_order_id: str,
    total: int,
    groups: int,
    succeeded: int,
    failed: int,
    skipped_groups: int,
    notes: str = "",
    **extra: Any,
) -> None:
    logger.info(
        "batch_summary purchase_order_id=%s total=%s groups=%s succeeded=%s failed=%s skipped_groups=%s notes=%s",
        purchase_order_id,
        total,
        groups,
        succeeded,
        failed,
        skipped_groups,
        notes or "(none)",
        extra=extra,
    )
