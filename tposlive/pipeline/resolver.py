"""
商品コードの解決: ローカル在庫キャッシュ（products）→ TPOS 商品検索 の順に探し、
TPOS で見つかった商品はキャッシュに upsert してから返す。どちらにも無ければ None。
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Optional, Protocol

from tposlive.store import repo
from tposlive.store.models import InventoryProductRow
from tposlive.tpos.models import RemoteProduct

logger = logging.getLogger(__name__)


class ProductSearcher(Protocol):
    async def search_product_by_code(self, product_code: str) -> Optional[RemoteProduct]: ...


class ProductResolver:
    def __init__(self, conn: sqlite3.Connection, searcher: ProductSearcher) -> None:
        self.conn = conn
        self.searcher = searcher

    async def resolve(self, product_code: str) -> Optional[InventoryProductRow]:
        local = repo.get_product_by_code(self.conn, product_code)
        if local is not None:
            return local

        remote = await self.searcher.search_product_by_code(product_code)
        if remote is None:
            logger.warning("商品が見つかりません（ローカル/TPOS とも）: code=%s", product_code)
            return None

        # 同じコードを別コメントから同時に解決しても行は1つ（product_code で upsert）
        product = repo.upsert_product(
            self.conn,
            product_code=remote.default_code or product_code,
            product_name=remote.name,
            variant=remote.attributes,
            tpos_image_url=remote.image_url,
            tpos_product_id=remote.product_id,
        )
        logger.info("TPOS から商品をキャッシュ: code=%s name=%s", product.product_code, product.product_name[:60])
        return product

    async def resolve_all(self, product_codes: list[str]) -> tuple[list[InventoryProductRow], list[str]]:
        """コードごとに順に解決し、(解決できた商品, 見つからなかったコード) を返す。"""
        resolved: list[InventoryProductRow] = []
        missed: list[str] = []
        for code in product_codes:
            product = await self.resolve(code)
            if product is None:
                missed.append(code)
            else:
                resolved.append(product)
        return resolved, missed
