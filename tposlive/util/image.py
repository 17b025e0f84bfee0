"""画像処理ユーティリティ。"""
from __future__ import annotations

import base64
import io
import logging
from typing import Optional

from PIL import Image, UnidentifiedImageError

from tposlive.util import http

logger = logging.getLogger(__name__)


def to_base64_jpeg(raw: bytes) -> Optional[str]:
    """
    画像を JPEG に変換して Base64 化。TPOS 商品登録の Image フィールド用。
    RGBA/PNG などは JPEG に変換し、変換失敗時はそのまま Base64 化する。
    """
    if not raw:
        return None
    try:
        img = Image.open(io.BytesIO(raw))
        if img.mode in ("RGBA", "P", "LA"):
            img = img.convert("RGB")
        buf = io.BytesIO()
        img.save(buf, format="JPEG", quality=90)
        return base64.b64encode(buf.getvalue()).decode("ascii")
    except (UnidentifiedImageError, OSError, ValueError):
        return base64.b64encode(raw).decode("ascii")


def image_url_to_base64(url: str) -> Optional[str]:
    """URL の画像をダウンロードして Base64 化。失敗時は None（画像なしで登録を続行）。"""
    try:
        raw = http.download_bytes(url, retry_max=1)
    except Exception as e:
        logger.warning("画像ダウンロード失敗: url=%s, error=%s", url[:100], e)
        return None
    return to_base64_jpeg(raw)
