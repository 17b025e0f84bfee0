"""
コメント本文からの商品コード抽出と、バリアント表記（"名前 - コード"）の分解。
ネットワーク・DB には触れない純粋関数のみ。
"""
from __future__ import annotations

import re
from typing import NamedTuple

# 英字1文字 + 数字1桁以上 + 英字0文字以上（例: N55, N236L, a12bc）
PRODUCT_CODE_PATTERN = re.compile(r"[A-Z]\d+[A-Z]*", re.IGNORECASE)


def extract_product_codes(text: str) -> list[str]:
    """
    本文中の商品コードを大文字化し、初出順を保って重複を除いて返す。
    >>> extract_product_codes("Lấy N55 và N236L, cảm ơn")
    ['N55', 'N236L']
    """
    if not text:
        return []
    seen: dict[str, None] = {}
    for m in PRODUCT_CODE_PATTERN.finditer(text):
        seen.setdefault(m.group(0).upper(), None)
    return list(seen)


class VariantParts(NamedTuple):
    name: str
    code: str


def parse_variant(variant: str | None) -> VariantParts:
    """
    バリアント表記を (名前, コード) に分解。
    "Size M - N152" / "- N152" / 旧形式の "Size M"（コード無し）に対応。
    """
    if not variant or not variant.strip():
        return VariantParts("", "")
    trimmed = variant.strip()
    if " - " in trimmed:
        name, _, code = trimmed.partition(" - ")
        return VariantParts(name.strip(), code.strip())
    if trimmed.startswith("- "):
        return VariantParts("", trimmed[2:].strip())
    return VariantParts(trimmed, "")


def format_variant(name: str | None, code: str) -> str:
    name = (name or "").strip()
    code = code.strip()
    if not name and not code:
        return ""
    if not name:
        return f"- {code}"
    return f"{name} - {code}"
