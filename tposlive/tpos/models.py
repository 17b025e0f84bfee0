"""TPOS / Facebook のリクエスト・レスポンス用モデル（簡易 dataclass）。"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class CommentAuthor:
    id: str
    name: str

    @classmethod
    def from_api(cls, d: Optional[dict[str, Any]]) -> CommentAuthor:
        d = d or {}
        return cls(id=str(d.get("id", "")), name=d.get("name") or "")


@dataclass
class LiveComment:
    """ライブ配信のコメント（Facebook Graph API 形式）。"""

    id: str
    message: str
    created_time: str  # "2025-10-09T08:43:42+0000"
    author: CommentAuthor
    is_hidden: bool = False

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> LiveComment:
        return cls(
            id=str(d.get("id", "")),
            message=d.get("message") or "",
            created_time=d.get("created_time") or "",
            author=CommentAuthor.from_api(d.get("from")),
            is_hidden=bool(d.get("is_hidden", False)),
        )


@dataclass
class CrmTeam:
    id: str
    name: str
    children: list[CrmTeam] = field(default_factory=list)

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> CrmTeam:
        return cls(
            id=str(d.get("Id", "")),
            name=d.get("Name") or "",
            children=[cls.from_api(c) for c in (d.get("Childs") or [])],
        )


@dataclass
class RemoteOrder:
    """SaleOnline_Order 作成結果。session_index は TPOS が振る暫定連番。"""

    order_id: str
    code: Optional[str]
    session_index: Optional[str]
    name: Optional[str] = None
    telephone: Optional[str] = None
    total_amount: float = 0

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> RemoteOrder:
        session_index = d.get("SessionIndex")
        return cls(
            order_id=str(d.get("Id", "")),
            code=d.get("Code") or None,
            session_index=str(session_index) if session_index is not None else None,
            name=d.get("Name") or None,
            telephone=d.get("Telephone") or None,
            total_amount=float(d.get("TotalAmount") or 0),
        )


@dataclass
class RemoteOrderResult:
    order: RemoteOrder
    team_id: str
    team_name: str
    live_campaign_id: str
    payload: dict[str, Any]


@dataclass
class RemoteProduct:
    """Product/GetViewV2 の1件。attributes はバリアント表記（例: "Size M"）。"""

    product_id: Optional[int]
    default_code: str
    name: str
    attributes: Optional[str]
    image_url: Optional[str]

    @classmethod
    def from_api(cls, d: dict[str, Any]) -> RemoteProduct:
        pid = d.get("Id")
        return cls(
            product_id=int(pid) if pid is not None else None,
            default_code=d.get("DefaultCode") or "",
            name=d.get("Name") or "",
            attributes=d.get("Attributes") or None,
            image_url=d.get("ImageURL") or None,
        )


@dataclass
class VariantCreateResult:
    tpos_product_id: Optional[int]
    variant_count: int
