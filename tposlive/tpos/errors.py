"""TPOS 連携のエラー型。"""
from __future__ import annotations

from typing import Any, Optional


class TposApiError(Exception):
    """
    TPOS API が 2xx 以外を返した、または通信自体に失敗した。
    オペレーター調査用に生のレスポンス本文と送信ペイロードを保持する。
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.payload = payload

    def with_payload(self, payload: Any) -> TposApiError:
        self.payload = payload
        return self

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": str(self),
            "status": self.status_code,
            "body": self.body,
            "payload": self.payload,
        }


RemoteApiError = TposApiError


class TposCredentialsError(Exception):
    """bearer token が見つからない。"""


class BatchNotFoundError(Exception):
    """処理対象の発注（purchase order）が存在しない、または削除済み。"""

    def __init__(self, purchase_order_id: str) -> None:
        super().__init__(f"purchase order not found: {purchase_order_id}")
        self.purchase_order_id = purchase_order_id
