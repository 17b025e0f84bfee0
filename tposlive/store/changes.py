"""
行変更の通知フィード（プロセス内）。
リポジトリが書き込み後に publish し、購読側（進捗トラッカー等）がテーブル＋等値フィルタで受け取る。
配信は at-least-once 相当で順序保証なし。購読側は通知内容を信用せず DB を再読する前提。
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

STATUS_SUBSCRIBED = "SUBSCRIBED"
STATUS_CLOSED = "CLOSED"
STATUS_CHANNEL_ERROR = "CHANNEL_ERROR"


@dataclass
class ChangeEvent:
    table: str
    event: str  # INSERT / UPDATE
    new: dict[str, Any]


class Subscription:
    """subscribe() の戻り値。unsubscribe() で解除。"""

    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        filters: dict[str, Any],
        on_change: Callable[[ChangeEvent], None],
        on_status: Optional[Callable[[str], None]] = None,
    ) -> None:
        self._feed = feed
        self.table = table
        self.filters = dict(filters)
        self.on_change = on_change
        self.on_status = on_status
        self.active = True

    def matches(self, table: str, row: dict[str, Any]) -> bool:
        if not self.active or table != self.table:
            return False
        return all(row.get(k) == v for k, v in self.filters.items())

    def notify_status(self, status: str) -> None:
        if self.on_status is not None:
            self.on_status(status)

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._feed._remove(self)


class ChangeFeed:
    def __init__(self) -> None:
        self._subs: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        table: str,
        filters: dict[str, Any],
        on_change: Callable[[ChangeEvent], None],
        on_status: Optional[Callable[[str], None]] = None,
    ) -> Subscription:
        sub = Subscription(self, table, filters, on_change, on_status)
        with self._lock:
            self._subs.append(sub)
        sub.notify_status(STATUS_SUBSCRIBED)
        return sub

    def publish(self, table: str, event: str, row: dict[str, Any]) -> int:
        """一致する購読者に配信。配信件数を返す。購読側の例外は配信を止めない。"""
        with self._lock:
            targets = [s for s in self._subs if s.matches(table, row)]
        change = ChangeEvent(table=table, event=event, new=dict(row))
        for sub in targets:
            try:
                sub.on_change(change)
            except Exception:
                logger.exception("change handler failed: table=%s", table)
        return len(targets)

    def close(self, status: str = STATUS_CLOSED) -> None:
        """全購読を切断し、購読側に status を通知（フォールバック動作の確認用）。"""
        with self._lock:
            subs = list(self._subs)
            self._subs.clear()
        for sub in subs:
            sub.active = False
            sub.notify_status(status)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subs)

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)
