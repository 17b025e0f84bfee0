"""
発注明細バッチの進捗トラッカー。
変更通知を受けたら（デバウンスして）DB から件数を読み直し、完了件数が総数に達したら complete。
通知が一定時間途絶えたらポーリングに切り替え（1回だけ）、ハード上限を過ぎたら timed-out。
状態は watching → complete / timed-out の一方向のみ。
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from tposlive.job.params import ProgressParams
from tposlive.store.changes import (
    STATUS_CHANNEL_ERROR,
    STATUS_CLOSED,
    STATUS_SUBSCRIBED,
    ChangeEvent,
    ChangeFeed,
    Subscription,
)
from tposlive.store.repo_purchase import ITEMS_TABLE

logger = logging.getLogger(__name__)

WATCHING = "watching"
COMPLETE = "complete"
TIMED_OUT = "timed-out"

# 完了済みが前回通知から何件増えたら途中経過を出すか
MESSAGE_STEP = 2

CountsReader = Callable[[], Union[tuple[int, int], Awaitable[tuple[int, int]]]]


@dataclass
class ProgressState:
    success_count: int = 0
    failed_count: int = 0
    completed_count: int = 0
    total_items: int = 0
    is_complete: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def progress_message(state: ProgressState) -> str:
    return (
        f"Đang xử lý {state.completed_count}/{state.total_items} sản phẩm... "
        f"({state.success_count} ✅, {state.failed_count} ❌)"
    )


def completion_message(state: ProgressState) -> tuple[str, str]:
    """(level, message)。全件成功 / 全件失敗 / 混在 で文言を変える。"""
    if state.failed_count == 0:
        return "success", f"✅ Đã tạo thành công {state.success_count} sản phẩm trên TPOS!"
    if state.success_count == 0:
        return "error", f"❌ Tất cả {state.failed_count} sản phẩm đều lỗi. Vui lòng kiểm tra chi tiết."
    return (
        "warning",
        f"⚠️ {state.success_count} thành công, {state.failed_count} lỗi. "
        "Bạn có thể retry trong chi tiết đơn hàng.",
    )


TIMEOUT_MESSAGE = "⏱️ Timeout: Xử lý quá lâu. Vui lòng kiểm tra chi tiết đơn hàng."


class ProgressTracker:
    """
    1バッチ（発注ID + 総明細数）分の進捗を追う。バッチごとに生成して使い捨てる。

    read_counts: (success 件数, failed 件数) を返す正の読み取り（同期/非同期どちらでも可）
    on_complete: complete になったとき1回だけ呼ばれる
    on_message: (level, message) の表示用コールバック（level: loading/success/error/warning）
    skip_initial_query: 作成直後のバッチで完了済み明細が無いと分かっている場合だけ True
    """

    def __init__(
        self,
        purchase_order_id: str,
        total_items: int,
        read_counts: CountsReader,
        feed: Optional[ChangeFeed] = None,
        on_complete: Optional[Callable[[ProgressState], None]] = None,
        on_message: Optional[Callable[[str, str], None]] = None,
        on_timeout: Optional[Callable[[ProgressState], None]] = None,
        params: Optional[ProgressParams] = None,
        skip_initial_query: bool = False,
    ) -> None:
        self.purchase_order_id = purchase_order_id
        self.read_counts = read_counts
        self.feed = feed
        self.on_complete = on_complete
        self.on_message = on_message
        self.on_timeout = on_timeout
        self.params = params or ProgressParams()
        self.skip_initial_query = skip_initial_query

        self.state = ProgressState(total_items=total_items)
        self.status = WATCHING
        self.is_fallback_mode = False
        self.fallback_activations = 0
        self.refresh_count = 0

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._subscription: Optional[Subscription] = None
        self._tasks: set[asyncio.Task] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._heartbeat: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Event] = None
        self._last_update = 0.0
        self._last_reported = 0
        self._completed_once = False

    @property
    def finished(self) -> bool:
        return self.status != WATCHING

    async def start(self) -> None:
        """ハード上限の計時・初回読み取り・購読を開始する。"""
        self._loop = asyncio.get_running_loop()
        self._done_event()
        self._last_update = self._loop.time()
        self._timers["hard_timeout"] = self._loop.call_later(
            self.params.hard_timeout_sec, self._on_hard_timeout
        )
        if self.skip_initial_query:
            logger.info("初回読み取りをスキップ（新規バッチ）: %s", self.purchase_order_id)
        else:
            await self.refresh()
        if self.finished:
            return
        if self.feed is None:
            self.activate_fallback()
            return
        self._subscription = self.feed.subscribe(
            ITEMS_TABLE,
            {"purchase_order_id": self.purchase_order_id},
            self._on_change,
            self._on_status,
        )

    async def wait(self) -> str:
        await self._done_event().wait()
        return self.status

    async def run(self) -> ProgressState:
        """start して complete / timed-out まで待つ。"""
        await self.start()
        await self.wait()
        return self.state

    async def refresh(self) -> None:
        """正の状態を読み直して件数を更新。総数に達したら complete にする。"""
        if self.finished:
            return
        try:
            counts = self.read_counts()
            if inspect.isawaitable(counts):
                counts = await counts
        except Exception:
            logger.exception("進捗の読み取りに失敗: %s", self.purchase_order_id)
            return
        if self.finished:
            return
        self.refresh_count += 1
        success_count, failed_count = counts
        completed = success_count + failed_count
        total = self.state.total_items
        self.state = ProgressState(
            success_count=success_count,
            failed_count=failed_count,
            completed_count=completed,
            total_items=total,
            is_complete=completed >= total,
        )
        if self.state.is_complete:
            self._complete()
            return
        if completed - self._last_reported >= MESSAGE_STEP or self._last_reported == 0:
            self._emit("loading", progress_message(self.state))
            self._last_reported = completed

    def activate_fallback(self) -> None:
        """ポーリングモードに切り替える。2回目以降は何もしない。"""
        if self.is_fallback_mode or self.finished:
            return
        self.is_fallback_mode = True
        self.fallback_activations += 1
        logger.warning("変更通知が途絶えたためポーリングに切り替え: %s", self.purchase_order_id)
        self._spawn(self._fallback_poll())

    # --- 変更通知 -------------------------------------------------------

    def _on_change(self, event: ChangeEvent) -> None:
        # 通知は別スレッドから来ることがあるのでループに載せ替える
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._handle_change, event)

    def _on_status(self, status: str) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._handle_status, status)

    def _handle_change(self, event: ChangeEvent) -> None:
        if self.finished or self._loop is None:
            return
        logger.debug("変更通知: id=%s status=%s", event.new.get("id"), event.new.get("tpos_sync_status"))
        self._last_update = self._loop.time()
        self._restart_heartbeat()
        self._schedule("debounce", self.params.debounce_sec, self.refresh)

    def _handle_status(self, status: str) -> None:
        if self.finished:
            return
        logger.info("購読状態: %s (%s)", status, self.purchase_order_id)
        if status == STATUS_SUBSCRIBED:
            self._restart_heartbeat()
            # 購読準備の前にバッチが終わっていた場合の取りこぼし対策
            self._schedule("post_subscribe", self.params.post_subscribe_poll_delay_sec, self.refresh)
            self._spawn(self._backup_poll())
        elif status in (STATUS_CLOSED, STATUS_CHANNEL_ERROR):
            self.activate_fallback()

    # --- タイマー類 -----------------------------------------------------

    def _restart_heartbeat(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            self._tasks.discard(self._heartbeat)
        self._heartbeat = self._spawn(self._heartbeat_check())

    async def _heartbeat_check(self) -> None:
        assert self._loop is not None
        while not self.finished:
            await asyncio.sleep(self.params.heartbeat_check_sec)
            if self.finished:
                return
            silence = self._loop.time() - self._last_update
            if silence > self.params.silence_window_sec and not self.is_fallback_mode:
                self.activate_fallback()
                return

    async def _fallback_poll(self) -> None:
        for _ in range(self.params.fallback_max_polls):
            if self.finished:
                return
            await self.refresh()
            if self.finished:
                return
            await asyncio.sleep(self.params.fallback_poll_interval_sec)

    async def _backup_poll(self) -> None:
        count = 0
        while True:
            await asyncio.sleep(self.params.backup_poll_interval_sec)
            count += 1
            if count >= self.params.backup_max_polls or self.finished:
                return
            logger.debug("バックアップポーリング %d/%d", count, self.params.backup_max_polls)
            await self.refresh()

    def _schedule(self, name: str, delay: float, coro_fn: Callable[[], Awaitable[None]]) -> None:
        """名前付きタイマー。同名のものは置き換える（デバウンス）。"""
        assert self._loop is not None
        old = self._timers.pop(name, None)
        if old is not None:
            old.cancel()

        def fire() -> None:
            self._timers.pop(name, None)
            if not self.finished:
                self._spawn(coro_fn())

        self._timers[name] = self._loop.call_later(delay, fire)

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # --- 終了処理 -------------------------------------------------------

    def _complete(self) -> None:
        if self._completed_once:
            return
        self._completed_once = True
        self.status = COMPLETE
        logger.info(
            "処理完了: %s success=%d failed=%d total=%d",
            self.purchase_order_id, self.state.success_count,
            self.state.failed_count, self.state.total_items,
        )
        level, message = completion_message(self.state)
        self._emit(level, message)
        self._cleanup()
        if self.on_complete is not None:
            self.on_complete(self.state)

    def _on_hard_timeout(self) -> None:
        self._timers.pop("hard_timeout", None)
        if self.finished:
            return
        self.status = TIMED_OUT
        logger.error("処理がタイムアウト（%.0f 秒）: %s", self.params.hard_timeout_sec, self.purchase_order_id)
        self._emit("error", TIMEOUT_MESSAGE)
        self._cleanup()
        if self.on_timeout is not None:
            self.on_timeout(self.state)

    def _emit(self, level: str, message: str) -> None:
        if self.on_message is not None:
            try:
                self.on_message(level, message)
            except Exception:
                logger.exception("on_message failed")

    def _cleanup(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        current = asyncio.current_task() if self._loop is not None else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        self._done_event().set()

    def _done_event(self) -> asyncio.Event:
        # 実行中のループ上で生成する
        if self._done is None:
            self._done = asyncio.Event()
        return self._done
