"""非同期処理のリトライポリシー（最大試行回数 + 待機秒の増やし方）。"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """
    max_attempts 回まで実行。n 回目の失敗後は delay_sec * backoff**(n-1) 秒待つ。
    backoff=1.0 なら固定間隔。
    """

    max_attempts: int = 3
    delay_sec: float = 2.0
    backoff: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        return self.delay_sec * (self.backoff ** (attempt - 1))

    async def run(
        self,
        func: Callable[[], Awaitable[T]],
        label: str = "",
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> T:
        """func を実行し、retry_on の例外なら待って再実行。使い切ったら RetryExhaustedError。"""
        sleep = sleep or asyncio.sleep
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await func()
            except self.retry_on as e:
                last_error = e
                if attempt >= self.max_attempts:
                    break
                wait = self.delay_for(attempt)
                logger.warning(
                    "%s 失敗 (%d/%d)、%.1f 秒後に再試行: %s",
                    label or "処理", attempt, self.max_attempts, wait, e,
                )
                await sleep(wait)
        assert last_error is not None
        raise RetryExhaustedError(self.max_attempts, last_error)
