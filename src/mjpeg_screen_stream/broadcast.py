"""フレームのブロードキャスト配信 (Distributor).

1 つのプロデューサースレッドから publish された EncodedFrame を、
asyncio タスクで動く複数の subscriber にファンアウトする。

- 固定長リングバッファ + subscriber ごとの読み取りカーソル
- publish は遅い subscriber を待たない (古いフレームを上書き)
- 追い越された subscriber は Lagged(n) を受け取り、残っている最古のフレームから再開
- close() 後は全 subscriber が残りのフレームを読み切ってから Closed を 1 回だけ受け取る

ロックはスロット/カーソル/登録の更新中だけ保持し、待機中は保持しない。
待機中の subscriber は asyncio.Event で起こす (call_soon_threadsafe)。
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass

from mjpeg_screen_stream.encoder import EncodedFrame

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 16


@dataclass(frozen=True, slots=True)
class Lagged:
    """読み取りが遅れて missed フレームを取りこぼした (エラーではない)."""

    missed: int


@dataclass(frozen=True, slots=True)
class Closed:
    """プロデューサーが終了した. これ以降フレームは届かない."""


CLOSED = Closed()

RecvResult = EncodedFrame | Lagged | Closed


class Subscription:
    """Distributor の購読ハンドル (接続ごとに 1 つ).

    Usage:
        with distributor.subscribe() as sub:
            while True:
                result = await sub.next()
                if isinstance(result, Closed):
                    break
                if isinstance(result, Lagged):
                    continue
                ...
    """

    def __init__(self, distributor: Distributor, cursor: int):
        self._distributor = distributor
        # 次に読むフレームのシーケンス番号 (Distributor のロック下でのみ更新)
        self._cursor = cursor
        self._event: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._released = False
        self._lagged_frames = 0

    @property
    def released(self) -> bool:
        return self._released

    @property
    def lagged_frames(self) -> int:
        """取りこぼしたフレームの累計."""
        return self._lagged_frames

    def try_next(self) -> RecvResult | None:
        """ノンブロッキングで 1 件読む. 何もなければ None.

        Raises:
            RuntimeError: 解放済み (Closed 受信後を含む) の場合
        """
        if self._released:
            raise RuntimeError("Subscription is released")
        result = self._distributor._recv(self)
        if isinstance(result, Lagged):
            self._lagged_frames += result.missed
        elif result is CLOSED:
            self.close()
        return result

    async def next(self) -> RecvResult:
        """次のフレーム / Lagged / Closed を待って返す."""
        if self._event is None:
            # event を先に設定する (_wake は _loop を見てから event を使う)
            self._event = asyncio.Event()
            self._loop = asyncio.get_running_loop()

        while True:
            self._event.clear()
            result = self.try_next()
            if result is not None:
                return result
            await self._event.wait()

    def close(self) -> None:
        """購読を解放する (冪等). 他の subscriber には影響しない."""
        if self._released:
            return
        self._released = True
        self._distributor._unsubscribe(self)

    def _wake(self) -> bool:
        """待機中の next() を起こす. 任意のスレッドから呼ばれる.

        Returns:
            イベントループが閉じていて起こせなかった場合 False
        """
        loop = self._loop
        if loop is None:
            return True
        try:
            loop.call_soon_threadsafe(self._event.set)
        except RuntimeError:
            return False
        return True

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Distributor:
    """単一 writer / 複数 reader のフレームブロードキャスト.

    プロセス起動時に 1 つ作成し、各接続ハンドラに明示的に渡す。
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._ring: list[EncodedFrame | None] = [None] * capacity
        # 次に publish するフレームのシーケンス番号
        self._tail = 0
        self._subscribers: set[Subscription] = set()
        self._lock = threading.Lock()
        self._closed = False
        self._published = 0
        self._dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, frame: EncodedFrame) -> int:
        """フレームを全 subscriber に公開する. ブロックしない.

        subscriber がいない場合はフレームを破棄して 0 を返す。

        Returns:
            フレームが見える subscriber 数

        Raises:
            RuntimeError: close() 後に呼ばれた場合
        """
        with self._lock:
            if self._closed:
                raise RuntimeError("Distributor is closed")
            if not self._subscribers:
                self._dropped += 1
                return 0
            self._ring[self._tail % self._capacity] = frame
            self._tail += 1
            self._published += 1
            subscribers = list(self._subscribers)

        stale = [sub for sub in subscribers if not sub._wake()]
        for sub in stale:
            logger.warning("Dropping subscriber whose event loop is closed")
            sub.close()
        return len(subscribers) - len(stale)

    def subscribe(self) -> Subscription:
        """購読を開始する. 購読後に publish されたフレームだけが見える."""
        with self._lock:
            sub = Subscription(self, self._tail)
            if self._closed:
                return sub
            self._subscribers.add(sub)
            count = len(self._subscribers)
        logger.info("Subscriber added (total=%d)", count)
        return sub

    def close(self) -> None:
        """入力を閉じる (冪等). 全 subscriber を起こして Closed を通知する."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = list(self._subscribers)

        logger.info("Distributor closed (subscribers=%d)", len(subscribers))
        for sub in subscribers:
            sub._wake()

    def stats(self) -> dict:
        """配信状況 (ヘルスチェック用)."""
        with self._lock:
            return {
                "published": self._published,
                "dropped": self._dropped,
                "subscribers": len(self._subscribers),
                "capacity": self._capacity,
                "closed": self._closed,
            }

    def _recv(self, sub: Subscription) -> RecvResult | None:
        with self._lock:
            if sub._cursor < self._tail:
                oldest = max(0, self._tail - self._capacity)
                if sub._cursor < oldest:
                    missed = oldest - sub._cursor
                    sub._cursor = oldest
                    return Lagged(missed)
                frame = self._ring[sub._cursor % self._capacity]
                sub._cursor += 1
                return frame
            if self._closed:
                return CLOSED
            return None

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub not in self._subscribers:
                return
            self._subscribers.discard(sub)
            count = len(self._subscribers)
        logger.info("Subscriber removed (total=%d)", count)
