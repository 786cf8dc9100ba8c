"""MJPEG (multipart/x-mixed-replace) ストリームライター.

接続ごとに 1 つ生成し、Distributor の購読からフレームを取り出して
multipart レコードに変換する。遅延 (Lagged) は黙ってスキップし、
Closed を受け取ったら正常終了する。
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from mjpeg_screen_stream.broadcast import Closed, Distributor, Lagged
from mjpeg_screen_stream.encoder import EncodedFrame

logger = logging.getLogger(__name__)

BOUNDARY = "frame"
MEDIA_TYPE = f"multipart/x-mixed-replace; boundary={BOUNDARY}"


def frame_record(frame: EncodedFrame) -> bytes:
    """1 フレーム分の multipart レコードを組み立てる."""
    header = (
        f"--{BOUNDARY}\r\n"
        "Content-Type: image/jpeg\r\n"
        f"Content-Length: {len(frame.data)}\r\n"
        "\r\n"
    ).encode("ascii")
    return header + frame.data + b"\r\n"


class StreamWriter:
    """1 接続分の MJPEG 配信ループ.

    Usage:
        writer = StreamWriter(distributor)
        return StreamingResponse(writer.records(), media_type=MEDIA_TYPE)
    """

    def __init__(self, distributor: Distributor, *, name: str = "viewer"):
        self._name = name
        self._subscription = distributor.subscribe()
        self._frames_sent = 0

    @property
    def frames_sent(self) -> int:
        return self._frames_sent

    @property
    def closed(self) -> bool:
        return self._subscription.released

    def close(self) -> None:
        """購読を解放する (冪等). ストリーム開始前に切断された場合用."""
        self._subscription.close()

    async def records(self) -> AsyncIterator[bytes]:
        """multipart レコードを生成する.

        ジェネレータが閉じられる/キャンセルされると購読を解放する。
        """
        try:
            while True:
                result = await self._subscription.next()
                if isinstance(result, Closed):
                    logger.info("%s: stream closed by producer", self._name)
                    break
                if isinstance(result, Lagged):
                    logger.debug(
                        "%s: lagged, skipped %d frames", self._name, result.missed
                    )
                    continue
                yield frame_record(result)
                self._frames_sent += 1
        finally:
            self._subscription.close()

    async def run(self, send: Callable[[bytes], Awaitable[None]]) -> None:
        """レコードを send() で書き込み続ける.

        書き込み失敗 (クライアント切断) はこの接続だけを終了する。
        """
        records = self.records()
        try:
            async for record in records:
                await send(record)
        except (ConnectionError, OSError) as e:
            logger.info("%s: disconnected (%s)", self._name, e)
        finally:
            await records.aclose()
            logger.info(
                "%s: writer ended (frames_sent=%d)", self._name, self._frames_sent
            )
