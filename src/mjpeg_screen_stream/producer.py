"""キャプチャ → エンコード → 配信のプロデューサーループ.

キャプチャデバイスはスリープを挟んだポーリングで読むため、
ネットワーク I/O とは別の専用スレッドで動かす。
Distributor だけが asyncio 側 (StreamWriter) との接点になる。
"""

from __future__ import annotations

import logging
import threading

from mjpeg_screen_stream.broadcast import Distributor
from mjpeg_screen_stream.config import StreamConfig
from mjpeg_screen_stream.encoder import EncodeError, JpegEncoder
from mjpeg_screen_stream.frame_source import CaptureError, FrameSource

logger = logging.getLogger(__name__)


class FrameProducer:
    """FrameSource → JpegEncoder → Distributor.publish を専用スレッドで回す.

    Usage:
        producer = FrameProducer(source, encoder, distributor, config)
        producer.start()
        ...
        producer.stop()

    致命的なキャプチャエラーでループが終わると Distributor を閉じる。
    プロセスは動き続けるが、以降フレームは配信されない。
    """

    def __init__(
        self,
        source: FrameSource,
        encoder: JpegEncoder,
        distributor: Distributor,
        config: StreamConfig | None = None,
    ):
        self._source = source
        self._encoder = encoder
        self._distributor = distributor
        self._config = config or StreamConfig()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._status = "created"
        self._frames_published = 0
        self._encode_errors = 0

    @property
    def status(self) -> str:
        return self._status

    @property
    def frames_published(self) -> int:
        return self._frames_published

    @property
    def encode_errors(self) -> int:
        return self._encode_errors

    def start(self) -> None:
        """プロデューサースレッドを起動する.

        Raises:
            RuntimeError: 既に起動済みの場合
        """
        if self._thread is not None:
            raise RuntimeError(f"Cannot start producer in {self._status} state")

        self._thread = threading.Thread(
            target=self.run, name="frame-producer", daemon=True
        )
        self._status = "running"
        self._thread.start()
        logger.info("Frame producer started")

    def stop(self, timeout: float = 5.0) -> None:
        """プロセス終了時にループを止め、スレッド終了を待つ."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Frame producer did not exit in %.1fs", timeout)

    def run(self) -> None:
        """プロデューサーループ本体 (呼び出したスレッドで実行)."""
        self._status = "running"
        failed = True
        try:
            self._source.open()
            while not self._stop_event.is_set():
                frame = self._source.poll()
                if frame is None:
                    self._stop_event.wait(self._config.poll_interval)
                    continue

                try:
                    encoded = self._encoder.encode(frame.to_rgba())
                except (EncodeError, ValueError) as e:
                    self._encode_errors += 1
                    logger.warning("Dropping frame: %s", e)
                    continue

                if self._distributor.publish(encoded) > 0:
                    self._frames_published += 1
            failed = False

        except CaptureError:
            logger.exception("Capture failed, stopping frame producer")
        finally:
            self._status = "failed" if failed else "stopped"
            self._source.close()
            self._distributor.close()
            if failed:
                logger.error(
                    "Frame producer terminated; no further frames will be delivered"
                )
            else:
                logger.info(
                    "Frame producer stopped (published=%d)", self._frames_published
                )
