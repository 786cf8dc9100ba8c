"""画面キャプチャソース.

キャプチャデバイスをポーリングし、生ピクセルバッファ (RawFrame) を返す。
デバイスは「まだ新しいフレームがない」を None で通知する (ノンブロッキング)。
致命的なデバイスエラーは CaptureError として送出する。
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol

import mss
from mss.exception import ScreenShotError

logger = logging.getLogger(__name__)

BYTES_PER_PIXEL = 4


class CaptureError(RuntimeError):
    """キャプチャデバイスの致命的エラー (NotReady 以外)."""


def swap_channels(
    buf: bytes, a: int, b: int, bytes_per_pixel: int = BYTES_PER_PIXEL
) -> bytes:
    """全ピクセルのチャネル a と b を入れ替えた新しいバッファを返す.

    バイト単位の置換のみ (リサンプリングなし)。同じ組で 2 回適用すると元に戻る。

    Raises:
        ValueError: バッファ長が bytes_per_pixel の倍数でない、またはチャネル番号が範囲外
    """
    if len(buf) % bytes_per_pixel:
        raise ValueError(
            f"buffer length {len(buf)} is not a multiple of {bytes_per_pixel}"
        )
    if not (0 <= a < bytes_per_pixel and 0 <= b < bytes_per_pixel):
        raise ValueError(f"channel index out of range: {a}, {b}")
    out = bytearray(buf)
    out[a::bytes_per_pixel] = buf[b::bytes_per_pixel]
    out[b::bytes_per_pixel] = buf[a::bytes_per_pixel]
    return bytes(out)


def bgra_to_rgba(buf: bytes) -> bytes:
    """BGRA → RGBA (B と R を入れ替え)."""
    return swap_channels(buf, 0, 2)


@dataclass(frozen=True, slots=True)
class RawFrame:
    """キャプチャされた生フレーム.

    プロデューサーループ 1 回分の間だけ存在し、共有されない。
    """

    data: bytes
    width: int
    height: int
    layout: str = "BGRA"

    @property
    def expected_size(self) -> int:
        return self.width * self.height * BYTES_PER_PIXEL

    def to_rgba(self) -> RawFrame:
        """RGBA レイアウトに並べ替えたフレームを返す."""
        if self.layout == "RGBA":
            return self
        if self.layout != "BGRA":
            raise ValueError(f"Unsupported pixel layout: {self.layout}")
        return RawFrame(bgra_to_rgba(self.data), self.width, self.height, "RGBA")

    def __repr__(self) -> str:
        return (
            f"RawFrame({self.width}x{self.height}, layout={self.layout}, "
            f"bytes={len(self.data)})"
        )


class CaptureDevice(Protocol):
    """キャプチャデバイスのインターフェース."""

    width: int
    height: int
    layout: str

    def open(self) -> None: ...

    def grab(self) -> bytes | None: ...

    def close(self) -> None: ...


class MssCaptureDevice:
    """mss によるプライマリモニターのキャプチャ.

    mss はいつでも同期的にキャプチャできるため、フレーム間隔 (1 / framerate)
    が経過するまでは None (NotReady) を返してデバイスのリフレッシュ周期を再現する。

    mss のハンドルはスレッドに紐付くため、open() はキャプチャスレッドで呼ぶこと。
    """

    layout = "BGRA"

    def __init__(self, framerate: int = 60):
        self._min_interval = 1.0 / framerate
        self._sct = None
        self._monitor: dict | None = None
        self._next_due = 0.0
        self.width = 0
        self.height = 0

    def open(self) -> None:
        try:
            self._sct = mss.mss()
            self._monitor = self._sct.monitors[1]
        except (ScreenShotError, IndexError, OSError) as e:
            self.close()
            raise CaptureError(f"Failed to open primary display: {e}") from e

        self.width = self._monitor["width"]
        self.height = self._monitor["height"]
        self._next_due = 0.0
        logger.info("Capturing primary display (%dx%d)", self.width, self.height)

    def grab(self) -> bytes | None:
        if self._sct is None:
            raise CaptureError("Capture device is not open")

        now = time.monotonic()
        if now < self._next_due:
            return None
        self._next_due = now + self._min_interval

        try:
            shot = self._sct.grab(self._monitor)
        except (ScreenShotError, OSError) as e:
            raise CaptureError(f"Error capturing frame: {e}") from e

        # 解像度変更はサイズ不一致として FrameSource 側で破棄される
        return shot.bgra

    def close(self) -> None:
        if self._sct is not None:
            self._sct.close()
            self._sct = None


class FrameSource:
    """キャプチャデバイスをラップし、検証済みの RawFrame を返す.

    Usage:
        source = FrameSource(MssCaptureDevice())
        source.open()
        while True:
            frame = source.poll()
            if frame is None:
                time.sleep(0.016)
                continue
            ...
    """

    def __init__(self, device: CaptureDevice):
        self._device = device
        self._dropped_frames = 0

    @property
    def width(self) -> int:
        return self._device.width

    @property
    def height(self) -> int:
        return self._device.height

    @property
    def dropped_frames(self) -> int:
        """サイズ不一致で破棄したフレーム数."""
        return self._dropped_frames

    def open(self) -> None:
        """デバイスを開く.

        Raises:
            CaptureError: デバイスを開けない場合
        """
        self._device.open()

    def poll(self) -> RawFrame | None:
        """フレームを 1 枚取得する.

        Returns:
            RawFrame、または新しいフレームがない場合は None

        Raises:
            CaptureError: NotReady 以外のデバイスエラー
        """
        data = self._device.grab()
        if data is None:
            return None

        frame = RawFrame(
            bytes(data), self._device.width, self._device.height, self._device.layout
        )
        if len(frame.data) != frame.expected_size:
            # 一時的なデバイスの不具合: フレームだけ破棄して続行
            self._dropped_frames += 1
            logger.warning(
                "Unexpected frame size: got %d bytes, expected %d (%dx%d)",
                len(frame.data),
                frame.expected_size,
                frame.width,
                frame.height,
            )
            return None
        return frame

    def close(self) -> None:
        self._device.close()
