"""RawFrame → JPEG エンコーダ (Pillow)."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image

from mjpeg_screen_stream.frame_source import RawFrame

logger = logging.getLogger(__name__)


class EncodeError(RuntimeError):
    """1 フレームのエンコード失敗 (パイプラインは継続する)."""


@dataclass(frozen=True, slots=True)
class EncodedFrame:
    """JPEG 圧縮済みの 1 フレーム. 生成後は不変で、全 subscriber が読み取り専用で共有する."""

    data: bytes
    width: int = 0
    height: int = 0

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"EncodedFrame({self.width}x{self.height}, bytes={len(self.data)})"


class JpegEncoder:
    """RGBA の RawFrame を JPEG に圧縮する.

    品質はエンコーダ生成時に固定 (配信中は変更しない)。
    JPEG はアルファを持たないため RGB に変換してから保存する。
    """

    def __init__(self, quality: int = 75):
        if not 1 <= quality <= 95:
            raise ValueError(f"quality must be in 1..95, got {quality}")
        self._quality = quality

    @property
    def quality(self) -> int:
        return self._quality

    def encode(self, frame: RawFrame) -> EncodedFrame:
        """フレームを JPEG にエンコードする.

        Raises:
            EncodeError: レイアウト不正、バッファ不足、Pillow のエラー
        """
        if frame.layout != "RGBA":
            raise EncodeError(f"Expected RGBA frame, got {frame.layout}")
        if frame.width <= 0 or frame.height <= 0:
            raise EncodeError(f"Invalid frame size {frame.width}x{frame.height}")
        if len(frame.data) != frame.expected_size:
            raise EncodeError(
                f"Buffer size mismatch: {len(frame.data)} != {frame.expected_size}"
            )

        try:
            img = Image.frombuffer(
                "RGBA", (frame.width, frame.height), frame.data, "raw", "RGBA", 0, 1
            )
            buf = io.BytesIO()
            img.convert("RGB").save(buf, format="JPEG", quality=self._quality)
        except (OSError, ValueError) as e:
            raise EncodeError(f"JPEG encode error: {e}") from e

        return EncodedFrame(buf.getvalue(), frame.width, frame.height)
