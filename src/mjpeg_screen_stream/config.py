"""ストリーミング設定."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass
class StreamConfig:
    """画面キャプチャ + MJPEG 配信設定.

    Attributes:
        framerate: キャプチャデバイスのフレームレート (fps)
        poll_interval: フレーム未到着時のスリープ間隔 (秒, 60Hz ≒ 0.016)
        jpeg_quality: JPEG 品質 (1-95, 配信中は変更不可)
        capacity: Distributor のリングバッファ長 (subscriber ごとの遅延許容フレーム数)
    """

    framerate: int = 60
    poll_interval: float = 0.016
    jpeg_quality: int = 75
    capacity: int = 16

    def validate(self) -> None:
        """設定値を検証する.

        Raises:
            ValueError: 範囲外の値がある場合
        """
        if self.framerate <= 0:
            raise ValueError(f"framerate must be > 0, got {self.framerate}")
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {self.poll_interval}")
        if not 1 <= self.jpeg_quality <= 95:
            raise ValueError(f"jpeg_quality must be in 1..95, got {self.jpeg_quality}")
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> StreamConfig:
        """環境変数から設定を構築する (未設定はデフォルト値)."""
        env = os.environ if environ is None else environ
        defaults = cls()
        config = cls(
            framerate=int(env.get("MJPEG_FRAMERATE", defaults.framerate)),
            poll_interval=float(env.get("MJPEG_POLL_INTERVAL", defaults.poll_interval)),
            jpeg_quality=int(env.get("MJPEG_JPEG_QUALITY", defaults.jpeg_quality)),
            capacity=int(env.get("MJPEG_CAPACITY", defaults.capacity)),
        )
        config.validate()
        return config
