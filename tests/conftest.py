"""テスト共通フィクスチャ.

mss の代わりにスクリプト化したキャプチャデバイスを使う (ディスプレイ不要)。
"""

import pytest

from mjpeg_screen_stream.frame_source import CaptureError


class ScriptedDevice:
    """grab() がスクリプトの要素を順に返すキャプチャデバイス.

    要素が bytes ならフレーム、None なら NotReady、例外インスタンスなら送出。
    スクリプトを使い切った後は exhausted="fail" なら CaptureError、
    "idle" なら None を返し続ける。
    """

    layout = "BGRA"

    def __init__(self, script=(), width=4, height=2, exhausted="fail"):
        self.script = list(script)
        self.width = width
        self.height = height
        self.exhausted = exhausted
        self.opened = False
        self.closed = False

    def open(self):
        self.opened = True

    def grab(self):
        if not self.script:
            if self.exhausted == "idle":
                return None
            raise CaptureError("device gone")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


@pytest.fixture
def make_device():
    """ScriptedDevice を生成するファクトリ."""
    return ScriptedDevice


@pytest.fixture
def blue_bgra():
    """4x2 の青一色 BGRA バッファ."""
    return b"\xff\x00\x00\xff" * 8
