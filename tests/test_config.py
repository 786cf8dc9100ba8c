"""StreamConfig のテスト."""

from dataclasses import fields

import pytest

from mjpeg_screen_stream.config import StreamConfig


def test_stream_config_defaults():
    """デフォルト設定が正しいことを確認."""
    config = StreamConfig()
    assert config.framerate == 60
    assert config.poll_interval == 0.016
    assert config.jpeg_quality == 75
    assert config.capacity == 16


def test_stream_config_custom():
    """カスタム設定が反映されることを確認."""
    config = StreamConfig(framerate=30, poll_interval=0.033, jpeg_quality=90, capacity=4)
    assert config.framerate == 30
    assert config.poll_interval == 0.033
    assert config.jpeg_quality == 90
    assert config.capacity == 4
    config.validate()


@pytest.mark.parametrize(
    "kwargs",
    [
        {"framerate": 0},
        {"poll_interval": 0},
        {"jpeg_quality": 0},
        {"jpeg_quality": 96},
        {"capacity": 0},
    ],
)
def test_validate_rejects_out_of_range(kwargs):
    with pytest.raises(ValueError):
        StreamConfig(**kwargs).validate()


def test_from_env_defaults():
    """環境変数が空ならデフォルト値."""
    assert StreamConfig.from_env({}) == StreamConfig()


def test_from_env_overrides():
    config = StreamConfig.from_env(
        {
            "MJPEG_FRAMERATE": "30",
            "MJPEG_POLL_INTERVAL": "0.05",
            "MJPEG_JPEG_QUALITY": "50",
            "MJPEG_CAPACITY": "4",
        }
    )
    assert config == StreamConfig(
        framerate=30, poll_interval=0.05, jpeg_quality=50, capacity=4
    )


def test_from_env_invalid():
    with pytest.raises(ValueError):
        StreamConfig.from_env({"MJPEG_CAPACITY": "0"})


def test_no_monitor_setting():
    """モニター選択は設定できない (常にプライマリモニター)."""
    assert "monitor" not in {f.name for f in fields(StreamConfig)}
    assert StreamConfig.from_env({"MJPEG_MONITOR": "2"}) == StreamConfig()
