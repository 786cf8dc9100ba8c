"""mjpeg-screen-stream: Primary display streaming via mss + Pillow JPEG + MJPEG over HTTP."""

from mjpeg_screen_stream.broadcast import CLOSED, Closed, Distributor, Lagged, Subscription
from mjpeg_screen_stream.config import StreamConfig
from mjpeg_screen_stream.encoder import EncodedFrame, EncodeError, JpegEncoder
from mjpeg_screen_stream.frame_source import (
    CaptureError,
    FrameSource,
    MssCaptureDevice,
    RawFrame,
)
from mjpeg_screen_stream.producer import FrameProducer
from mjpeg_screen_stream.stream_writer import StreamWriter, frame_record

__all__ = [
    "CLOSED",
    "CaptureError",
    "Closed",
    "Distributor",
    "EncodeError",
    "EncodedFrame",
    "FrameProducer",
    "FrameSource",
    "JpegEncoder",
    "Lagged",
    "MssCaptureDevice",
    "RawFrame",
    "StreamConfig",
    "StreamWriter",
    "Subscription",
    "frame_record",
]
