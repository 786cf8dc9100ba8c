"""FastAPI application for the MJPEG screen stream server.

プライマリディスプレイをキャプチャし、GET /stream で MJPEG として配信する。
キャプチャは専用スレッド (FrameProducer)、配信は接続ごとの asyncio タスク。
両者は app.state.distributor だけを共有する。
"""

import asyncio
import itertools
import logging
import os
from collections.abc import Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, StreamingResponse
from starlette.background import BackgroundTask
from pydantic import BaseModel

from mjpeg_screen_stream.broadcast import Distributor
from mjpeg_screen_stream.config import StreamConfig
from mjpeg_screen_stream.encoder import JpegEncoder
from mjpeg_screen_stream.frame_source import CaptureDevice, FrameSource, MssCaptureDevice
from mjpeg_screen_stream.producer import FrameProducer
from mjpeg_screen_stream.stream_writer import MEDIA_TYPE, StreamWriter

logger = logging.getLogger(__name__)

INDEX_HTML = """\
<html>
  <head>
    <title>Screen Stream</title>
    <style>
      html, body { margin: 0; height: 100%; }
      .image-container { width: 100%; height: 100vh; overflow: hidden; }
      .responsive-image { width: 100%; height: 100%; object-fit: contain; }
    </style>
  </head>
  <body>
    <div class="image-container">
      <img src="/stream" class="responsive-image">
    </div>
  </body>
</html>
"""


class HealthResponse(BaseModel):
    """ヘルスチェック応答."""

    status: str
    producer: str
    subscribers: int
    published: int
    dropped: int
    capacity: int
    closed: bool


def create_app(
    config: StreamConfig | None = None,
    device_factory: Callable[[StreamConfig], CaptureDevice] | None = None,
) -> FastAPI:
    """アプリケーションを生成する.

    Args:
        config: ストリーム設定（省略時は環境変数から読み込む）
        device_factory: キャプチャデバイス生成関数（省略時は mss）
    """
    viewer_ids = itertools.count(1)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """アプリケーションのライフサイクル管理."""
        cfg = config or StreamConfig.from_env()
        factory = device_factory or (lambda c: MssCaptureDevice(c.framerate))

        distributor = Distributor(capacity=cfg.capacity)
        producer = FrameProducer(
            FrameSource(factory(cfg)),
            JpegEncoder(quality=cfg.jpeg_quality),
            distributor,
            cfg,
        )
        app.state.distributor = distributor
        app.state.producer = producer

        logger.info(
            "mjpeg-screen-stream server starting (capacity=%d, quality=%d)",
            cfg.capacity,
            cfg.jpeg_quality,
        )
        producer.start()
        yield
        logger.info("mjpeg-screen-stream server shutting down")
        await asyncio.to_thread(producer.stop)

    app = FastAPI(
        title="mjpeg-screen-stream",
        description="Primary display streaming via mss + Pillow JPEG + MJPEG over HTTP",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ============================================================
    # ランディングページ
    # ============================================================

    @app.get("/", response_class=HTMLResponse)
    async def index() -> str:
        return INDEX_HTML

    # ============================================================
    # ヘルスチェック
    # ============================================================

    @app.get("/api/healthz", response_model=HealthResponse)
    async def healthz(request: Request) -> HealthResponse:
        """ヘルスチェック. プロデューサー停止後は degraded."""
        producer: FrameProducer = request.app.state.producer
        stats = request.app.state.distributor.stats()
        return HealthResponse(
            status="healthy" if producer.status == "running" else "degraded",
            producer=producer.status,
            **stats,
        )

    # ============================================================
    # MJPEG ストリーミング
    # ============================================================

    @app.get("/stream")
    async def stream(request: Request) -> StreamingResponse:
        """JPEG フレームを multipart/x-mixed-replace で配信.

        クライアント切断時はこの接続の購読だけが解放される。
        """
        distributor: Distributor = request.app.state.distributor
        name = f"viewer-{next(viewer_ids)}"
        writer = StreamWriter(distributor, name=name)
        logger.info("%s connected from %s", name, request.client)
        return StreamingResponse(
            writer.records(),
            media_type=MEDIA_TYPE,
            headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
            background=BackgroundTask(writer.close),
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "3030")),
    )
