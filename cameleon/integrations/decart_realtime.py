"""cameleon.integrations.decart_realtime

Adapter from the `RealtimeSession` protocol to the Decart realtime SDK.

The SDK speaks WebRTC through aiortc. This module bridges our in-process
tracks to aiortc tracks in both directions:

- the local camera VideoTrack is exposed as an aiortc `VideoStreamTrack`;
- the remote edited aiortc track is pumped into a new VideoTrack.

Importing this module fails with ImportError when the `realtime` extra is not
installed; the controller reports that as "remote client unavailable".
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

import av
import numpy as np
from aiortc import MediaStreamTrack, VideoStreamTrack
from aiortc.mediastreams import MediaStreamError
from decart import DecartClient, models
from decart.realtime.client import RealtimeClient
from decart.realtime.types import RealtimeConnectOptions

from cameleon.core.models import ImageFile
from cameleon.media.tracks import MediaStream, VideoTrack

logger = logging.getLogger(__name__)


class LocalVideoBridge(VideoStreamTrack):
    """Serves the latest camera frame to the peer connection."""

    def __init__(self, source: VideoTrack, fallback_size: tuple[int, int] = (1280, 704)):
        super().__init__()
        self._source = source
        self._fallback_size = fallback_size

    async def recv(self) -> av.VideoFrame:
        pts, time_base = await self.next_timestamp()
        frame = self._source.latest_frame()
        if frame is None:
            width, height = self._source.natural_size or self._fallback_size
            frame = np.zeros((height, width, 3), dtype=np.uint8)
        video_frame = av.VideoFrame.from_ndarray(frame, format="bgr24")
        video_frame.pts = pts
        video_frame.time_base = time_base
        return video_frame


class RemoteVideoPump:
    """Pulls frames from a remote aiortc track into a VideoTrack."""

    def __init__(self, remote: MediaStreamTrack):
        self.remote = remote
        self.track = VideoTrack(label="remote:edited")
        self._task: Optional[asyncio.Task] = None
        self.track.add_stop_callback(self.stop)

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self.track.ended:
            try:
                frame = await self.remote.recv()
            except MediaStreamError:
                logger.info("Remote track ended")
                break
            try:
                self.track.push_frame(frame.to_ndarray(format="bgr24"))
            except Exception as e:
                logger.debug("Dropping undecodable remote frame: %s", e)

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class DecartRealtimeSession:
    """`RealtimeSession` implementation around a connected `RealtimeClient`."""

    def __init__(self, client: RealtimeClient, local_bridge: LocalVideoBridge):
        self._client = client
        self._local_bridge = local_bridge
        self._pumps: List[RemoteVideoPump] = []
        self._closed = False

    def attach_pump(self, pump: RemoteVideoPump) -> None:
        self._pumps.append(pump)

    async def apply_reference_image(self, image: ImageFile) -> None:
        await self._client.set_image(image.data)

    async def apply_prompt(self, text: str) -> None:
        await self._client.set_prompt(text)

    def on_error(self, handler: Callable[[Exception], None]) -> None:
        self._client.on("error", handler)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for pump in self._pumps:
            pump.stop()
        try:
            await self._client.disconnect()
        finally:
            self._local_bridge.stop()


class DecartRealtimeProvider:
    """`RealtimeProvider` backed by the Decart SDK."""

    def __init__(self, api_key: str):
        self._client = DecartClient(api_key=api_key)

    async def connect(
        self,
        local_stream: MediaStream,
        *,
        model: str,
        on_remote_stream: Callable[[MediaStream], None],
    ) -> DecartRealtimeSession:
        bridge = LocalVideoBridge(local_stream.video)
        pending: List[RemoteVideoPump] = []
        session: Optional[DecartRealtimeSession] = None

        def _on_remote_track(remote: MediaStreamTrack) -> None:
            pump = RemoteVideoPump(remote)
            pump.start()
            if session is not None:
                session.attach_pump(pump)
            else:
                pending.append(pump)
            on_remote_stream(MediaStream(video=pump.track, label="edited"))

        client = await RealtimeClient.connect(
            base_url=self._client.base_url,
            api_key=self._client.api_key,
            local_track=bridge,
            options=RealtimeConnectOptions(
                model=models.realtime(model),
                on_remote_stream=_on_remote_track,
            ),
        )
        session = DecartRealtimeSession(client, bridge)
        for pump in pending:
            session.attach_pump(pump)
        logger.info("Decart realtime session connected (model=%s)", model)
        return session
