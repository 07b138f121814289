"""cameleon.services.remote_stream

Remote edited-stream session: idle -> connecting -> streaming, error from
connecting/streaming, idle from anywhere via disconnect().

The controller talks to the editing service only through the
`RealtimeProvider` / `RealtimeSession` protocols; the Decart adapter lives in
`cameleon.integrations.decart_realtime` and is loaded lazily.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Protocol, Set

from cameleon.config import Settings, get_settings
from cameleon.core.errors import (
    ConfigurationError,
    ConnectError,
    RemoteClientUnavailableError,
    TryOnError,
)
from cameleon.core.models import ImageFile, RemoteState
from cameleon.media.tracks import MediaStream

log = logging.getLogger(__name__)


class RealtimeSession(Protocol):
    async def apply_reference_image(self, image: ImageFile) -> None: ...

    async def apply_prompt(self, text: str) -> None: ...

    async def close(self) -> None: ...

    def on_error(self, handler: Callable[[Exception], None]) -> None: ...


class RealtimeProvider(Protocol):
    async def connect(
        self,
        local_stream: MediaStream,
        *,
        model: str,
        on_remote_stream: Callable[[MediaStream], None],
    ) -> RealtimeSession: ...


ProviderFactory = Callable[[str], RealtimeProvider]
ErrorListener = Callable[[str], Awaitable[None]]


def load_default_provider(api_key: str) -> RealtimeProvider:
    try:
        from cameleon.integrations.decart_realtime import DecartRealtimeProvider
    except ImportError as e:
        raise RemoteClientUnavailableError(
            "Decart SDK not found. Run: pip install 'cameleon-tryon[realtime]'"
        ) from e
    return DecartRealtimeProvider(api_key=api_key)


class RemoteStreamController:
    """Owns the remote session handle and the edited output stream."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        provider_factory: Optional[ProviderFactory] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._settings = settings or get_settings()
        self._provider_factory = provider_factory or load_default_provider
        self._sleep = sleep

        self.state = RemoteState.IDLE
        self.model: Optional[str] = None
        self.last_error: Optional[str] = None

        self._session: Optional[RealtimeSession] = None
        self._output_stream: Optional[MediaStream] = None
        self._remote_ready: Optional[asyncio.Event] = None
        # Bumped on every connect/disconnect; late callbacks from older sessions are ignored.
        self._epoch = 0
        self._lock = asyncio.Lock()
        self._error_listeners: List[ErrorListener] = []
        self._error_tasks: Set[asyncio.Task] = set()

    @property
    def output_stream(self) -> Optional[MediaStream]:
        return self._output_stream

    @property
    def is_streaming(self) -> bool:
        return self.state is RemoteState.STREAMING

    def add_error_listener(self, listener: ErrorListener) -> None:
        self._error_listeners.append(listener)

    def _model_for(self, garment_file: Optional[ImageFile]) -> str:
        if garment_file is not None:
            return self._settings.REALTIME_MODEL_IMAGE
        return self._settings.REALTIME_MODEL_TEXT

    async def connect(
        self,
        local_stream: Optional[MediaStream],
        prompt: str,
        garment_file: Optional[ImageFile] = None,
    ) -> MediaStream:
        """Establish a session and return the edited output stream."""
        prompt = (prompt or "").strip()
        if not prompt:
            raise ConnectError("Please enter a prompt")
        if local_stream is None:
            raise ConnectError("Camera not available. Please allow camera access.")
        if not self._settings.realtime_configured:
            raise ConfigurationError("Please set DECART_API_KEY in your .env file")

        async with self._lock:
            if self._session is not None or self._output_stream is not None:
                log.info("Disconnecting previous session before reconnecting")
                self._epoch += 1
                await self._teardown()
                await self._sleep(self._settings.RECONNECT_GRACE_SEC)

            self._epoch += 1
            epoch = self._epoch
            self.state = RemoteState.CONNECTING
            self.last_error = None
            self.model = self._model_for(garment_file)

            remote_ready = asyncio.Event()
            self._remote_ready = remote_ready
            delivered: List[MediaStream] = []

            def on_remote_stream(stream: MediaStream) -> None:
                if epoch != self._epoch:
                    stream.stop()
                    return
                delivered.append(stream)
                remote_ready.set()

            log.info("Connecting to realtime service (model=%s)", self.model)
            try:
                provider = self._provider_factory(self._settings.DECART_API_KEY)
                session = await provider.connect(
                    local_stream,
                    model=self.model,
                    on_remote_stream=on_remote_stream,
                )
            except TryOnError as e:
                self._fail(epoch, str(e))
                raise
            except asyncio.CancelledError:
                self._fail(epoch, None)
                raise
            except Exception as e:
                message = f"Failed to start: {e}"
                self._fail(epoch, message)
                raise ConnectError(message) from e

            self._session = session
            session.on_error(lambda error: self._on_session_error(epoch, error))

            try:
                await self._await_output(epoch, remote_ready, delivered)
                if garment_file is not None:
                    try:
                        await session.apply_reference_image(garment_file)
                    except Exception as e:
                        log.error("Image set error: %s", e)
                await session.apply_prompt(prompt)
                if epoch != self._epoch:
                    # Session error or disconnect() while the parameters were being applied.
                    raise ConnectError(self.last_error or "Connection cancelled")
            except asyncio.CancelledError:
                await self._teardown()
                self._fail(epoch, None)
                raise
            except TryOnError as e:
                await self._teardown()
                self._fail(epoch, str(e))
                raise
            except Exception as e:
                await self._teardown()
                message = f"Failed to start: {e}"
                self._fail(epoch, message)
                raise ConnectError(message) from e
            finally:
                self._remote_ready = None

            self.state = RemoteState.STREAMING
            log.info("Streaming (model=%s, output=%s)", self.model, self._output_stream.id)
            return self._output_stream

    async def _await_output(
        self,
        epoch: int,
        remote_ready: asyncio.Event,
        delivered: List[MediaStream],
    ) -> None:
        timeout = self._settings.REMOTE_STREAM_TIMEOUT_SEC
        try:
            await asyncio.wait_for(remote_ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            raise ConnectError(f"Failed to start: no edited stream received within {timeout:g}s")
        if epoch != self._epoch or not delivered:
            raise ConnectError(self.last_error or "Connection cancelled")
        self._output_stream = delivered[-1]

    def _fail(self, epoch: int, message: Optional[str]) -> None:
        if epoch != self._epoch:
            # Superseded by disconnect(); that call already settled the state.
            return
        if message is None:
            self.state = RemoteState.IDLE
            return
        log.error("Failed to start stream: %s", message)
        self.last_error = message
        self.state = RemoteState.ERROR

    async def update_prompt(self, text: str) -> bool:
        """Forward a prompt to a streaming session; dropped otherwise."""
        text = (text or "").strip()
        session = self._session
        if self.state is not RemoteState.STREAMING or session is None or not text:
            log.debug("Prompt update dropped (state=%s)", self.state.value)
            return False
        try:
            await session.apply_prompt(text)
        except Exception as e:
            log.error("Prompt update failed: %s", e)
            return False
        return True

    async def update_garment(self, garment_file: Optional[ImageFile]) -> bool:
        """Forward a reference image to a streaming session; dropped otherwise."""
        session = self._session
        if self.state is not RemoteState.STREAMING or session is None or garment_file is None:
            log.debug("Garment update dropped (state=%s)", self.state.value)
            return False
        try:
            await session.apply_reference_image(garment_file)
        except Exception as e:
            log.error("Image set error: %s", e)
            return False
        return True

    async def disconnect(self) -> None:
        """Tear down unconditionally. Safe in every state."""
        self._epoch += 1
        if self._remote_ready is not None:
            # Wake a connect() waiting for the output stream; it will see the new epoch.
            self._remote_ready.set()
        await self._teardown()
        self.state = RemoteState.IDLE

    async def _teardown(self) -> None:
        session, self._session = self._session, None
        output, self._output_stream = self._output_stream, None
        if session is not None:
            try:
                await session.close()
                log.info("Remote session closed")
            except Exception as e:
                log.warning("Ignoring disconnect error: %s", e)
        if output is not None:
            output.stop()

    def _on_session_error(self, epoch: int, error: Exception) -> None:
        task = asyncio.get_running_loop().create_task(self._handle_session_error(epoch, error))
        self._error_tasks.add(task)
        task.add_done_callback(self._error_tasks.discard)

    async def _handle_session_error(self, epoch: int, error: Exception) -> None:
        if epoch != self._epoch:
            log.debug("Ignoring error from superseded session: %s", error)
            return

        message = f"Stream error: {getattr(error, 'message', None) or error}"
        log.error(message)
        self.last_error = message

        if self._remote_ready is not None:
            # connect() has not finished yet: fail it now instead of letting it time out.
            self._epoch += 1
            epoch = self._epoch
            self._remote_ready.set()
            self.state = RemoteState.ERROR

        for listener in list(self._error_listeners):
            try:
                await listener(message)
            except Exception:
                log.exception("Stream error listener failed")

        if epoch == self._epoch:
            self._epoch += 1
            await self._teardown()
        if self._session is None and self._remote_ready is None:
            self.state = RemoteState.ERROR

    def get_status(self) -> dict:
        output = self._output_stream
        return {
            "state": self.state.value,
            "model": self.model,
            "output_size": output.video.natural_size if output else None,
            "error": self.last_error,
        }
