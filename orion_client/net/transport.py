from __future__ import annotations

import asyncio
import errno
import logging
from dataclasses import dataclass
from enum import Enum

import aiohttp

from orion_client.errors import ConnectionFailedError
from orion_client.errors import SendFailedError

# POSIX codes raised by a socket torn down on purpose
BENIGN_SHUTDOWN_ERRNOS: frozenset[int] = frozenset({
    errno.ECONNABORTED,
    errno.EPIPE,
})

# RFC 6455 normal closure
NORMAL_CLOSURE = 1000


def is_benign_shutdown(error: BaseException | None) -> bool:
    """
    Tell whether an error is the expected noise of an intentional close.

    Args:
        error (BaseException | None): Error raised by the socket, possibly
            wrapped by aiohttp.

    Returns:
        bool: ``True`` for connection-abort and broken-pipe errors.
    """
    while error is not None:
        if (
            isinstance(error, OSError)
            and error.errno in BENIGN_SHUTDOWN_ERRNOS
        ):
            return True
        if isinstance(error, (ConnectionAbortedError, BrokenPipeError)):
            return True
        error = error.__cause__
    return False


class TransportEventKind(str, Enum):
    TEXT = 'text'
    CLOSED = 'closed'
    ERROR = 'error'


@dataclass(frozen=True)
class TransportEvent:
    """
    One outcome of a blocking receive.

    Attributes:
        kind (TransportEventKind): What happened.
        data (str | bytes | None): Payload for ``TEXT`` events.
        close_code (int | None): WebSocket close code for ``CLOSED`` events.
        error (BaseException | None): Cause for ``ERROR`` events.
    """

    kind: TransportEventKind
    data: str | bytes | None = None
    close_code: int | None = None
    error: BaseException | None = None

    @property
    def is_normal_closure(self) -> bool:
        return (
            self.kind is TransportEventKind.CLOSED
            and self.close_code == NORMAL_CLOSURE
        )


class WebSocketTransport:
    """
    A single persistent WebSocket connection backed by aiohttp.
    """

    def __init__(
        self,
        *,
        connect_timeout: float = 5.0,
        heartbeat: float = 30.0,
        send_timeout: float = 10.0,
    ) -> None:
        """
        Initialise the transport with the given parameters.

        Args:
            connect_timeout (float, optional): Timeout for the WebSocket
                handshake. Defaults to 5.0.
            heartbeat (float, optional): Ping interval used by aiohttp to
                detect dead peers. Defaults to 30.0.
            send_timeout (float, optional): Timeout for a single write.
                Defaults to 10.0.
        """
        self.connect_timeout: float = connect_timeout
        self.heartbeat: float = heartbeat
        self.send_timeout: float = send_timeout

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._log: logging.Logger = logging.getLogger(__name__)

    @property
    def closed(self) -> bool:
        return self._ws is None or self._ws.closed

    async def open(self, url: str) -> None:
        """
        Open the session and perform the WebSocket handshake.

        Args:
            url (str): Absolute ``ws://`` endpoint.

        Raises:
            ConnectionFailedError: If the handshake fails or times out.
        """
        await self.close()
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(
                total=None,
                connect=self.connect_timeout,
            ),
        )
        self._log.info('[WS] Connecting to %s...', url)
        try:
            self._ws = await asyncio.wait_for(
                self._session.ws_connect(
                    url,
                    heartbeat=self.heartbeat,
                    compress=0,
                ),
                timeout=self.connect_timeout,
            )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            await self.close()
            raise ConnectionFailedError(
                f"Could not connect to {url}: {e!r}",
            ) from e
        self._log.info('[WS] Socket open: %s', url)

    async def send_text(self, text: str) -> None:
        """
        Write one text frame.

        Args:
            text (str): The complete JSON document to send.

        Raises:
            SendFailedError: If the socket is closed, the write fails, or
                it does not finish within ``send_timeout``.
        """
        ws = self._ws
        if ws is None or ws.closed:
            raise SendFailedError('WebSocket is not open')
        try:
            await asyncio.wait_for(
                ws.send_str(text), timeout=self.send_timeout,
            )
        except (
            asyncio.TimeoutError,
            aiohttp.ClientConnectionError,
            ConnectionResetError,
            RuntimeError,
        ) as e:
            # RuntimeError: Cannot write to closing transport
            self._log.debug('[WS] send failed: %s', e)
            raise SendFailedError(f"WebSocket write failed: {e!r}") from e

    async def receive(self) -> TransportEvent:
        """
        Block until the next message, closure, or error.

        Returns:
            TransportEvent: The classified outcome.
        """
        ws = self._ws
        if ws is None:
            return TransportEvent(TransportEventKind.CLOSED)
        try:
            msg = await ws.receive()
        except (aiohttp.ClientError, OSError) as e:
            return TransportEvent(TransportEventKind.ERROR, error=e)

        if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
            return TransportEvent(TransportEventKind.TEXT, data=msg.data)

        if msg.type in (
            aiohttp.WSMsgType.CLOSE,
            aiohttp.WSMsgType.CLOSING,
            aiohttp.WSMsgType.CLOSED,
        ):
            code = ws.close_code
            if code is None and isinstance(msg.data, int):
                code = msg.data
            return TransportEvent(TransportEventKind.CLOSED, close_code=code)

        if msg.type == aiohttp.WSMsgType.ERROR:
            error = ws.exception() or msg.data
            if not isinstance(error, BaseException):
                error = ConnectionFailedError(str(error))
            return TransportEvent(TransportEventKind.ERROR, error=error)

        # PING/PONG are answered by aiohttp; anything else is unexpected
        return TransportEvent(
            TransportEventKind.ERROR,
            error=ConnectionFailedError(f"Unexpected frame type {msg.type!r}"),
        )

    async def close(self) -> None:
        """
        Close the WebSocket and session if open.
        """
        try:
            if self._ws is not None and not self._ws.closed:
                await self._ws.close()
        except (aiohttp.ClientError, OSError) as e:
            if is_benign_shutdown(e):
                self._log.debug('[WS] benign error on close: %s', e)
            else:
                self._log.warning('[WS] error while closing socket: %s', e)
        finally:
            self._ws = None
        try:
            if self._session is not None and not self._session.closed:
                await self._session.close()
        finally:
            self._session = None
