from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress
from typing import Protocol

from orion_client.config import ClientSettings
from orion_client.errors import ConnectionFailedError
from orion_client.errors import ConnectionNotReadyError
from orion_client.errors import InvalidURLError
from orion_client.errors import SendFailedError
from orion_client.errors import SessionError
from orion_client.events import EventHub
from orion_client.net.transport import is_benign_shutdown
from orion_client.net.transport import TransportEvent
from orion_client.net.transport import TransportEventKind
from orion_client.net.transport import WebSocketTransport
from orion_client.protocol.models import ConnectionStatus

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def open(self, url: str) -> None: ...

    async def send_text(self, text: str) -> None: ...

    async def receive(self) -> TransportEvent: ...

    async def close(self) -> None: ...


MessageHandler = Callable[[str | bytes], None]
ConnectedHook = Callable[[int], None]


class ConnectionStateMachine:
    """
    Owns the socket lifecycle: ``disconnected -> connecting -> connected``.

    Every connect attempt gets a new generation number. Work started for an
    older generation (a read loop that is still unwinding, a write that
    completes late) checks :meth:`is_current` and quietly gives up, so a
    superseded connection can never change the status or report errors.

    Status changes are published on the hub's ``status`` channel; failures
    on its ``errors`` channel.
    """

    def __init__(
        self,
        settings: ClientSettings,
        hub: EventHub,
        transport_factory: Callable[[], Transport] | None = None,
    ) -> None:
        """
        Initialise the state machine in the ``disconnected`` state.

        Args:
            settings (ClientSettings): Shared client configuration.
            hub (EventHub): Hub that serialises published events.
            transport_factory (Callable[[], Transport] | None): Builds one
                transport per connect attempt. Defaults to an aiohttp
                :class:`WebSocketTransport`.
        """
        self.settings = settings
        self.status: ConnectionStatus = ConnectionStatus.DISCONNECTED

        self._status_channel = hub.channel('status')
        self._errors = hub.channel('errors')
        self._transport_factory = transport_factory or self._default_transport
        self._handler: MessageHandler | None = None
        self._on_connected: ConnectedHook | None = None

        self._generation = 0
        self._transport: Transport | None = None
        self._task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._reconnect_attempts = 0

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def reconnect_pending(self) -> bool:
        task = self._reconnect_task
        return task is not None and not task.done()

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def set_message_handler(self, handler: MessageHandler) -> None:
        """
        Register the callable that receives every inbound text payload.

        The handler runs inline in the read loop, so payloads are handled
        strictly in the order the transport delivered them.

        Args:
            handler (MessageHandler): Typically ``InboundRouter.handle``.
        """
        self._handler = handler

    def set_connected_hook(self, hook: ConnectedHook | None) -> None:
        """
        Register a callable run inline on every ``connecting -> connected``
        transition, before any other caller can observe ``connected``.

        Args:
            hook (ConnectedHook | None): Receives the generation that just
                became live.
        """
        self._on_connected = hook

    def connect(self) -> bool:
        """
        Start a connect attempt if currently ``disconnected``.

        Returns:
            bool: ``True`` if an attempt was started, ``False`` if the call
                was a no-op or the configured endpoint is invalid.
        """
        if self.status is not ConnectionStatus.DISCONNECTED:
            logger.debug('connect() ignored while %s', self.status.value)
            return False

        try:
            url = self.settings.ws_url()
        except InvalidURLError as e:
            logger.error('Cannot connect: %s', e)
            self._errors.publish(e)
            return False

        self._generation += 1
        self._set_status(ConnectionStatus.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation, url),
        )
        return True

    def disconnect(self) -> bool:
        """
        Tear the connection down and cancel any scheduled reconnect.

        Returns:
            bool: ``True`` if the status changed, ``False`` if already
                ``disconnected``.
        """
        self._cancel_reconnect()
        self._reconnect_attempts = 0
        if self.status is ConnectionStatus.DISCONNECTED:
            return False

        logger.info('Disconnecting from server')
        self._generation += 1
        self._set_status(ConnectionStatus.DISCONNECTED)
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        return True

    def mark_alive(self) -> None:
        """
        Promote ``connecting`` to ``connected`` after proof of liveness.

        Called for every well-formed inbound message, so it is idempotent
        once connected.
        """
        if self.status is not ConnectionStatus.CONNECTING:
            return
        self._reconnect_attempts = 0
        self._set_status(ConnectionStatus.CONNECTED)
        if self._on_connected is not None:
            try:
                self._on_connected(self._generation)
            except Exception:
                logger.exception('Connected hook failed')

    def report_send_failure(
        self, generation: int, error: SessionError,
    ) -> None:
        """
        Tear down the connection after a failed write.

        Failures of a superseded generation are ignored.

        Args:
            generation (int): Generation the write was issued on.
            error (SessionError): The write error.
        """
        if not self.is_current(generation):
            logger.debug('Ignoring late send failure: %s', error)
            return
        if not isinstance(error, SendFailedError):
            error = SendFailedError(str(error))
        task, self._task = self._task, None
        self._handle_failure(generation, error)
        if task is not None and not task.done():
            task.cancel()

    async def send_text(self, text: str, generation: int) -> None:
        """
        Write a payload on the connection of the given generation.

        Args:
            text (str): Encoded message.
            generation (int): Generation captured when the send was
                accepted.

        Raises:
            ConnectionNotReadyError: If that connection has been superseded.
            SendFailedError: If the transport write fails.
        """
        transport = self._transport
        if transport is None or not self.is_current(generation):
            raise ConnectionNotReadyError('Connection was superseded')
        await transport.send_text(text)

    async def close(self) -> None:
        """Disconnect and wait for the read loop to unwind."""
        task = self._task
        self.disconnect()
        if task is not None:
            with suppress(asyncio.CancelledError):
                await task

    def _default_transport(self) -> Transport:
        return WebSocketTransport(
            connect_timeout=self.settings.connect_timeout,
            heartbeat=self.settings.ws_heartbeat,
            send_timeout=self.settings.send_timeout,
        )

    async def _run(self, generation: int, url: str) -> None:
        transport = self._transport_factory()
        self._transport = transport
        try:
            try:
                await transport.open(url)
            except ConnectionFailedError as e:
                self._handle_failure(generation, e)
                return

            while self.is_current(generation):
                event = await transport.receive()
                if not self.is_current(generation):
                    break
                if not self._handle_event(generation, event):
                    break
        finally:
            if self._transport is transport:
                self._transport = None
            await transport.close()

    def _handle_event(self, generation: int, event: TransportEvent) -> bool:
        """Process one transport event. Returns ``False`` to stop reading."""
        if event.kind is TransportEventKind.TEXT:
            if self._handler is not None:
                try:
                    self._handler(event.data)
                except Exception:
                    logger.exception('Inbound message handler failed')
            return True

        if event.is_normal_closure:
            logger.info('Server closed the connection normally')
            self._handle_closed(generation)
            return False

        if event.kind is TransportEventKind.CLOSED:
            message = f"Connection closed (code {event.close_code})"
            self._handle_failure(generation, ConnectionFailedError(message))
            return False

        error = ConnectionFailedError(f"Receive failed: {event.error!r}")
        error.__cause__ = event.error
        # Abort and broken pipe on a live generation still count as failures
        level = (
            logging.DEBUG if is_benign_shutdown(event.error)
            else logging.WARNING
        )
        self._handle_failure(generation, error, level)
        return False

    def _handle_closed(self, generation: int) -> None:
        if not self.is_current(generation):
            return
        self._generation += 1
        self._set_status(ConnectionStatus.DISCONNECTED)

    def _handle_failure(
        self,
        generation: int,
        error: SessionError,
        level: int = logging.WARNING,
    ) -> None:
        if not self.is_current(generation):
            logger.debug('Ignoring failure of stale connection: %s', error)
            return
        logger.log(level, 'Connection failed: %s', error)
        self._generation += 1
        self._set_status(ConnectionStatus.DISCONNECTED)
        self._errors.publish(error)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        limit = self.settings.max_reconnect_attempts
        attempts = self._reconnect_attempts
        if limit is not None and attempts >= limit:
            logger.error('Giving up after %d reconnect attempts', attempts)
            return
        self._reconnect_attempts = attempts + 1
        self._cancel_reconnect()
        delay = self.settings.reconnect_delay
        logger.info(
            'Reconnecting in %.1fs (attempt %d)', delay, attempts + 1,
        )
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnect_after(delay),
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        if self.status is not ConnectionStatus.DISCONNECTED:
            logger.debug('Reconnect skipped, already %s', self.status.value)
            return
        self.connect()

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done():
            task.cancel()

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self.status:
            return
        logger.info(
            'Connection status: %s -> %s', self.status.value, status.value,
        )
        self.status = status
        self._status_channel.publish(status)
