from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel

from orion_client.config import ClientSettings
from orion_client.errors import SessionError
from orion_client.events import EventChannel
from orion_client.events import EventHub
from orion_client.net.connection import ConnectionStateMachine
from orion_client.net.connection import Transport
from orion_client.net.dispatcher import OutboundDispatcher
from orion_client.net.reachability import Probe
from orion_client.net.reachability import ReachabilityMonitor
from orion_client.net.round_trip import RoundTripTracker
from orion_client.net.router import InboundRouter
from orion_client.pipeline.admission import FrameAdmissionSignal
from orion_client.protocol.models import ConfigurationMessage
from orion_client.protocol.models import ConnectionStatus
from orion_client.protocol.models import ProcessingMode
from orion_client.protocol.models import UserPromptMessage

logger = logging.getLogger(__name__)

CHANNELS = (
    'status',
    'analysis',
    'round_trip',
    'queue_size',
    'prompt_response',
    'errors',
    'detections',
    'detection_log',
)


class OrionSession:
    """
    Client-side network session with an Orion analysis server.

    Wires the connection state machine, the outbound dispatcher, the inbound
    router, the round-trip tracker and the reachability monitor around one
    :class:`ClientSettings` instance and one :class:`EventHub`.

    Observers subscribe through :meth:`channel`, e.g.
    ``session.channel('analysis').subscribe(show)``. Every callback runs on
    the hub's consumer task, in publish order.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        transport_factory: Callable[[], Transport] | None = None,
        probe: Probe | None = None,
        clock: Callable[[], float] = time.monotonic,
        hub: EventHub | None = None,
        settings_path: str | Path | None = None,
    ) -> None:
        """
        Build the session and its components.

        Args:
            settings (ClientSettings): Configuration shared by every
                component. Mutated by :meth:`update_server` and
                :meth:`set_processing_mode`.
            transport_factory (Callable[[], Transport] | None): Transport
                builder, defaults to the aiohttp WebSocket transport.
            probe (Probe | None): Reachability probe override.
            clock (Callable[[], float]): Monotonic clock for round trips.
            hub (EventHub | None): Event hub, a new one by default.
            settings_path (str | Path | None): Where :meth:`update_server`
                persists the new endpoint. Nothing is written when unset.
        """
        self.settings = settings
        self.settings_path = settings_path
        self.hub = hub or EventHub()
        for name in CHANNELS:
            self.hub.channel(name)

        self.connection = ConnectionStateMachine(
            settings, self.hub, transport_factory,
        )
        self.tracker = RoundTripTracker(settings, clock=clock)
        self.dispatcher = OutboundDispatcher(self.connection, self.tracker)
        self.router = InboundRouter(self.connection, self.tracker, self.hub)
        self.connection.set_message_handler(self.router.handle)
        self.connection.set_connected_hook(self._send_configuration)
        self.reachability = ReachabilityMonitor(
            settings, self.connection, self.hub, probe,
        )

        self._admission: FrameAdmissionSignal | None = None
        self.hub.channel('status').subscribe(self._on_status)

    @property
    def status(self) -> ConnectionStatus:
        return self.connection.status

    def channel(self, name: str) -> EventChannel:
        return self.hub.channel(name)

    def attach_admission(self, signal: FrameAdmissionSignal | None) -> None:
        """
        Inject the capability used to free the admission slot.

        Args:
            signal (FrameAdmissionSignal | None): Usually the
                ``FrameAdmissionController``.
        """
        self._admission = signal
        self.router.attach_admission_signal(signal)

    async def start(self, monitor_network: bool = True) -> None:
        """
        Start event delivery and, optionally, the reachability monitor.

        With the monitor running the first satisfied probe connects the
        session; otherwise call :meth:`connect` explicitly.

        Args:
            monitor_network (bool): Whether to start the monitor.
        """
        self.hub.start()
        if monitor_network:
            self.reachability.start()

    def connect(self) -> bool:
        return self.connection.connect()

    def disconnect(self) -> bool:
        return self.connection.disconnect()

    def send(self, message: BaseModel) -> asyncio.Task:
        """
        Send a message on the live connection.

        Args:
            message (BaseModel): A client-to-server message.

        Returns:
            asyncio.Task: The pending write.

        Raises:
            ConnectionNotReadyError: If not ``connected``.
            MessageEncodeError: If the message cannot be serialised.
        """
        return self.dispatcher.send(message)

    def set_processing_mode(self, mode: ProcessingMode | str) -> None:
        """
        Switch between on-device and server-side detection.

        The server is told about the change right away when connected.
        Frames admitted afterwards use the new payload shape.

        Args:
            mode (ProcessingMode | str): ``split`` or ``full``.
        """
        mode = ProcessingMode(mode)
        if mode is self.settings.processing_mode:
            return
        logger.info(
            'Processing mode: %s -> %s',
            self.settings.processing_mode.value, mode.value,
        )
        self.settings.processing_mode = mode
        self.tracker.clear()
        if self._admission is not None:
            self._admission.release()
        if self.status is ConnectionStatus.CONNECTED:
            self.send(ConfigurationMessage(processing_mode=mode))

    def ask(self, question: str) -> str:
        """
        Send a free-text question about the current scene.

        Args:
            question (str): The user's question.

        Returns:
            str: The ``prompt_id``; the answer arrives on the
                ``prompt_response`` channel.

        Raises:
            ValueError: If the question is blank.
            ConnectionNotReadyError: If not ``connected``.
        """
        question = question.strip()
        if not question:
            raise ValueError('Question must not be empty')
        prompt_id = str(uuid.uuid4())
        self.send(
            UserPromptMessage(
                prompt_id=prompt_id,
                question=question,
                timestamp=time.time(),
                device_id=self.settings.device_id,
            ),
        )
        return prompt_id

    def update_server(self, host: str, port: int) -> None:
        """
        Point the session at a new server and reconnect.

        Args:
            host (str): Server host name or address.
            port (int): Server port.
        """
        self.settings.server_host = host.strip()
        self.settings.server_port = port
        if self.settings_path is not None:
            self.settings.save(self.settings_path)
        logger.info('Server changed to %s:%s', host, port)
        self.connection.disconnect()
        self.connection.connect()

    async def close(self) -> None:
        """Stop monitoring, disconnect and flush pending events."""
        await self.reachability.stop()
        await self.connection.close()
        await self.dispatcher.drain()
        if self.hub.running:
            await self.hub.join()
        await self.hub.stop()

    def _send_configuration(self, generation: int) -> None:
        try:
            self.send(
                ConfigurationMessage(
                    processing_mode=self.settings.processing_mode,
                ),
            )
        except SessionError as e:
            logger.debug('Configuration not sent: %s', e)

    def _on_status(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.DISCONNECTED:
            self.tracker.clear()
            if self._admission is not None:
                self._admission.release()
