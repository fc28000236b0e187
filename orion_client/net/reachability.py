from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import Awaitable
from collections.abc import Callable
from contextlib import suppress

from orion_client.config import ClientSettings
from orion_client.errors import ConnectionFailedError
from orion_client.events import EventHub
from orion_client.net.connection import ConnectionStateMachine
from orion_client.protocol.models import ConnectionStatus

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[bool]]


class ReachabilityMonitor:
    """
    Polls the network path and drives connect / disconnect on transitions.

    Only changes matter: a path that stays satisfied never issues a second
    connect, and a path that stays unsatisfied reports the loss once.
    """

    def __init__(
        self,
        settings: ClientSettings,
        connection: ConnectionStateMachine,
        hub: EventHub,
        probe: Probe | None = None,
    ) -> None:
        """
        Initialise the monitor.

        Args:
            settings (ClientSettings): Supplies the server endpoint and the
                polling interval.
            connection (ConnectionStateMachine): State machine to drive.
            hub (EventHub): Hub used to publish connection-loss errors.
            probe (Probe | None): Coroutine function returning whether the
                path is usable. Defaults to a DNS lookup plus a UDP route
                check towards the server.
        """
        self.settings = settings
        self.satisfied: bool | None = None
        self._connection = connection
        self._errors = hub.channel('errors')
        self._probe = probe or self.probe_route
        self._task: asyncio.Task | None = None

    async def probe_route(self) -> bool:
        """
        Check that the server host resolves and has a route.

        Connecting a UDP socket selects a route without sending anything, so
        this fails fast with ``ENETUNREACH`` when no interface is up.

        Returns:
            bool: ``True`` if a route to the server exists.
        """
        loop = asyncio.get_running_loop()
        host = self.settings.server_host.strip().strip('[]')
        try:
            infos = await loop.getaddrinfo(
                host, self.settings.server_port, type=socket.SOCK_DGRAM,
            )
        except OSError as e:
            logger.debug('Address lookup for %s failed: %s', host, e)
            return False
        if not infos:
            return False

        family, _, _, _, address = infos[0]
        try:
            with socket.socket(family, socket.SOCK_DGRAM) as sock:
                sock.setblocking(False)
                sock.connect(address)
        except OSError as e:
            logger.debug('No route to %s: %s', host, e)
            return False
        return True

    def update(self, satisfied: bool) -> None:
        """
        Apply one observation of the network path.

        Args:
            satisfied (bool): Whether the path is currently usable.
        """
        previous, self.satisfied = self.satisfied, satisfied
        if previous is satisfied:
            return

        status = self._connection.status
        if satisfied:
            logger.info('Network path is available')
            if status is ConnectionStatus.DISCONNECTED:
                self._connection.connect()
            return

        logger.warning('Network path lost')
        if status in (ConnectionStatus.CONNECTED, ConnectionStatus.CONNECTING):
            self._connection.disconnect()
            self._errors.publish(ConnectionFailedError('Network path lost'))

    async def run(self) -> None:
        """Probe forever, sleeping ``reachability_interval`` in between."""
        while True:
            try:
                satisfied = await self._probe()
            except Exception:
                logger.exception('Reachability probe failed')
                satisfied = False
            self.update(bool(satisfied))
            await asyncio.sleep(self.settings.reachability_interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
