from __future__ import annotations

import asyncio
import socket
import unittest
from unittest.mock import AsyncMock
from unittest.mock import MagicMock
from unittest.mock import patch

from orion_client.config import ClientSettings
from orion_client.errors import ConnectionFailedError
from orion_client.events import EventHub
from orion_client.net.reachability import ReachabilityMonitor
from orion_client.protocol.models import ConnectionStatus


class TestReachabilityMonitor(unittest.IsolatedAsyncioTestCase):
    """
    Tests for reachability-driven connect and disconnect.
    """

    async def asyncSetUp(self) -> None:
        self.settings = ClientSettings(
            server_host='127.0.0.1', reachability_interval=0.01,
        )
        self.hub = EventHub()
        self.hub.start()
        self.errors: list[Exception] = []
        self.hub.channel('errors').subscribe(self.errors.append)

        self.connection = MagicMock()
        self.connection.status = ConnectionStatus.DISCONNECTED
        self.monitor = ReachabilityMonitor(
            self.settings, self.connection, self.hub,
        )

    async def asyncTearDown(self) -> None:
        await self.monitor.stop()
        await self.hub.stop()

    async def test_satisfied_while_disconnected_connects(self) -> None:
        self.monitor.update(True)
        self.connection.connect.assert_called_once()

    async def test_repeated_satisfied_connects_once(self) -> None:
        self.monitor.update(True)
        self.monitor.update(True)
        self.connection.connect.assert_called_once()

    async def test_satisfied_while_connected_is_ignored(self) -> None:
        self.connection.status = ConnectionStatus.CONNECTED
        self.monitor.update(True)
        self.connection.connect.assert_not_called()

    async def test_loss_while_connected_reports_once(self) -> None:
        self.connection.status = ConnectionStatus.CONNECTED
        self.monitor.update(True)
        self.monitor.update(False)
        self.monitor.update(False)
        await self.hub.join()

        self.connection.disconnect.assert_called_once()
        self.assertEqual(len(self.errors), 1)
        self.assertIsInstance(self.errors[0], ConnectionFailedError)

    async def test_loss_while_connecting(self) -> None:
        self.connection.status = ConnectionStatus.CONNECTING
        self.monitor.update(False)
        self.connection.disconnect.assert_called_once()

    async def test_loss_while_disconnected_is_silent(self) -> None:
        self.monitor.update(False)
        await self.hub.join()
        self.connection.disconnect.assert_not_called()
        self.assertEqual(self.errors, [])

    async def test_run_applies_probe_results(self) -> None:
        results = iter([False, True, True])

        async def probe() -> bool:
            return next(results, True)

        monitor = ReachabilityMonitor(
            self.settings, self.connection, self.hub, probe=probe,
        )
        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.stop()

        self.assertIs(monitor.satisfied, True)
        self.connection.connect.assert_called_once()

    async def test_probe_exception_counts_as_unsatisfied(self) -> None:
        monitor = ReachabilityMonitor(
            self.settings,
            self.connection,
            self.hub,
            probe=AsyncMock(side_effect=RuntimeError('probe broke')),
        )
        with self.assertLogs('orion_client.net.reachability', level='ERROR'):
            monitor.start()
            await asyncio.sleep(0.005)
        await monitor.stop()
        self.assertIs(monitor.satisfied, False)

    async def test_probe_route_success(self) -> None:
        loop = asyncio.get_running_loop()
        info = [
            (socket.AF_INET, socket.SOCK_DGRAM, 0, '', ('127.0.0.1', 8000)),
        ]
        with (
            patch.object(loop, 'getaddrinfo', AsyncMock(return_value=info)),
            patch('socket.socket') as mock_socket,
        ):
            self.assertTrue(await self.monitor.probe_route())
        sock = mock_socket.return_value.__enter__.return_value
        sock.connect.assert_called_once_with(('127.0.0.1', 8000))

    async def test_probe_route_lookup_failure(self) -> None:
        loop = asyncio.get_running_loop()
        with patch.object(
            loop, 'getaddrinfo',
            AsyncMock(side_effect=socket.gaierror('no such host')),
        ):
            self.assertFalse(await self.monitor.probe_route())

    async def test_probe_route_no_route(self) -> None:
        loop = asyncio.get_running_loop()
        info = [
            (socket.AF_INET, socket.SOCK_DGRAM, 0, '', ('10.0.0.1', 8000)),
        ]
        with (
            patch.object(loop, 'getaddrinfo', AsyncMock(return_value=info)),
            patch('socket.socket') as mock_socket,
        ):
            sock = mock_socket.return_value.__enter__.return_value
            sock.connect.side_effect = OSError(101, 'Network is unreachable')
            self.assertFalse(await self.monitor.probe_route())


if __name__ == '__main__':
    unittest.main()
