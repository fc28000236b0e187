from __future__ import annotations

import json
import unittest
from unittest.mock import MagicMock

from orion_client.config import ClientSettings
from orion_client.errors import InvalidDataError
from orion_client.errors import ServerError
from orion_client.events import EventHub
from orion_client.net.round_trip import RoundTripTracker
from orion_client.net.router import InboundRouter
from orion_client.protocol.models import ProcessingMode
from orion_client.protocol.models import SceneAnalysis
from orion_client.protocol.models import UserPromptResponse

ANALYSIS = {
    'scene_description': 'An empty room',
    'contextual_insights': [],
    'enhanced_detections': [],
    'confidence': 0.6,
}


def live_update(**overrides) -> str:
    message = {
        'type': 'live_update',
        'frame_id': 'f1',
        'timestamp': 5.0,
        'analysis': ANALYSIS,
    }
    message.update(overrides)
    return json.dumps(message)


class TestInboundRouter(unittest.IsolatedAsyncioTestCase):
    """
    Tests for routing decoded server messages.
    """

    async def asyncSetUp(self) -> None:
        self.hub = EventHub()
        self.hub.start()
        self.events: dict[str, list] = {}
        for name in (
            'analysis', 'queue_size', 'round_trip', 'prompt_response',
            'errors',
        ):
            self.events[name] = []
            self.hub.channel(name).subscribe(self.events[name].append)

        self.connection = MagicMock()
        self.now = 0.0
        self.tracker = RoundTripTracker(
            ClientSettings(processing_mode=ProcessingMode.FULL),
            clock=lambda: self.now,
        )
        self.signal = MagicMock()
        self.router = InboundRouter(
            self.connection, self.tracker, self.hub, self.signal,
        )

    async def asyncTearDown(self) -> None:
        await self.hub.stop()

    async def test_connection_ack_marks_alive(self) -> None:
        self.router.handle('{"type": "connection_ack", "client_id": "c1"}')
        self.connection.mark_alive.assert_called_once()

    async def test_any_valid_message_marks_alive(self) -> None:
        self.router.handle(live_update())
        self.connection.mark_alive.assert_called_once()

    async def test_unknown_type_is_invalid_data(self) -> None:
        """Unknown kinds are reported and reading continues."""
        self.router.handle('{"type": "unknown_kind"}')
        self.connection.mark_alive.assert_not_called()

        self.router.handle(live_update())
        await self.hub.join()

        self.assertEqual(len(self.events['errors']), 1)
        self.assertIsInstance(self.events['errors'][0], InvalidDataError)
        self.assertEqual(len(self.events['analysis']), 1)

    async def test_live_update_publishes_gauge_and_analysis(self) -> None:
        self.router.handle(
            live_update(data={'server_status': {'queue_size': 4}}),
        )
        await self.hub.join()

        self.assertEqual(self.events['queue_size'], [4])
        self.assertIsInstance(self.events['analysis'][0], SceneAnalysis)
        self.assertEqual(
            self.events['analysis'][0].scene_description, 'An empty room',
        )

    async def test_live_update_error(self) -> None:
        self.router.handle(
            live_update(
                error='inference timeout',
                data={'server_status': {'queue_size': 9}},
            ),
        )
        await self.hub.join()

        self.assertEqual(self.events['queue_size'], [9])
        self.assertEqual(self.events['analysis'], [])
        self.assertIsInstance(self.events['errors'][0], ServerError)
        self.assertEqual(self.events['errors'][0].message, 'inference timeout')

    async def test_live_update_without_analysis(self) -> None:
        self.router.handle(live_update(analysis=None))
        await self.hub.join()
        self.assertIsInstance(self.events['errors'][0], InvalidDataError)

    async def test_frame_processed_publishes_round_trip(self) -> None:
        self.now = 0.1
        self.tracker.record('f1')
        self.now = 0.34
        self.router.handle('{"type": "frame_processed", "frame_id": "f1"}')
        await self.hub.join()

        self.assertEqual(len(self.events['round_trip']), 1)
        self.assertAlmostEqual(self.events['round_trip'][0], 240.0)
        self.signal.release.assert_called_once()

    async def test_frame_processed_unknown_still_releases(self) -> None:
        self.router.handle('{"type": "frame_processed", "frame_id": "zz"}')
        await self.hub.join()

        self.assertEqual(self.events['round_trip'], [])
        self.signal.release.assert_called_once()

    async def test_prompt_response(self) -> None:
        self.router.handle(
            json.dumps({
                'type': 'user_prompt_response',
                'response_id': 'p1',
                'question': 'What is on the table?',
                'answer': 'A cup.',
                'timestamp': 7.0,
            }),
        )
        await self.hub.join()
        response = self.events['prompt_response'][0]
        self.assertIsInstance(response, UserPromptResponse)
        self.assertEqual(response.answer, 'A cup.')

    async def test_prompt_response_error_goes_to_errors(self) -> None:
        self.router.handle(
            json.dumps({
                'type': 'user_prompt_response',
                'response_id': 'p1',
                'question': 'q',
                'answer': '',
                'timestamp': 7.0,
                'error': 'vlm unavailable',
            }),
        )
        await self.hub.join()
        self.assertEqual(self.events['prompt_response'], [])
        self.assertIsInstance(self.events['errors'][0], ServerError)

    async def test_error_message(self) -> None:
        self.router.handle('{"type": "error", "message": "queue full"}')
        await self.hub.join()
        self.assertEqual(str(self.events['errors'][0]), 'queue full')
        self.connection.disconnect.assert_not_called()

    async def test_garbage_never_raises(self) -> None:
        for payload in ('', b'\x00\xff', '{"type": ', '[]', '{"a": 1}'):
            self.router.handle(payload)
        await self.hub.join()
        self.assertEqual(len(self.events['errors']), 5)


if __name__ == '__main__':
    unittest.main()
