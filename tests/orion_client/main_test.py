from __future__ import annotations

import argparse
import os
import unittest
from unittest.mock import AsyncMock
from unittest.mock import MagicMock
from unittest.mock import patch

import numpy as np

from orion_client import main as main_module
from orion_client.main import build_parser
from orion_client.main import describe_detections
from orion_client.main import resolve_settings
from orion_client.main import run
from orion_client.protocol.models import Detection
from orion_client.protocol.models import ProcessingMode


class TestMain(unittest.IsolatedAsyncioTestCase):
    """
    Tests for the command-line entry point.
    """

    def test_parser_defaults(self) -> None:
        args = build_parser().parse_args([])
        self.assertIsNone(args.host)
        self.assertEqual(args.source, '0')
        self.assertFalse(args.no_monitor)

    def test_resolve_settings_applies_overrides(self) -> None:
        args = build_parser().parse_args([
            '--host', 'orion.lan', '--port', '9100', '--mode', 'full',
            '--settings', '/nonexistent/orion.json',
        ])
        with patch.dict(os.environ, {}, clear=True):
            settings = resolve_settings(args)
        self.assertEqual(settings.server_host, 'orion.lan')
        self.assertEqual(settings.server_port, 9100)
        self.assertIs(settings.processing_mode, ProcessingMode.FULL)

    def test_describe_detections(self) -> None:
        detections = [
            Detection(
                label='person', confidence=0.9, bbox=(0.0, 0.0, 0.2, 0.2),
                contextual_label='top left',
            ),
            Detection(label='cup', confidence=0.6, bbox=(0.4, 0.4, 0.6, 0.6)),
        ]
        self.assertEqual(
            describe_detections(detections),
            'person (human, top left), cup (object, center)',
        )
        self.assertEqual(describe_detections([]), 'nothing detected')

    async def test_run_offers_frames_and_closes(self) -> None:
        args = argparse.Namespace(
            source='0', model='m.pt', settings='s.json', no_monitor=True,
        )
        settings = MagicMock()
        settings.processing_mode = ProcessingMode.FULL
        settings.max_fps = 5

        session = MagicMock()
        session.start = AsyncMock()
        session.close = AsyncMock()
        controller = MagicMock()
        controller.wait_idle = AsyncMock()
        controller.dropped_frames = 0
        frame = np.zeros((2, 2, 3), dtype=np.uint8)

        async def frames():
            yield frame, 1.0
            yield frame, 2.0

        capture = MagicMock()
        capture.frames = frames

        with (
            patch.object(main_module, 'OrionSession', return_value=session),
            patch.object(
                main_module, 'FrameAdmissionController',
                return_value=controller,
            ),
            patch.object(main_module, 'CameraCapture', return_value=capture),
            patch.object(main_module, 'YoloDetector') as mock_detector,
        ):
            await run(args, settings)

        mock_detector.assert_not_called()
        session.start.assert_awaited_once_with(monitor_network=False)
        session.connect.assert_called_once()
        session.attach_admission.assert_called_once_with(controller)
        self.assertEqual(controller.offer.call_count, 2)
        session.close.assert_awaited_once()

    def test_main_handles_keyboard_interrupt(self) -> None:
        with (
            patch('sys.argv', ['orion-client', '--settings', '/nonexistent']),
            patch.object(main_module, 'LoggerConfig'),
            patch.object(
                main_module.asyncio, 'run', side_effect=KeyboardInterrupt,
            ) as mock_run,
        ):
            main_module.main()
        mock_run.assert_called_once()
        mock_run.call_args.args[0].close()


if __name__ == '__main__':
    unittest.main()
