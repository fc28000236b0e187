from __future__ import annotations

import unittest
from unittest import IsolatedAsyncioTestCase
from unittest.mock import MagicMock
from unittest.mock import patch

import numpy as np

from orion_client.capture.camera_capture import CameraCapture


class TestCameraCapture(IsolatedAsyncioTestCase):
    """
    Tests for the CameraCapture class.
    """

    def setUp(self) -> None:
        self.capture = CameraCapture(0, max_fps=1000, reopen_delay=0.0)
        self.frame = np.zeros((4, 4, 3), dtype=np.uint8)

    @patch('cv2.VideoCapture')
    def test_initialise_stream(self, mock_video_capture: MagicMock) -> None:
        mock_video_capture.return_value.isOpened.return_value = True
        self.capture.initialise_stream()
        mock_video_capture.assert_called_once_with(0)
        self.assertIsNotNone(self.capture.cap)

        self.capture.release_resources()
        mock_video_capture.return_value.release.assert_called_once()
        self.assertIsNone(self.capture.cap)

    @patch('cv2.VideoCapture')
    async def test_frames_yields_with_timestamps(
        self, mock_video_capture: MagicMock,
    ) -> None:
        mock_video_capture.return_value.read.return_value = (True, self.frame)

        received = []
        async for frame, timestamp in self.capture.frames():
            received.append((frame, timestamp))
            if len(received) == 3:
                break

        self.assertEqual(len(received), 3)
        self.assertIs(received[0][0], self.frame)
        self.assertIsInstance(received[0][1], float)

    @patch('cv2.VideoCapture')
    async def test_frames_gives_up_after_failures(
        self, mock_video_capture: MagicMock,
    ) -> None:
        mock_video_capture.return_value.read.return_value = (False, None)
        self.capture.max_failures = 3

        received = [item async for item in self.capture.frames()]

        self.assertEqual(received, [])
        self.assertEqual(mock_video_capture.call_count, 3)
        self.assertIsNone(self.capture.cap)

    @patch('cv2.VideoCapture')
    async def test_frames_recovers_after_failed_read(
        self, mock_video_capture: MagicMock,
    ) -> None:
        mock_video_capture.return_value.read.side_effect = [
            (False, None),
            (True, self.frame),
        ]
        async for frame, _ in self.capture.frames():
            self.assertIs(frame, self.frame)
            break
        self.assertEqual(mock_video_capture.call_count, 2)

    @patch('cv2.VideoCapture')
    async def test_frames_are_paced(
        self, mock_video_capture: MagicMock,
    ) -> None:
        """Frames read before the next slot are dropped."""
        mock_video_capture.return_value.read.return_value = (True, self.frame)
        capture = CameraCapture(0, max_fps=20)
        self.assertAlmostEqual(capture.frame_interval, 0.05)

        timestamps = []
        async for _, timestamp in capture.frames():
            timestamps.append(timestamp)
            if len(timestamps) == 2:
                break

        self.assertGreater(mock_video_capture.return_value.read.call_count, 2)
        self.assertGreaterEqual(timestamps[1] - timestamps[0], 0.04)


if __name__ == '__main__':
    unittest.main()
