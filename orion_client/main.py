from __future__ import annotations

import argparse
import asyncio
import logging

from orion_client.capture.camera_capture import CameraCapture
from orion_client.config import ClientSettings
from orion_client.detection.detector import DetectionSummaryDescriber
from orion_client.detection.detector import YoloDetector
from orion_client.detection.spatial import category_for
from orion_client.detection.spatial import spatial_label
from orion_client.net.session import OrionSession
from orion_client.pipeline.admission import FrameAdmissionController
from orion_client.pipeline.frames import FramePayloadBuilder
from orion_client.protocol.models import Detection
from orion_client.protocol.models import ProcessingMode
from orion_client.session_logger import LoggerConfig

logger = logging.getLogger('orion_client.main')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Stream camera frames to an Orion analysis server',
    )
    parser.add_argument('--host', type=str, help='Server host')
    parser.add_argument('--port', type=int, help='Server port')
    parser.add_argument(
        '--mode', choices=[m.value for m in ProcessingMode],
        help='Processing mode (split: detect on device, full: send images)',
    )
    parser.add_argument(
        '--source', type=str, default='0',
        help='Camera index or video path/URL',
    )
    parser.add_argument(
        '--model', type=str, default='models/yolo11n.pt',
        help='YOLO weights used in split mode',
    )
    parser.add_argument(
        '--settings', type=str, default='orion_settings.json',
        help='Path to the persisted JSON settings file',
    )
    parser.add_argument(
        '--no-monitor', action='store_true',
        help='Connect once instead of following network reachability',
    )
    return parser


def resolve_settings(args: argparse.Namespace) -> ClientSettings:
    """
    Load persisted settings and apply command-line overrides.

    Args:
        args (argparse.Namespace): Parsed arguments.

    Returns:
        ClientSettings: The effective settings.
    """
    settings = ClientSettings.load(args.settings)
    if args.host:
        settings.server_host = args.host
    if args.port:
        settings.server_port = args.port
    if args.mode:
        settings.processing_mode = ProcessingMode(args.mode)
    return settings


def _log_event(name: str):
    def callback(value) -> None:
        logger.info('[%s] %s', name, value)
    return callback


def describe_detections(detections: list[Detection]) -> str:
    """
    Render on-device detections as one log line.

    Args:
        detections (list[Detection]): Detections of one frame.

    Returns:
        str: E.g. ``"person (human, top left), cup (object, center)"``.
    """
    if not detections:
        return 'nothing detected'
    return ', '.join(
        f"{d.label} ({category_for(d.label)}, "
        f"{d.contextual_label or spatial_label(d.bbox)})"
        for d in detections
    )


def _log_detections(detections: list[Detection]) -> None:
    logger.info('[detections] %s', describe_detections(detections))


async def run(args: argparse.Namespace, settings: ClientSettings) -> None:
    """
    Run the session and the capture pipeline until interrupted.

    Args:
        args (argparse.Namespace): Parsed arguments.
        settings (ClientSettings): Effective settings.
    """
    session = OrionSession(settings, settings_path=args.settings)
    for name in ('status', 'analysis', 'round_trip', 'errors'):
        session.channel(name).subscribe(_log_event(name))
    session.channel('detections').subscribe(_log_detections)

    detector = None
    if settings.processing_mode is ProcessingMode.SPLIT:
        detector = YoloDetector(
            model_path=args.model,
            confidence_threshold=settings.confidence_threshold,
        )
    controller = FrameAdmissionController(
        settings,
        session.send,
        FramePayloadBuilder(settings),
        session.hub,
        detector=detector,
        describer=DetectionSummaryDescriber(),
    )
    session.attach_admission(controller)

    source = int(args.source) if args.source.isdigit() else args.source
    capture = CameraCapture(source, max_fps=settings.max_fps)

    await session.start(monitor_network=not args.no_monitor)
    if args.no_monitor:
        session.connect()
    try:
        async for frame, captured_at in capture.frames():
            controller.offer(frame, captured_at)
    finally:
        logger.info(
            'Capture stopped, %d frames dropped by admission',
            controller.dropped_frames,
        )
        await controller.wait_idle()
        await session.close()


def main() -> None:
    """
    Parse command-line arguments and run the client.
    """
    args = build_parser().parse_args()
    settings = resolve_settings(args)
    LoggerConfig.from_settings(settings)
    try:
        asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info('KeyboardInterrupt, shutting down...')


if __name__ == '__main__':
    main()
