from __future__ import annotations

import json
import re
import uuid
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict

from orion_client.errors import InvalidURLError
from orion_client.protocol.models import ProcessingMode

# Load environment variables from .env file
load_dotenv()

# Hostnames, IPv4 literals, or bracketed IPv6 literals
_HOST_PATTERN = re.compile(r'^(?:[A-Za-z0-9_.-]+|\[[0-9A-Fa-f:.]+\])$')


class ClientSettings(BaseSettings):
    """
    Configuration settings for the Orion streaming client.

    One instance is built at startup and handed to every component that
    needs it. Each field can be overridden through an ``ORION_`` prefixed
    environment variable (e.g. ``ORION_SERVER_HOST``) or a persisted JSON
    settings file.

    Attributes:
        server_host (str): Host name or address of the analysis server.
        server_port (int): TCP port of the analysis server.
        ws_path (str): WebSocket endpoint path on the server.
        reconnect_delay (float): Seconds to wait before reconnecting after
            a connection failure.
        max_reconnect_attempts (int | None): Reconnect cap, ``None`` retries
            for as long as the client runs.
        connect_timeout (float): Handshake timeout in seconds.
        ws_heartbeat (float): Ping interval in seconds.
        send_timeout (float): Timeout for a single WebSocket write.
        processing_mode (ProcessingMode): ``split`` runs detection on the
            device, ``full`` ships raw images to the server.
        confidence_threshold (float): Minimum on-device detection score.
        max_fps (int): Maximum camera capture rate.
        jpeg_quality (int): JPEG quality used for ``full`` mode images.
        pending_frame_ttl (float): Seconds before an unacknowledged frame
            id is dropped from the round-trip registry.
        max_pending_frames (int): Upper bound on the round-trip registry.
        reachability_interval (float): Seconds between reachability probes.
        device_id (str): Identifier attached to outbound frames and prompts.
        enable_network_logging (bool): Log the network layer at DEBUG.
        log_dir (str): Directory for rotating log files.
        log_file (str): Log file name.
        log_level (str): Root level for the client logger.
    """

    model_config = SettingsConfigDict(
        env_prefix='ORION_',
        validate_assignment=True,
        extra='ignore',
    )

    server_host: str = '192.168.86.49'
    server_port: int = 8000
    ws_path: str = '/ios'
    reconnect_delay: float = Field(default=60.0, ge=0)
    max_reconnect_attempts: int | None = Field(default=None, ge=1)
    connect_timeout: float = Field(default=5.0, gt=0)
    ws_heartbeat: float = Field(default=30.0, gt=0)
    send_timeout: float = Field(default=10.0, gt=0)

    processing_mode: ProcessingMode = ProcessingMode.SPLIT
    confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    max_fps: int = Field(default=30, ge=1)
    jpeg_quality: int = Field(default=70, ge=1, le=100)

    pending_frame_ttl: float = Field(default=30.0, gt=0)
    max_pending_frames: int = Field(default=256, ge=1)
    reachability_interval: float = Field(default=5.0, gt=0)

    device_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    enable_network_logging: bool = False
    log_dir: str = 'logs'
    log_file: str = 'orion_client.log'
    log_level: str = 'INFO'

    def ws_url(self) -> str:
        """
        Build the WebSocket endpoint URL for the configured server.

        Returns:
            str: ``ws://{host}:{port}{ws_path}``.

        Raises:
            InvalidURLError: If the host or port cannot form a valid URL.
        """
        host = self.server_host.strip()
        if not host or not _HOST_PATTERN.match(host):
            raise InvalidURLError(f"Invalid server host: {self.server_host!r}")
        if not 0 < self.server_port < 65536:
            raise InvalidURLError(f"Invalid server port: {self.server_port}")
        path = self.ws_path if self.ws_path.startswith('/') else (
            '/' + self.ws_path
        )
        return f"ws://{host}:{self.server_port}{path}"

    @classmethod
    def load(cls, path: str | Path | None = None) -> ClientSettings:
        """
        Build settings, applying persisted values on top of env and defaults.

        Args:
            path (str | Path | None): Optional JSON settings file written
                by :meth:`save`. Missing files are ignored.

        Returns:
            ClientSettings: The resolved settings.
        """
        if path is not None and Path(path).is_file():
            data = json.loads(Path(path).read_text(encoding='utf-8'))
            return cls(**data)
        return cls()

    def save(self, path: str | Path) -> None:
        """
        Persist the current settings as JSON.

        Args:
            path (str | Path): Destination file.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding='utf-8')
