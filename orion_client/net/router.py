from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from orion_client.errors import InvalidDataError
from orion_client.errors import ServerError
from orion_client.events import EventHub
from orion_client.net.connection import ConnectionStateMachine
from orion_client.net.round_trip import RoundTripTracker
from orion_client.pipeline.admission import FrameAdmissionSignal
from orion_client.protocol.codec import decode
from orion_client.protocol.codec import DecodeFailure
from orion_client.protocol.models import ConnectionAck
from orion_client.protocol.models import FrameProcessed
from orion_client.protocol.models import LiveUpdate
from orion_client.protocol.models import ServerErrorMessage
from orion_client.protocol.models import UserPromptResponse

logger = logging.getLogger(__name__)


class InboundRouter:
    """
    Decodes inbound payloads and routes them by their ``type`` field.

    Results are published on the hub channels ``analysis``,
    ``queue_size``, ``round_trip``, ``prompt_response`` and ``errors``.
    """

    def __init__(
        self,
        connection: ConnectionStateMachine,
        tracker: RoundTripTracker,
        hub: EventHub,
        admission_signal: FrameAdmissionSignal | None = None,
    ) -> None:
        self._connection = connection
        self._tracker = tracker
        self._signal = admission_signal

        self._analysis = hub.channel('analysis')
        self._queue_size = hub.channel('queue_size')
        self._round_trip = hub.channel('round_trip')
        self._prompt_response = hub.channel('prompt_response')
        self._errors = hub.channel('errors')

        self._handlers: dict[str, Callable[[Any], None]] = {
            'connection_ack': self._on_connection_ack,
            'live_update': self._on_live_update,
            'frame_processed': self._on_frame_processed,
            'user_prompt_response': self._on_prompt_response,
            'error': self._on_error,
        }

    def attach_admission_signal(
        self, signal: FrameAdmissionSignal | None,
    ) -> None:
        self._signal = signal

    def handle(self, payload: str | bytes) -> None:
        """
        Decode and route one inbound payload. Never raises.

        Args:
            payload (str | bytes): Raw frame read from the transport.
        """
        message = decode(payload)
        if isinstance(message, DecodeFailure):
            logger.warning('Invalid inbound payload: %s', message.reason)
            logger.debug('Offending payload: %r', message.excerpt)
            self._errors.publish(InvalidDataError(message.reason))
            return

        self._connection.mark_alive()
        self._handlers[message.type](message)

    def _on_connection_ack(self, message: ConnectionAck) -> None:
        logger.info(
            'Connection acknowledged (client_id=%s)', message.client_id,
        )

    def _on_live_update(self, message: LiveUpdate) -> None:
        if message.queue_size is not None:
            self._queue_size.publish(message.queue_size)

        if message.error:
            logger.warning(
                'Server failed to analyse frame %s: %s',
                message.frame_id, message.error,
            )
            self._errors.publish(ServerError(message.error))
            return

        if message.analysis is None:
            self._errors.publish(
                InvalidDataError(
                    f"live_update for {message.frame_id} has no analysis",
                ),
            )
            return

        self._analysis.publish(message.analysis)

    def _on_frame_processed(self, message: FrameProcessed) -> None:
        elapsed_ms = self._tracker.complete(message.frame_id)
        if elapsed_ms is not None:
            logger.debug(
                'Frame %s round trip: %.1f ms', message.frame_id, elapsed_ms,
            )
            self._round_trip.publish(elapsed_ms)

        if self._signal is not None:
            self._signal.release()

    def _on_prompt_response(self, message: UserPromptResponse) -> None:
        if message.error:
            logger.warning(
                'Prompt %s failed: %s', message.response_id, message.error,
            )
            self._errors.publish(ServerError(message.error))
            return
        self._prompt_response.publish(message)

    def _on_error(self, message: ServerErrorMessage) -> None:
        logger.error('Server error: %s', message.message)
        self._errors.publish(ServerError(message.message))
