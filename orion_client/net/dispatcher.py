from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from orion_client.errors import ConnectionNotReadyError
from orion_client.errors import SessionError
from orion_client.net.connection import ConnectionStateMachine
from orion_client.net.round_trip import RoundTripTracker
from orion_client.protocol.codec import encode
from orion_client.protocol.models import ConnectionStatus
from orion_client.protocol.models import FrameDataMessage

logger = logging.getLogger(__name__)


class OutboundDispatcher:
    """
    Serialises outbound messages and writes them to the live connection.

    There is no outbound queue: a message is either handed to the transport
    right away or rejected.
    """

    def __init__(
        self,
        connection: ConnectionStateMachine,
        tracker: RoundTripTracker,
    ) -> None:
        self._connection = connection
        self._tracker = tracker
        self._in_flight: set[asyncio.Task] = set()

    def send(self, message: BaseModel) -> asyncio.Task:
        """
        Encode a message and start writing it.

        Args:
            message (BaseModel): A client-to-server message.

        Returns:
            asyncio.Task: The pending write. It resolves to ``True`` on
                success and ``False`` if the write failed. A failed write
                tears the connection down through
                :meth:`ConnectionStateMachine.report_send_failure`
                instead of raising.

        Raises:
            ConnectionNotReadyError: If the session is not ``connected``.
            MessageEncodeError: If the message cannot be serialised.
        """
        status = self._connection.status
        if status is not ConnectionStatus.CONNECTED:
            raise ConnectionNotReadyError(
                f"Cannot send while {status.value}",
            )

        text = encode(message)
        generation = self._connection.generation

        frame_id = None
        if isinstance(message, FrameDataMessage) and self._tracker.enabled:
            frame_id = message.frame_id
            self._tracker.record(frame_id)

        task = asyncio.get_running_loop().create_task(
            self._transmit(text, generation, frame_id),
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def drain(self) -> None:
        """Wait for every write started so far to finish."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _transmit(
        self, text: str, generation: int, frame_id: str | None,
    ) -> bool:
        try:
            await self._connection.send_text(text, generation)
        except SessionError as e:
            if frame_id is not None:
                self._tracker.discard(frame_id)
            if not self._connection.is_current(generation):
                logger.debug('Ignoring late send failure: %s', e)
                return False
            logger.warning('Send failed: %s', e)
            self._connection.report_send_failure(generation, e)
            return False
        return True
