from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Union

from pydantic import BaseModel
from pydantic import TypeAdapter
from pydantic import ValidationError
from pydantic_core import PydanticSerializationError

from orion_client.errors import MessageEncodeError
from orion_client.protocol.models import ConfigurationMessage
from orion_client.protocol.models import FrameDataMessage
from orion_client.protocol.models import INBOUND_TYPES
from orion_client.protocol.models import ServerToClientMessage
from orion_client.protocol.models import UserPromptMessage

_INBOUND_ADAPTER: TypeAdapter = TypeAdapter(ServerToClientMessage)

_OUTBOUND_TYPES = (ConfigurationMessage, FrameDataMessage, UserPromptMessage)

# Longest payload excerpt kept on a decode failure for logging
_EXCERPT_LENGTH = 200


@dataclass(frozen=True)
class DecodeFailure:
    """
    The result of a payload that could not be turned into a message.

    Attributes:
        reason (str): Human readable cause.
        excerpt (str): Leading part of the offending payload.
    """

    reason: str
    excerpt: str = ''


DecodeResult = Union[ServerToClientMessage, DecodeFailure]


def encode(message: BaseModel) -> str:
    """
    Serialise an outbound message into a single JSON text frame.

    Optional fields that are unset are omitted from the wire form, so a
    ``full`` mode frame carries no ``detections`` key and a ``split`` mode
    frame carries no ``image_data`` key.

    Args:
        message (BaseModel): A client-to-server message model.

    Returns:
        str: The JSON document, including the ``type`` discriminator.

    Raises:
        MessageEncodeError: If the object is not an outbound message or
            cannot be serialised.
    """
    if not isinstance(message, _OUTBOUND_TYPES):
        raise MessageEncodeError(
            f"Not an outbound message: {type(message).__name__}",
        )
    try:
        return message.model_dump_json(exclude_none=True)
    except (PydanticSerializationError, TypeError, ValueError) as e:
        raise MessageEncodeError(
            f"Failed to encode {message.type} message: {e}",
        ) from e


def decode(payload: str | bytes | bytearray) -> DecodeResult:
    """
    Parse an inbound payload, routing purely on its ``type`` field.

    This function never raises: every malformed payload (empty, truncated,
    non-object JSON, missing or unknown ``type``, schema mismatch) becomes a
    :class:`DecodeFailure`.

    Args:
        payload (str | bytes | bytearray): Raw text or UTF-8 bytes.

    Returns:
        DecodeResult: A typed server message or a ``DecodeFailure``.
    """
    if isinstance(payload, (bytes, bytearray)):
        try:
            text = bytes(payload).decode('utf-8')
        except UnicodeDecodeError:
            return DecodeFailure('payload is not valid UTF-8')
    else:
        text = payload

    excerpt = text[:_EXCERPT_LENGTH]
    if not text.strip():
        return DecodeFailure('empty payload')

    try:
        raw = json.loads(text)
    except (ValueError, RecursionError) as e:
        return DecodeFailure(f"malformed JSON: {e}", excerpt)

    if not isinstance(raw, dict):
        return DecodeFailure('payload is not a JSON object', excerpt)

    kind = raw.get('type')
    if not isinstance(kind, str):
        return DecodeFailure('missing message type', excerpt)
    if kind not in INBOUND_TYPES:
        return DecodeFailure(f"unrecognised message type {kind!r}", excerpt)

    try:
        return _INBOUND_ADAPTER.validate_python(raw)
    except ValidationError as e:
        return DecodeFailure(
            f"invalid {kind} message ({e.error_count()} errors)",
            excerpt,
        )
