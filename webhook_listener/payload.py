"""
Reading and decoding inbound webhook payloads
"""
import json
from typing import Any, BinaryIO, Dict, Optional

from werkzeug.exceptions import ClientDisconnected

from .errors import BodyTooLargeError, MalformedPayloadError, StreamReadError

CHUNK_SIZE = 64 * 1024


def read_body(stream: BinaryIO, max_size: Optional[int] = None) -> bytes:
    """Read the whole request body.

    Raises StreamReadError if the stream fails before end of input, and
    BodyTooLargeError once more than `max_size` bytes have arrived.
    """
    chunks = []
    received = 0

    try:
        while True:
            chunk = stream.read(CHUNK_SIZE)
            if not chunk:
                break
            received += len(chunk)
            if max_size is not None and received > max_size:
                raise BodyTooLargeError(max_size)
            chunks.append(chunk)
    except (OSError, ClientDisconnected) as e:
        raise StreamReadError(f"Unable to read request body: {e}") from e

    return b''.join(chunks)


def decode_payload(body: bytes) -> Dict[str, Any]:
    """Parse a webhook body; the event must carry a string `type`."""
    try:
        payload = json.loads(body.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedPayloadError(f"Invalid webhook payload: {e}") from e

    if not isinstance(payload, dict):
        raise MalformedPayloadError(
            f"Invalid webhook payload: expected an object, got {type(payload).__name__}"
        )

    if not isinstance(payload.get('type'), str):
        raise MalformedPayloadError("Invalid webhook payload: missing event 'type'")

    return payload


def event_type(payload: Dict[str, Any]) -> str:
    return payload['type']
