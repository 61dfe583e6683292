"""
JSON message stream decoding

Build, pull and push responses are a sequence of JSON objects written one
after another. Failures are reported inside the stream with a 200 status,
so the stream has to be scanned to find out whether the operation worked.
"""

import codecs
import json
import logging
from typing import Any, Callable, Dict, Iterator, Optional

from .exceptions import StreamError

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()
_WHITESPACE = ' \t\n\r'


def iter_json_messages(stream, chunk_size: int = 8192) -> Iterator[Dict[str, Any]]:
    """
    Decode concatenated JSON objects from a stream

    Args:
        stream: Object with read(size) returning bytes (or str)
        chunk_size: Number of bytes read per call

    Yields:
        Each decoded message

    Raises:
        json.JSONDecodeError: If the stream holds malformed JSON
        StreamError: If a value in the stream is not an object
    """
    text_decoder = codecs.getincrementaldecoder('utf-8')()
    buffer = ''
    eof = False

    while True:
        buffer = buffer.lstrip(_WHITESPACE)

        if buffer:
            try:
                message, end = _decoder.raw_decode(buffer)
            except json.JSONDecodeError:
                # Incomplete value; anything still undecodable at EOF is malformed
                if eof:
                    raise
            else:
                if not isinstance(message, dict):
                    raise StreamError(f"Unexpected message in response stream: {message!r}")
                buffer = buffer[end:]
                yield message
                continue

        if eof:
            break

        chunk = stream.read(chunk_size)
        if not chunk:
            eof = True
            buffer += text_decoder.decode(b'', final=True)
        elif isinstance(chunk, bytes):
            buffer += text_decoder.decode(chunk)
        else:
            buffer += chunk


def detect_error_message(stream, on_message: Optional[Callable[[Dict[str, Any]], None]] = None):
    """
    Scan a response stream for an embedded error

    Args:
        stream: Streaming response body
        on_message: Called with every message before it is checked

    Raises:
        StreamError: On the first message carrying errorDetail or error
    """
    for message in iter_json_messages(stream):
        if on_message:
            on_message(message)

        error_detail = message.get('errorDetail')
        if isinstance(error_detail, dict):
            raise StreamError(error_detail.get('message', ''), code=error_detail.get('code'))

        error_message = message.get('error')
        if error_message:
            raise StreamError(str(error_message))

        if 'status' in message:
            progress = message.get('progress')
            layer = message.get('id')
            logger.debug(' '.join(str(part) for part in (layer, message['status'], progress) if part))
