""" Splitting of the raw event stream text into complete SSE messages """
from __future__ import annotations
import json
import logging
from collections.abc import Iterator

_LOGGER = logging.getLogger(__name__)

DELIMITER = "\n\n"
DATA_PREFIX = "data:"


class SseFramer():
    """ Accumulates stream fragments and yields complete messages

    Messages are separated by a blank line. Senders that never use the blank line framing
    send every message as a fragment holding a single "data:" line with a JSON object. Such
    a fragment is held until the next fragment shows it is not continued: a fragment that
    starts with "data:" releases it as a message of its own, anything else is appended to it.
    A line held when the stream ends is released by flush().
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._held = False

    @property
    def pending(self) -> int:
        """ The number of buffered characters that were not yielded yet """
        return len(self._buffer)

    def clear(self) -> None:
        """ Drop any buffered text, used when a new connection starts """
        self._buffer = ""
        self._held = False

    def feed(self, chunk:str) -> Iterator[str]:
        """ Append a fragment and yield every message it completes, in order """
        if not chunk:
            return

        if self._held:
            self._held = False
            if chunk.startswith(DATA_PREFIX):
                message, self._buffer = self._buffer, ""
                yield message

        if not self._buffer and self._is_data_line(chunk):
            self._buffer = chunk
            self._held = True
            return

        self._buffer += chunk
        while DELIMITER in self._buffer:
            message, self._buffer = self._buffer.split(DELIMITER, 1)
            message = message.strip("\n")
            if message:
                yield message

    def flush(self) -> Iterator[str]:
        """ Yield the held single data line, used when the stream ends """
        if self._held:
            self._held = False
            message, self._buffer = self._buffer, ""
            _LOGGER.debug("Releasing unframed data line at the end of the stream")
            yield message

    @staticmethod
    def _is_data_line(chunk:str) -> bool:
        """ Check for a fragment that is exactly one data line with a complete JSON object """
        if "\n" in chunk or not chunk.startswith(DATA_PREFIX):
            return False
        payload = chunk[len(DATA_PREFIX):].strip()
        if not payload.startswith("{"):
            return False
        try:
            return isinstance(json.loads(payload), dict)
        except ValueError:
            return False
