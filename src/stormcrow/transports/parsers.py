"""Parser that splits an incoming byte stream into newline-delimited
messages.
"""

from typing import List, Optional, Tuple

__all__ = ("LineParser",)


class LineParser:
    """Parser class that assumes that the individual messages in the incoming
    stream are separated by newline characters (``\\r`` or ``\\n``).

    Attributes:
        max_length: maximum length of a single message; longer messages are
            dropped
    """

    def __init__(self, max_length: Optional[int] = 65536):
        self.max_length = max_length
        self._chunks: List[bytes] = []
        self._length = 0
        self._overflow = False
        self._trans = bytes.maketrans(b"\r", b"\n")

    def feed(self, data: bytes) -> List[bytes]:
        """Feeds the parser with the given raw incoming bytes.

        Returns:
            the list of complete, non-empty messages found in the current
            chunk and the remainder of earlier chunks
        """
        result = []
        while data:
            prefix, sep, data = self._split(data)
            if prefix:
                self._append(prefix)
            if sep:
                if not self._overflow:
                    message = b"".join(self._chunks).strip()
                    if message:
                        result.append(message)
                self._reset()
        return result

    def _append(self, chunk: bytes) -> None:
        self._length += len(chunk)
        if self.max_length is not None and self._length > self.max_length:
            self._overflow = True
            del self._chunks[:]
        elif not self._overflow:
            self._chunks.append(chunk)

    def _reset(self) -> None:
        del self._chunks[:]
        self._length = 0
        self._overflow = False

    def _split(self, data: bytes) -> Tuple[bytes, bytes, bytes]:
        """Splits an incoming chunk of data into a prefix, a separator and a
        suffix such that the concatenation of the three parts is always the
        entire data (modulo line endings).
        """
        return bytes.translate(data, self._trans).partition(b"\n")
