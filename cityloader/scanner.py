"""
Incremental reader for JSON arrays of objects.

Only one object's worth of text is buffered at a time, so a multi-gigabyte
processed cities file can be walked with constant memory. Object boundaries
are found with a small state machine; string contents are never inspected
for structure, so braces and escaped quotes inside values are harmless.
"""
from __future__ import annotations
import asyncio
import codecs
import json
import re
from enum import Enum
from pathlib import Path
from typing import IO, AsyncIterable, AsyncIterator, Iterator, List, Union

CHUNK_SIZE = 64 * 1024

# next character that can change state, per state
_OBJECT_SPECIALS = re.compile(r'[{}"]')
_STRING_SPECIALS = re.compile(r'["\\]')


class ScanState(Enum):
    IDLE = "idle"              # between objects
    IN_OBJECT = "in_object"    # collecting, outside any string
    IN_STRING = "in_string"    # collecting, inside a string literal
    ESCAPE = "escape"          # collecting, character after a backslash


class ArrayScanner:
    """
    Push-style state machine: `feed()` text chunks, get back the objects
    completed by that chunk.

    Transitions:
        IDLE       --{-->  IN_OBJECT (depth = 1)
        IN_OBJECT  --"-->  IN_STRING
        IN_OBJECT  --{-->  IN_OBJECT (depth + 1)
        IN_OBJECT  --}-->  IN_OBJECT (depth - 1) or IDLE + emit at depth 0
        IN_STRING  --\\->  ESCAPE
        IN_STRING  --"-->  IN_OBJECT
        ESCAPE     --*-->  IN_STRING

    Anything seen while IDLE (brackets, commas, whitespace, junk) is ignored.
    A balanced object that fails to parse is counted in `malformed` and
    dropped.
    """

    def __init__(self):
        self.state = ScanState.IDLE
        self.depth = 0
        self.emitted = 0
        self.malformed = 0
        self._parts: List[str] = []

    @property
    def pending(self) -> str:
        """Text of the object collected so far (empty when idle)"""
        return "".join(self._parts)

    def reset(self):
        self.state = ScanState.IDLE
        self.depth = 0
        self._parts = []

    def feed(self, chunk: str) -> List[dict]:
        out: List[dict] = []
        i, n = 0, len(chunk)
        start = 0  # start of the slice of `chunk` not yet copied to the buffer

        while i < n:
            state = self.state

            if state is ScanState.IDLE:
                j = chunk.find("{", i)
                if j < 0:
                    break
                self.state = ScanState.IN_OBJECT
                self.depth = 1
                self._parts = []
                start = j
                i = j + 1

            elif state is ScanState.IN_OBJECT:
                m = _OBJECT_SPECIALS.search(chunk, i)
                if m is None:
                    i = n
                    break
                j = m.start()
                ch = chunk[j]
                i = j + 1
                if ch == '"':
                    self.state = ScanState.IN_STRING
                elif ch == "{":
                    self.depth += 1
                else:
                    self.depth -= 1
                    if self.depth == 0:
                        self._parts.append(chunk[start:i])
                        obj = self._parse()
                        if obj is not None:
                            out.append(obj)
                        self.reset()

            elif state is ScanState.IN_STRING:
                m = _STRING_SPECIALS.search(chunk, i)
                if m is None:
                    i = n
                    break
                j = m.start()
                i = j + 1
                self.state = ScanState.ESCAPE if chunk[j] == "\\" else ScanState.IN_OBJECT

            else:  # ESCAPE: consume exactly one character
                i += 1
                self.state = ScanState.IN_STRING

        if self.state is not ScanState.IDLE and start < n:
            self._parts.append(chunk[start:])
        return out

    def _parse(self):
        text = "".join(self._parts)
        try:
            obj = json.loads(text)
        except json.JSONDecodeError:
            self.malformed += 1
            return None
        self.emitted += 1
        return obj


def _decode(chunk: Union[str, bytes], decoder) -> str:
    if isinstance(chunk, bytes):
        return decoder.decode(chunk)
    return chunk


def iter_json_array(stream: IO, chunk_size: int = CHUNK_SIZE) -> Iterator[dict]:
    """
    Lazily yield the objects of a JSON array read from a text or binary
    file object. An unterminated trailing object is dropped.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    scanner = ArrayScanner()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield from scanner.feed(_decode(chunk, decoder))
    yield from scanner.feed(decoder.decode(b"", final=True))


async def aiter_json_array(chunks: AsyncIterable[Union[str, bytes]]) -> AsyncIterator[dict]:
    """Async variant: pulls the next chunk only after the current one is scanned"""
    decoder = codecs.getincrementaldecoder("utf-8")()
    scanner = ArrayScanner()
    async for chunk in chunks:
        for obj in scanner.feed(_decode(chunk, decoder)):
            yield obj
    for obj in scanner.feed(decoder.decode(b"", final=True)):
        yield obj


class JsonArrayFile:
    """
    Re-iterable view of a processed JSON array file, usable with `for` and
    `async for`. Every iteration opens the file again and scans from the
    first byte.
    """

    def __init__(self, path: Union[str, Path], chunk_size: int = CHUNK_SIZE):
        self.path = Path(path)
        self.chunk_size = chunk_size

    def __iter__(self) -> Iterator[dict]:
        with open(self.path, "rb") as fh:
            yield from iter_json_array(fh, self.chunk_size)

    async def __aiter__(self) -> AsyncIterator[dict]:
        async for obj in aiter_json_array(self._read_chunks()):
            yield obj

    async def _read_chunks(self) -> AsyncIterator[bytes]:
        # file reads run in the default executor, the event loop only scans
        loop = asyncio.get_running_loop()
        with open(self.path, "rb") as fh:
            while True:
                chunk = await loop.run_in_executor(None, fh.read, self.chunk_size)
                if not chunk:
                    break
                yield chunk

    def count(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self):
        return f"JsonArrayFile({self.path})"


def count_json_array(path: Union[str, Path]) -> int:
    return JsonArrayFile(path).count()
