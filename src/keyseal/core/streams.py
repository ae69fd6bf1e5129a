""" Utilities for pulling plaintext out of lazy byte sources. """

import io
from typing import Iterator

from .models import CHUNK_SIZE


def _as_bytes(chunk) -> bytes:
    if isinstance(chunk, str):
        return chunk.encode("utf-8")
    if isinstance(chunk, (bytes, bytearray, memoryview)):
        return bytes(chunk)
    raise TypeError(f"expected bytes or str chunks, got {type(chunk).__name__}")


def iter_chunks(source, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """
    Yield the bytes of ``source`` in pieces of at most ``chunk_size``.

    Accepted sources:
    - bytes / bytearray / memoryview / str (str is UTF-8 encoded)
    - binary or text file objects (anything with ``read``)
    - objects exposing ``write_to(stream)``, e.g. an Envelope or a mail writer
    - iterables of bytes or str chunks

    Nothing is read until the iterator is consumed.
    """
    if isinstance(source, (bytes, bytearray, memoryview, str)):
        data = _as_bytes(source)
        for start in range(0, len(data), chunk_size):
            yield data[start:start + chunk_size]
        return

    if hasattr(source, "read"):
        while True:
            data = source.read(chunk_size)
            if not data:
                break
            yield _as_bytes(data)
        return

    if hasattr(source, "write_to"):
        buf = io.BytesIO()
        source.write_to(buf)
        yield from iter_chunks(buf.getvalue(), chunk_size)
        return

    try:
        chunks = iter(source)
    except TypeError:
        raise TypeError(f"unsupported plaintext source: {type(source).__name__}") from None
    for chunk in chunks:
        chunk = _as_bytes(chunk)
        if chunk:
            yield chunk


def read_all(source, chunk_size: int = CHUNK_SIZE) -> bytes:
    """Drain ``source`` completely into one bytes object."""
    return b"".join(iter_chunks(source, chunk_size))
