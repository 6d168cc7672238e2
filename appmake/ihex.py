"""Intel HEX record generation."""

from __future__ import annotations

from typing import BinaryIO, TextIO


def record_checksum(data: bytes) -> int:
    """Two's-complement checksum of an Intel HEX record body."""
    total = sum(data) & 0xFF
    return 0x100 - total if total else 0


def _write_record(output: TextIO, body: bytes) -> None:
    line = body + bytes((record_checksum(body),))
    output.write(":" + line.hex().upper() + "\n")


def bin2hex(
    source: BinaryIO,
    output: TextIO,
    address: int,
    length: int | None,
    recsize: int,
    eofrec: bool,
) -> None:
    """Write up to ``length`` bytes of ``source`` as Intel HEX records.

    ``length`` of None or a negative value means read to the end of the
    source. When ``eofrec`` is false no end-of-file record is written.
    """
    if length == 0:
        return
    remaining = None if length is None or length < 0 else length

    if recsize < 1:
        recsize = 16
    elif recsize > 255:
        recsize = 255

    while True:
        want = recsize if remaining is None else min(recsize, remaining)
        chunk = source.read(want) if want else b""
        if remaining is not None:
            remaining -= len(chunk)

        if not chunk:
            if eofrec:
                _write_record(output, bytes((0, 0, 0, 1)))
            return

        header = bytes((len(chunk), (address >> 8) & 0xFF, address & 0xFF, 0))
        _write_record(output, header + chunk)
        address += len(chunk)