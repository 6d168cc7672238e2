"""Raw audio helpers: WAV wrapping and ZX-style pulse generation."""

from __future__ import annotations

import os
from typing import BinaryIO

from appmake.util import AppmakeError, ByteWriter, suffix_change

_LOW = b"\x20"
_HIGH = b"\xe0"


def raw2wav(path: str, freq3600: bool = False) -> str:
    """Wrap the raw 8-bit mono sample file ``path`` in a WAV header.

    The result is written next to it with a ``.wav`` suffix, the raw file is
    removed, and the WAV file name is returned.
    """
    try:
        with open(path, "rb") as raw:
            data = raw.read()
    except OSError as exc:
        raise AppmakeError(f"Can't open file {path} for wave conversion") from exc

    wavfile = suffix_change(path, ".wav")
    rate = 3600 if freq3600 else 44100
    try:
        with open(wavfile, "wb") as out:
            writer = ByteWriter(out)
            writer.string("RIFF")
            writer.long(len(data) + 63)
            writer.string("WAVEfmt ")
            writer.long(0x10)
            writer.word(1)
            writer.word(1)
            writer.long(rate)
            writer.long(rate)
            writer.word(1)
            writer.word(8)
            writer.string("data")
            writer.long(len(data))
            out.write(_LOW * 63)
            out.write(data)
    except OSError as exc:
        raise AppmakeError(f"Can't open output raw audio file {wavfile}") from exc

    if os.path.abspath(wavfile) != os.path.abspath(path):
        os.remove(path)
    return wavfile


def zx_rawbit(out: BinaryIO, period: int) -> None:
    """Write one square-wave cycle of ``period`` low then ``period`` high samples."""
    out.write(_LOW * period + _HIGH * period)


def zx_pilot(pilot_len: int, out: BinaryIO) -> None:
    """Write a short gap, ``pilot_len`` pilot cycles and the sync pulse."""
    out.write(b"\x80" * 200)
    out.write((_LOW * 27 + _HIGH * 27) * pilot_len)
    zx_rawbit(out, 8)


def zx_rawout(out: BinaryIO, value: int, fast: bool) -> None:
    """Write the eight bits of ``value``, most significant first, as pulses."""
    for shift in range(7, -1, -1):
        if value & (1 << shift):
            period = 19 if fast else 22
        else:
            period = 9 if fast else 11
        zx_rawbit(out, period)