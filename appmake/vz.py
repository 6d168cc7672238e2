"""Laser 200/300 and Laser 350/500/700 tape image (.cas) and WAV generation."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, BinaryIO, Mapping

from appmake.audio import raw2wav
from appmake.binfile import TempFiles, open_binary
from appmake.options import Option, OptionType
from appmake.util import AppmakeError, ByteWriter, ChecksumWriter, suffix_change

VZ_OPTIONS = (
    Option("h", "help", "Display this help", OptionType.BOOL, "help"),
    Option("b", "binfile", "Linked binary file", OptionType.STR, "binfile"),
    Option("c", "crt0file", "crt0 file used in linking", OptionType.STR, "crt0file"),
    Option("o", "output", "Name of output file", OptionType.STR, "output"),
    Option(None, "audio", "Create also a WAV file", OptionType.BOOL, "audio"),
    Option(None, "fast", "Create a fast loading WAV", OptionType.BOOL, "fast"),
    Option(None, "blockname", "Name of the code block", OptionType.STR, "blockname"),
)

LASER500_OPTIONS = (
    Option("h", "help", "Display this help", OptionType.BOOL, "help"),
    Option("b", "binfile", "Linked binary file", OptionType.STR, "binfile"),
    Option("t", "tokbasic", "Tokenized basic file", OptionType.BOOL, "tokbasic"),
    Option("c", "crt0file", "crt0 file used in linking", OptionType.STR, "crt0file"),
    Option("o", "output", "Name of output file", OptionType.STR, "output"),
    Option(None, "fast", "Create a fast loading WAV", OptionType.BOOL, "fast"),
    Option(None, "audio", "Create also a WAV file", OptionType.BOOL, "audio"),
    Option(None, "nogap", "Remove gap after filename", OptionType.BOOL, "nogap"),
    Option(None, "freq3600", "Change from 44,1KHz to 3600Hz", OptionType.BOOL, "freq3600"),
)

_PREAMBLE = b"\x80" * 128
_LEADIN = b"\xfe" * 5
_LASER500_HEADER2 = b"\x00" + b"\x80" * 10 + b"\xff"
_LASER500_START = 0x89A3 - 14
_NAME_MAX = 17
_GAP = 159
_TRAILER_BYTES = 11


def _click(click: int) -> bytes:
    return b"\xff" * click + b"\x00" * click


def _pulse_lengths(fast: bool, freq3600: bool) -> tuple[int, int]:
    if freq3600:
        return 1, 2
    return (11, 23) if fast else (12, 25)


@lru_cache(maxsize=None)
def _bit_wave(bit: bool, fast: bool, freq3600: bool) -> bytes:
    bip, bop = _pulse_lengths(fast, freq3600)
    if bit:
        return _click(bip) * 3
    return _click(bip) + _click(bop)


@lru_cache(maxsize=None)
def _byte_wave(value: int, fast: bool, freq3600: bool) -> bytes:
    return b"".join(_bit_wave(bool(value & (1 << shift)), fast, freq3600)
                    for shift in range(7, -1, -1))


def vz_click(out: BinaryIO, click: int) -> None:
    """Write ``click`` high samples followed by ``click`` low samples."""
    out.write(_click(click))


def vz_bit(out: BinaryIO, bit: int, fast: bool = False, freq3600: bool = False) -> None:
    """Write the pulses for one bit: three short clicks for 1, short and long for 0."""
    out.write(_bit_wave(bool(bit), bool(fast), bool(freq3600)))


def vz_rawout(out: BinaryIO, value: int, fast: bool = False, freq3600: bool = False) -> None:
    """Write the eight bits of ``value``, most significant first."""
    out.write(_byte_wave(value & 0xFF, bool(fast), bool(freq3600)))


def _write_audio(filename: str, name_len: int, nogap: bool, fast: bool, freq3600: bool) -> str:
    try:
        with open(filename, "rb") as fpin:
            cas = fpin.read()
    except OSError as exc:
        raise AppmakeError(f"Can't open file {filename} for wave conversion") from exc

    wavfile = suffix_change(filename, ".RAW")
    # preamble + leadin + type + name + string termination
    hdlen = len(_PREAMBLE) + len(_LEADIN) + 1 + name_len + 1
    try:
        fpout = open(wavfile, "wb")
    except OSError as exc:
        raise AppmakeError(f"Can't open output raw audio file {wavfile}") from exc
    with fpout:
        for value in cas[:hdlen]:
            vz_rawout(fpout, value, fast, freq3600)
        if not nogap:
            fpout.write(b"\x00" * _GAP)
        for value in cas[hdlen:]:
            vz_rawout(fpout, value, fast, freq3600)
        for _ in range(_TRAILER_BYTES):
            vz_rawout(fpout, 0, fast, freq3600)

    return raw2wav(wavfile, freq3600)


def create_file(values: Mapping[str, Any], laser500: bool, tempfiles: TempFiles) -> bool:
    """Build the .cas image (and optional WAV) described by ``values``.

    Returns False when help was requested or no binary was given, so the
    caller can show the option summary.
    """
    if values.get("help"):
        return False
    binname = values.get("binfile")
    if binname is None:
        return False

    outfile = values.get("output")
    filename = outfile if outfile is not None else suffix_change(binname, ".cas")
    blockname = values.get("blockname")
    if blockname is None:
        blockname = binname
    fast = bool(values.get("fast"))
    freq3600 = bool(values.get("freq3600"))

    fpin = open_binary(binname, values.get("crt0file"), tempfiles)
    if fpin is None:
        raise AppmakeError(f"Can't open input file {binname}")
    with fpin:
        content = fpin.read()

    if laser500:
        length = len(content)
        payload = content
        file_type = 0xF0 if values.get("tokbasic") else 0xF1
        startaddr = _LASER500_START
    else:
        # Skip the VZ magic and file name; the header ends with type and start address.
        length = len(content) - 24
        tail = content[21:]

        def at(index: int) -> int:
            return tail[index] if index < len(tail) else -1

        file_type = at(0)
        startaddr = (at(1) + 256 * at(2)) & 0xFFFF
        wanted = max(length, 0)
        payload = tail[3:3 + wanted]
        payload += b"\xff" * (wanted - len(payload))
    endaddr = (startaddr + length) & 0xFFFF

    name = blockname.encode("latin-1", "replace")[:_NAME_MAX].upper()

    try:
        fpout = open(filename, "wb")
    except OSError as exc:
        raise AppmakeError("Can't open output file") from exc
    with fpout:
        fpout.write(_PREAMBLE + _LEADIN)
        writer = ByteWriter(fpout)
        writer.byte(file_type)
        writer.string(name + b"\0")
        if laser500:
            fpout.write(_LASER500_HEADER2)
        summed = ChecksumWriter(fpout)
        summed.word(startaddr)
        summed.word(endaddr)
        summed.string(payload)
        writer.word(summed.checksum % 65536)

    if values.get("audio"):
        _write_audio(filename, len(name), bool(values.get("nogap")), fast, freq3600)

    return True


def vz_exec(values: Mapping[str, Any], tempfiles: TempFiles) -> bool:
    """Convert a Laser 200/300 .vz file to .cas."""
    return create_file(values, False, tempfiles)


def laser500_exec(values: Mapping[str, Any], tempfiles: TempFiles) -> bool:
    """Convert a Laser 350/500/700 binary to .cas."""
    return create_file(values, True, tempfiles)