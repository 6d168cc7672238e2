"""Shared helpers: file-name suffixes, BCD, hex digits and little-endian byte writers."""

from __future__ import annotations

from typing import BinaryIO

VERSION = "13913-9abd768-20190119"
EXEC_PREFIX = ""
LINEMAX = 80


class AppmakeError(Exception):
    """Raised when an application-generation step cannot go on."""

    def __init__(self, message: str, code: int = 1) -> None:
        super().__init__(message)
        self.code = code


def _strip_suffix(name: str, delimiter: str) -> str:
    """Drop the trailing suffix started by ``delimiter``, if the last separator is one."""
    separators = delimiter + "/\\"
    last = max(name.rfind(ch) for ch in separators)
    if last >= 0 and name[last] == delimiter:
        return name[:last]
    return name


def suffix_change(name: str, suffix: str) -> str:
    """Replace the extension of ``name`` (if any) with ``suffix``."""
    return _strip_suffix(name, ".") + suffix


def any_suffix_change(name: str, suffix: str, delimiter: str) -> str:
    """Like :func:`suffix_change` but the suffix starts at ``delimiter``."""
    return _strip_suffix(name, delimiter) + suffix


def num2bcd(num: int) -> int:
    """Convert the low eight decimal digits of ``num`` to packed BCD."""
    num &= 0xFFFFFFFF
    bcd = 0
    for shift in range(0, 32, 8):
        pair = num % 100
        bcd += ((pair // 10) * 16 + pair % 10) << shift
        num //= 100
    return bcd & 0xFFFFFFFF


def hexdigit(digit: str) -> int:
    """Return the value of a single hexadecimal digit."""
    if len(digit) == 1 and digit in "0123456789abcdefABCDEF":
        return int(digit, 16)
    raise AppmakeError("Error in patch string")


class ByteWriter:
    """Writes bytes, little-endian words and longs, and strings to a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream

    def byte(self, value: int) -> None:
        self.stream.write(bytes((value & 0xFF,)))

    def word(self, value: int) -> None:
        self.byte(value & 0xFF)
        self.byte((value >> 8) & 0xFF)

    def long(self, value: int) -> None:
        self.word(value & 0xFFFF)
        self.word((value >> 16) & 0xFFFF)

    def string(self, text: str | bytes) -> None:
        data = text if isinstance(text, (bytes, bytearray)) else [ord(ch) for ch in text]
        for value in data:
            self.byte(value)


class XorParityWriter(ByteWriter):
    """Byte writer that keeps an XOR parity of everything written."""

    def __init__(self, stream: BinaryIO, parity: int = 0) -> None:
        super().__init__(stream)
        self.parity = parity & 0xFF

    def byte(self, value: int) -> None:
        value &= 0xFF
        super().byte(value)
        self.parity ^= value


class KansasParityWriter(ByteWriter):
    """Byte writer that keeps a Kansas City style running parity."""

    def __init__(self, stream: BinaryIO, parity: int = 0) -> None:
        super().__init__(stream)
        self.parity = parity & 0xFF

    def byte(self, value: int) -> None:
        value &= 0xFF
        super().byte(value)
        self.parity = 0xFF ^ ((value - self.parity) & 0xFF)


class ChecksumWriter(ByteWriter):
    """Byte writer that keeps the plain sum of everything written."""

    def __init__(self, stream: BinaryIO, checksum: int = 0) -> None:
        super().__init__(stream)
        self.checksum = checksum

    def byte(self, value: int) -> None:
        value &= 0xFF
        super().byte(value)
        self.checksum += value