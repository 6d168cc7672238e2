"""Locating linker output: symbol lookups, temporary files and binary assembly."""

from __future__ import annotations

import os
import re
import subprocess
import sys
import tempfile
from typing import BinaryIO, Iterator, TextIO

from appmake.util import EXEC_PREFIX, LINEMAX, AppmakeError, suffix_change

_LEADING_WORDS = re.compile(r"\s*\S+\s+\S+")
_HEX_VALUE = re.compile(r"[ $]+\s*([+-]?(?:0[xX])?[0-9a-fA-F]+)")


class TempFiles:
    """Hands out temporary file names and removes the files on cleanup."""

    def __init__(self) -> None:
        self.paths: list[str] = []

    def new(self) -> str:
        """Create an empty temporary file and return its name."""
        fd, path = tempfile.mkstemp(prefix="appmakechain")
        os.close(fd)
        self.paths.append(path)
        return path

    def cleanup(self) -> None:
        """Remove every temporary file handed out so far."""
        for path in self.paths:
            try:
                os.remove(path)
            except OSError:
                pass
        self.paths.clear()

    def __enter__(self) -> "TempFiles":
        return self

    def __exit__(self, *args: object) -> None:
        self.cleanup()


def _line_pieces(fp: TextIO, size: int) -> Iterator[str]:
    """Yield lines split into pieces of at most ``size`` characters."""
    for line in fp:
        for start in range(0, len(line), size):
            yield line[start:start + size]


def _scan_value(line: str) -> int | None:
    words = _LEADING_WORDS.match(line)
    if words is None:
        return None
    value = _HEX_VALUE.match(line, words.end())
    if value is None:
        return None
    return int(value.group(1), 16)


def parameter_search(filen: str | None, ext: str, target: str) -> int:
    """Find ``target`` in the symbol or map file ``filen + ext`` and return its value.

    Returns -1 when the file is missing, the symbol is absent or its value
    cannot be read.
    """
    if filen is None:
        return -1
    try:
        fp = open(filen + ext, "r", encoding="latin-1", newline="")
    except OSError:
        return -1
    with fp:
        for piece in _line_pieces(fp, LINEMAX - 1):
            if (piece.startswith(target) and len(piece) > len(target)
                    and piece[len(target)].isspace()):
                value = _scan_value(piece)
                return -1 if value is None else value
    return -1


def get_org_addr(crtfile: str | None) -> int:
    """Return the code origin recorded for ``crtfile``, or -1."""
    for ext, symbol in ((".sym", "__crt_org_code"), (".sym", "CRT_ORG_CODE"),
                        (".map", "__crt_org_code"), (".map", "CRT_ORG_CODE")):
        pos = parameter_search(crtfile, ext, symbol)
        if pos != -1:
            return pos
    return -1


def _warn_alignment(crtfile: str | None) -> None:
    alignment = 0x100
    while alignment >= 2:
        for kind in ("data", "bss"):
            size_name = f"__{kind}_align_{alignment}_size"
            if parameter_search(crtfile, ".map", size_name) > 0:
                head_name = f"__{kind}_align_{alignment}_head"
                start = parameter_search(crtfile, ".map", head_name)
                if start & (alignment - 1):
                    sys.stderr.write(
                        f"Warning: SECTION {head_name} is not aligned with start "
                        f"address {start & 0xFFFFFFFF:#x}\n")
        alignment >>= 1


def _mtime_and_size(path: str) -> tuple[float, int]:
    try:
        st = os.stat(path)
    except OSError:
        return 0.0, 0
    return st.st_mtime, st.st_size


def _open_or_fail(path: str, message: str) -> BinaryIO:
    try:
        return open(path, "rb")
    except OSError as exc:
        raise AppmakeError(message) from exc


def open_binary(fname: str, crtfile: str | None, tempfiles: TempFiles) -> BinaryIO | None:
    """Open the linked program ``fname``, assembling it from its sections if needed.

    Returns None for an empty name. The returned file is positioned at its start.
    """
    if not fname:
        return None

    _warn_alignment(crtfile)

    name = suffix_change(fname, "_CODE.bin")
    if not os.path.exists(name):
        name = suffix_change(fname, "_COMMON0.bin")

    main_mtime, main_size = _mtime_and_size(fname)

    if not os.path.exists(name) or os.stat(name).st_mtime < main_mtime:
        fcode = _open_or_fail(fname, f"ERROR: File {fname} not found")
        if not (os.path.exists(suffix_change(fname, "_DATA.bin"))
                or os.path.exists(suffix_change(fname, "_HIMEM.bin"))):
            return fcode
    else:
        if main_size > 0:
            sys.stderr.write("WARNING: some code or data may not be assigned to sections.\n")
        fcode = _open_or_fail(name, f"ERROR: File {name} not found")

    crt_model = 0
    if crtfile is not None:
        found = parameter_search(crtfile, ".map", "__crt_model")
        if found != -1:
            crt_model = found

    try:
        complete = open(tempfiles.new(), "w+b")
    except OSError as exc:
        fcode.close()
        raise AppmakeError("ERROR: Unable to create temporary file in fopen_bin()") from exc

    with fcode:
        complete.write(fcode.read())

    data_name = suffix_change(fname, "_DATA.bin")
    data_path: str | None = None
    if crt_model == 1:
        data_path = data_name
        if not os.path.exists(data_path):
            complete.close()
            raise AppmakeError(f"ERROR: File {data_name} not found for a rom model compile")
    elif crt_model == 2:
        packed = tempfiles.new()
        try:
            result = subprocess.run([f"{EXEC_PREFIX}zx7", "-f", data_name, packed])
            failed = result.returncode != 0
        except OSError:
            failed = True
        if failed:
            complete.close()
            raise AppmakeError(f"ERROR: Unable to compress {data_name}")
        data_path = packed

    if data_path is not None:
        try:
            with open(data_path, "rb") as fdata:
                complete.write(fdata.read())
        except OSError as exc:
            complete.close()
            raise AppmakeError(
                f"ERROR: Unable to open compressed data file {data_path}") from exc

    try:
        with open(suffix_change(fname, "_HIMEM.bin"), "rb") as fhimem:
            complete.write(fhimem.read())
    except OSError:
        pass

    complete.seek(0)
    return complete