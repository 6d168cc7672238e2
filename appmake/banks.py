"""Memory-bank model built from a linker map, and banked binary generation."""

from __future__ import annotations

import os
import re
import stat
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional, TextIO, Tuple

from appmake.ihex import bin2hex
from appmake.util import AppmakeError, suffix_change

MAXBANKS = 256
_MBLINEMAX = 1024
_BANK_NUMBER = re.compile(r"_\s*([+-]?\d+)")
_ALIGNMENT = re.compile(r"_align_\s*([+-]?\d+)")
_ASSIGNMENT = re.compile(r"\s*=\s*\$\s*([+-]?(?:0[xX])?[0-9a-fA-F]+)")


@dataclass
class SectionBinary:
    """A section's binary data held in a file."""

    filename: str
    section_name: str
    org: int
    size: int
    offset: int = 0


@dataclass
class MemoryBank:
    """The sections that make up one 64k memory bank."""

    sections: List[SectionBinary] = field(default_factory=list)

    def clear(self, clean: bool) -> None:
        """Drop all sections, deleting their files when ``clean`` is true."""
        if clean:
            for section in self.sections:
                _remove_quietly(section.filename)
        self.sections.clear()


@dataclass
class BankSpace:
    """A family of independent banks identified by a substring of section names."""

    bank_id: str
    banks: List[MemoryBank] = field(
        default_factory=lambda: [MemoryBank() for _ in range(MAXBANKS)])
    org: int = 0
    size: int = 0

    def remove_bank(self, index: int, clean: bool) -> bool:
        """Empty bank ``index``; return whether it held any sections."""
        if 0 <= index < MAXBANKS and self.banks[index].sections:
            self.banks[index].clear(clean)
            return True
        return False


@dataclass
class SectionAligned:
    """A section that must start on a power-of-two boundary."""

    section_name: str
    alignment: int
    org: int = 0
    size: int = 0


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except OSError:
        pass


def _bank_number(text: str, bank_id: str) -> Optional[int]:
    pos = text.find(bank_id)
    if pos < 0:
        return None
    match = _BANK_NUMBER.match(text, pos + len(bank_id))
    return int(match.group(1)) if match else None


@dataclass
class BankedMemory:
    """The main bank plus any number of bank spaces."""

    bankspaces: List[BankSpace] = field(default_factory=list)
    mainbank: MemoryBank = field(default_factory=MemoryBank)

    def create_bankspace(self, bank_id: str) -> BankSpace:
        """Add a new, empty bank space and return it."""
        space = BankSpace(bank_id)
        self.bankspaces.append(space)
        return space

    def find_bankspace(self, name: str) -> Optional[BankSpace]:
        """Return the bank space with identifier ``name``, or None."""
        return next((bs for bs in self.bankspaces if bs.bank_id == name), None)

    def remove_bankspace(self, name: str) -> bool:
        """Remove the bank space ``name``; return whether it existed."""
        space = self.find_bankspace(name)
        if space is None:
            return False
        for bank in space.banks:
            bank.clear(False)
        self.bankspaces.remove(space)
        return True

    def _bank_for(self, section_name: str, warn: bool = False) -> MemoryBank:
        for space in self.bankspaces:
            number = _bank_number(section_name, space.bank_id)
            if number is None:
                continue
            if 0 <= number < MAXBANKS:
                return space.banks[number]
            if warn:
                sys.stderr.write(
                    f"Warning: Bank number in {section_name} is out of range\n"
                    "(will likely end up in main bank)\n")
        return self.mainbank

    def find_section(self, section_name: str) -> Optional[Tuple[MemoryBank, int]]:
        """Return the bank holding ``section_name`` and its index there, or None."""
        bank = self._bank_for(section_name)
        for index, section in enumerate(bank.sections):
            if section.section_name == section_name:
                return bank, index
        return None

    def remove_section(self, section_name: str, clean: bool) -> bool:
        """Remove a section; delete its file too when ``clean`` is true."""
        found = self.find_section(section_name)
        if found is None:
            return False
        bank, index = found
        section = bank.sections.pop(index)
        if clean:
            _remove_quietly(section.filename)
        return True

    def user_remove_bank(self, bankname: str) -> int:
        """Remove a bank space (returns 1) or a single bank like ``BANK_5`` (returns 2).

        Returns 0 when nothing was removed.
        """
        if self.remove_bankspace(bankname):
            return 1
        for space in self.bankspaces:
            number = _bank_number(bankname, space.bank_id)
            if number is not None and 0 <= number < MAXBANKS:
                return 2 if space.remove_bank(number, False) else 0
        return 0

    def sort_banks(self) -> int:
        """Sort every bank by origin and return the number of layout errors."""
        errors = sort_bank_check(self.mainbank, 0, 0)
        for space in self.bankspaces:
            for bank in space.banks:
                errors += sort_bank_check(bank, space.org, space.size)
        return errors

    def delete_source_binaries(self) -> None:
        """Delete the files of every section."""
        for section in self.mainbank.sections:
            _remove_quietly(section.filename)
        for space in self.bankspaces:
            for bank in space.banks:
                for section in bank.sections:
                    _remove_quietly(section.filename)


def _regular_file_size(path: str) -> Optional[int]:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_size if stat.S_ISREG(st.st_mode) else None


def _parse_map_line(line: str) -> Optional[Tuple[str, int]]:
    words = line.split(None, 1)
    if not words:
        return None
    symbol = words[0]
    start = line.index(symbol) + len(symbol)
    match = _ASSIGNMENT.match(line, start)
    if match is None:
        return None
    return symbol, int(match.group(1), 16)


def enumerate_banks(fmap: TextIO, binname: str, memory: BankedMemory,
                    aligned: List[SectionAligned]) -> None:
    """Read a map file and place every existing section binary into its bank.

    Sections whose names carry ``_align_N`` are recorded in ``aligned``.
    """
    for line in fmap:
        line = line[:_MBLINEMAX - 1]
        parsed = _parse_map_line(line)
        if parsed is None:
            if line.strip():
                sys.stderr.write(f"Warning: Unable to parse line from map file\n\t{line}\n")
            continue

        symbol, value = parsed
        if len(symbol) < 6 or not symbol.startswith("__"):
            continue
        if symbol.endswith("_head"):
            is_head = True
        elif symbol.endswith("_size"):
            is_head = False
        else:
            continue

        if len(symbol) == 6:
            section_name = ""
            bfilename = f"{binname}.bin"
            if _regular_file_size(bfilename) is None:
                bfilename = suffix_change(bfilename, "")
        else:
            section_name = symbol[2:-5]
            bfilename = f"{binname}_{section_name}.bin"

        if is_head:
            size = _regular_file_size(bfilename)
            if size:
                bank = memory._bank_for(section_name, warn=True)
                bank.sections.append(SectionBinary(bfilename, section_name, value, size))

        pos = section_name.find("_align_")
        match = _ALIGNMENT.match(section_name, pos) if pos >= 0 else None
        if match is None:
            continue
        entry = next((a for a in aligned if a.section_name == section_name), None)
        if entry is None:
            entry = SectionAligned(section_name, int(match.group(1)))
            aligned.append(entry)
        if is_head:
            entry.org = value
        else:
            entry.size = value

    if memory.remove_section("UNASSIGNED", False):
        print("Warning: Non-empty UNASSIGNED section ignored -\n"
              "  this indicates that some code/data is not part of the memory map")


def check_alignment(aligned: List[SectionAligned]) -> int:
    """Sort ``aligned`` by name and return how many non-empty sections are misaligned."""
    aligned.sort(key=lambda a: a.section_name)
    errors = 0
    for entry in aligned:
        if entry.size > 0 and entry.org & (entry.alignment - 1):
            errors += 1
            sys.stderr.write(
                f"Warning: Section {entry.section_name} at address "
                f"0x{entry.org:04x} is not properly aligned\n")
    return errors


def sort_bank_check(bank: MemoryBank, borg: int, bsize: int) -> int:
    """Sort a bank's sections by origin and return the number of layout errors."""
    sections = bank.sections
    sections.sort(key=lambda s: s.org)
    errors = 0
    previous: Optional[SectionBinary] = None
    for sec in sections:
        end = sec.org + sec.size - 1
        if sec.org < 0:
            errors += 1
            sys.stderr.write(f"Error: Section {sec.section_name} has negative org {sec.org}\n")
        elif sec.org < 0x10000 and sec.org + sec.size > 0x10000:
            errors += 1
            sys.stderr.write(
                f"Error: Section {sec.section_name} exceeds 64k [0x{sec.org:04x},0x{end:04x}]\n")
        elif bsize > 0 and (sec.org < borg or sec.org - borg + sec.size > bsize):
            errors += 1
            sys.stderr.write(
                f"Error: Section {sec.section_name} occupies [0x{sec.org:04x},0x{end:04x}] "
                f"which exceeds fixed bank size [0x{borg:04x},0x{borg + bsize - 1:04x}]\n")
        if previous is not None and sec.org < previous.org + previous.size:
            errors += 1
            sys.stderr.write(
                f"Error: Section {previous.section_name} overlaps section {sec.section_name} "
                f"by {previous.org + previous.size - sec.org} bytes\n")
        previous = sec
    return errors


def output_section_binary(out: BinaryIO, section: SectionBinary) -> int:
    """Copy a section's bytes to ``out``; return how many bytes could not be read."""
    try:
        fin = open(section.filename, "rb")
    except OSError as exc:
        raise AppmakeError(f"Error: Cannot read section binary {section.filename}") from exc
    with fin:
        fin.seek(section.offset)
        data = fin.read(section.size)
    out.write(data)
    return section.size - len(data)


def generate_output_binary(fbin: BinaryIO, filler: int, fhex: Optional[TextIO], ipad: bool,
                           irecsz: int, bank: MemoryBank, borg: int, bsize: int) -> None:
    """Write a bank's sections to ``fbin``, filling gaps, and optionally Intel HEX to ``fhex``."""
    fill = bytes((filler & 0xFF,))
    total = 0
    previous: Optional[SectionBinary] = None

    for sec in bank.sections:
        try:
            fin = open(sec.filename, "rb")
        except OSError as exc:
            raise AppmakeError(f"Error: Cannot read section binary {sec.filename}") from exc
        with fin:
            fin.seek(sec.offset)
            if previous is not None:
                gap = sec.org - previous.org - previous.size
            elif bsize > 0:
                gap = sec.org - borg
            else:
                gap = 0
            if gap > 0:
                fbin.write(fill * gap)
                total += gap

            data = fin.read(sec.size)
            fbin.write(data)
            total += len(data)
            if len(data) != sec.size:
                raise AppmakeError(
                    f"Error: Could not read {sec.size} bytes from offset {sec.offset} "
                    f"from file {sec.filename}")

            if fhex is not None and not ipad:
                fin.seek(sec.offset)
                bin2hex(fin, fhex, sec.org, sec.size, irecsz, False)
        previous = sec

    if total < bsize:
        fbin.write(fill * (bsize - total))

    if fhex is not None:
        if ipad:
            fbin.flush()
            fbin.seek(0)
            if bsize > 0:
                start = borg
            else:
                start = bank.sections[0].org if bank.sections else 0
            bin2hex(fbin, fhex, start, None, irecsz, True)
        else:
            fhex.write(":00000001FF\n")


def _emit_bank(filename: str, ihex: bool, filler: int, ipad: bool, irecsz: int,
               bank: MemoryBank, borg: int, bsize: int, summary: str) -> None:
    ihexname = suffix_change(filename, ".ihx")
    try:
        fbin = open(filename, "w+b")
    except OSError as exc:
        raise AppmakeError(f"Error: Cannot create file {filename}") from exc
    fhex: Optional[TextIO] = None
    try:
        if ihex:
            try:
                fhex = open(ihexname, "w")
            except OSError as exc:
                raise AppmakeError(f"Error: Cannot create file {ihexname}") from exc
        print(summary)
        try:
            generate_output_binary(fbin, filler, fhex, ipad, irecsz, bank, borg, bsize)
        except AppmakeError as exc:
            sys.stderr.write(f"{exc}\n")
            raise AppmakeError("Aborting... section unavailable") from exc
    finally:
        fbin.close()
        if fhex is not None:
            fhex.close()


def _gap_bytes(sections: List[SectionBinary]) -> int:
    return sum(cur.org - prev.org - prev.size for prev, cur in zip(sections, sections[1:]))


def generate_output_binary_complete(binname: str, ihex: bool, filler: int, ipad: bool,
                                    irecsz: int, memory: BankedMemory) -> None:
    """Write one output binary (and optional .ihx) per non-empty bank."""
    main = memory.mainbank.sections
    if main:
        filename = f"{binname}__.bin"
        summary = f"Creating {filename} (org 0x{main[0].org:04x}"
        free_gap = _gap_bytes(main)
        if free_gap:
            summary += f", {free_gap} gap bytes free"
        summary += ")"
        _emit_bank(filename, ihex, filler, ipad, irecsz, memory.mainbank, 0, 0, summary)

    for space in memory.bankspaces:
        for number, bank in enumerate(space.banks):
            sections = bank.sections
            if not sections:
                continue
            filename = f"{binname}__{space.bank_id}_{number:03d}.bin"
            free_gap = _gap_bytes(sections)
            free_head = free_tail = 0
            if space.size > 0:
                free_head = sections[0].org - space.org
                free_tail = space.org + space.size - sections[-1].org - sections[-1].size
            org = space.org if space.size > 0 else sections[0].org
            summary = f"Creating {filename} (org 0x{org:04x}"
            if free_head:
                summary += f", {free_head} head bytes free"
            if free_gap:
                summary += f", {free_gap} gap bytes free"
            if free_tail:
                summary += f", {free_tail} tail bytes free"
            summary += ")"
            _emit_bank(filename, ihex, filler, ipad, irecsz, bank,
                       space.org, space.size, summary)