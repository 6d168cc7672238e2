"""Command-line option tables, parsing and help formatting."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntFlag
from typing import Any, MutableMapping, Sequence

from appmake.util import AppmakeError

_BASE_MASK = 127
_STRTOL = re.compile(r"\s*([+-]?)(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")


class OptionType(IntFlag):
    """Kind of value an option takes, optionally tagged as the input or output file."""

    NONE = 0
    BOOL = 1
    INT = 2
    STR = 3
    INPUT = 128
    OUTPUT = 256

    @property
    def base(self) -> int:
        """The value kind with the input/output tags removed."""
        return int(self) & _BASE_MASK


@dataclass(frozen=True)
class Option:
    """One entry of a target's option table."""

    sopt: str | None
    lopt: str | None
    desc: str
    type: OptionType
    dest: str


def _strtol(text: str) -> int:
    """Parse a leading integer the way C's strtol with base 0 does; 0 if none."""
    match = _STRTOL.match(text)
    if match is None:
        return 0
    sign, digits = match.groups()
    if digits[:2].lower() == "0x":
        value = int(digits[2:], 16)
    elif digits.startswith("0"):
        value = int(digits, 8)
    else:
        value = int(digits)
    if sign == "-":
        value = -value
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value & 0x80000000 else value


def _option_set(pos: int, argv: Sequence[str | None], option: Option,
                values: MutableMapping[str, Any]) -> int:
    """Store the value of ``option`` found at ``argv[pos]``; return the last index used."""
    arg = argv[pos]
    param: str | None = None
    ret = pos
    if arg is not None and "=" in arg:
        param = arg.split("=", 1)[1]
    elif pos + 1 < len(argv):
        param = argv[pos + 1]
        ret = pos + 1

    base = option.type.base
    if base == OptionType.BOOL:
        values[option.dest] = True
        ret = pos
    elif base == OptionType.INT:
        if param is not None:
            values[option.dest] = _strtol(param)
    elif base == OptionType.STR:
        if param is not None:
            values[option.dest] = param
    else:
        ret = pos
    return ret


def _matches(arg: str, option: Option) -> bool:
    if option.sopt and len(arg) == 2 and arg[1] == option.sopt:
        return True
    if option.lopt and arg.startswith("--"):
        body = arg[2:]
        if "=" in body:
            return body.startswith(option.lopt)
        return body == option.lopt
    return False


def parse_options(
    argv: Sequence[str],
    options: Sequence[Option],
    values: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Fill ``values`` from ``argv`` using the option table; unknown arguments are ignored."""
    i = 0
    while i < len(argv):
        arg = argv[i]
        if len(arg) > 1 and arg.startswith("-"):
            option = next((opt for opt in options if _matches(arg, opt)), None)
            if option is not None:
                i = _option_set(i, argv, option, values)
        i += 1
    return values


def set_option_by_type(
    options: Sequence[Option],
    values: MutableMapping[str, Any],
    option_type: OptionType,
    value: str,
) -> None:
    """Set the first option whose type is exactly ``option_type`` to ``value``."""
    for option in options:
        if option.type == option_type:
            _option_set(0, [None, value], option, values)
            return
    kind = "input" if option_type & OptionType.INPUT else "output"
    raise AppmakeError(f"Cannot set option of type {kind} for chained command")


_KIND_LABELS = {
    OptionType.BOOL: "(bool)   ",
    OptionType.INT: "(integer)",
    OptionType.STR: "(string) ",
}


def format_options(
    execname: str,
    ident: str,
    copyright: str,
    desc: str | None,
    longdesc: str | None,
    options: Sequence[Option],
) -> str:
    """Return the help text for a target and its option table."""
    parts = [f"appmake +{ident} ({execname})\n\n{copyright}\n"]
    if desc:
        parts.append(f"\n{desc}\n")
    if longdesc:
        parts.append(f"\n{longdesc}")
    parts.append("\nOptions:\n\n")
    for option in options:
        if option.type == OptionType.NONE:
            break
        optstr = f"-{option.sopt}" if option.sopt else "  "
        label = _KIND_LABELS.get(OptionType(option.type.base))
        if label is None:
            continue
        parts.append(f"{optstr}   --{str(option.lopt):<15} {label} {option.desc}\n")
    return "".join(parts)