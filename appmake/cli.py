"""Command-line driver: target table, chained execution and usage text."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

from appmake.binfile import TempFiles
from appmake.options import (Option, OptionType, format_options, parse_options,
                             set_option_by_type)
from appmake.util import VERSION, AppmakeError
from appmake.vz import LASER500_OPTIONS, laser500_exec


@dataclass(frozen=True)
class Machine:
    """A target the generator can produce files for."""

    execname: str
    ident: str
    banner: str
    desc: Optional[str]
    longdesc: Optional[str]
    run: Callable[[Mapping[str, Any], TempFiles], bool]
    options: Sequence[Option]


MACHINES = (
    Machine("laser2cas", "laser500", f"version {VERSION}",
            "Convert the Laser 350/500/700 .vz file to .cas, optionally to WAV",
            None, laser500_exec, LASER500_OPTIONS),
)


@dataclass
class _ChainState:
    tempfiles: TempFiles = field(default_factory=TempFiles)
    chain_file: str = ""


def find_machine(ident: str) -> Optional[Machine]:
    """Return the machine whose identifier is ``ident``, or None."""
    return next((m for m in MACHINES if m.ident == ident), None)


def usage_text() -> str:
    """Return the overall usage text listing every target."""
    lines = [
        "appmake [+target] [options]\n\n",
        "The application generator\n\n",
        "This program is used to produce files which are suitable for use in\n"
        "emulators or on the real hardware. ",
        "Supported targets are:\n\n",
    ]
    lines.extend(f"+{m.ident:<12} ({m.execname:<8}) - {m.banner}\n" for m in MACHINES)
    lines.append("\nFor more usage information use +[target] with no options\n")
    return "".join(lines)


def execute_command(target: str, argv: Sequence[str], chainmode: int = 0,
                    state: Optional[_ChainState] = None) -> None:
    """Run ``target`` with ``argv``.

    ``chainmode`` is 0 for a lone command, 1 for a command whose output feeds
    the next one and 2 for the last command of a chain.
    """
    if state is None:
        with TempFiles() as tempfiles:
            execute_command(target, argv, chainmode, _ChainState(tempfiles))
        return

    machine = find_machine(target)
    if machine is None:
        raise AppmakeError(f'Unknown machine target "{target}"\n\n{usage_text()}')

    values = parse_options(argv, machine.options, {})
    output_file: Optional[str] = None
    try:
        if chainmode:
            if state.chain_file:
                set_option_by_type(machine.options, values,
                                   OptionType.STR | OptionType.INPUT, state.chain_file)
            if chainmode == 1:
                output_file = state.tempfiles.new()
                set_option_by_type(machine.options, values,
                                   OptionType.STR | OptionType.OUTPUT, output_file)
        ran = machine.run(values, state.tempfiles)
    except AppmakeError as exc:
        raise AppmakeError(f"{target}: {exc}", exc.code) from exc

    if not ran:
        raise AppmakeError(format_options(machine.execname, machine.ident, machine.banner,
                                          machine.desc, machine.longdesc, machine.options))
    if chainmode == 1 and output_file is not None:
        state.chain_file = output_file


def _machine_for_program(prog: str) -> Optional[Machine]:
    for machine in MACHINES:
        pos = prog.find(machine.execname)
        if pos < 0:
            continue
        rest = prog[pos + len(machine.execname):]
        if rest == "" or rest.startswith("."):
            return machine
    return None


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the generator; returns the process exit status."""
    if argv is None:
        prog = sys.argv[0] if sys.argv else ""
        args = list(sys.argv[1:])
    else:
        prog = ""
        args = list(argv)

    try:
        with TempFiles() as tempfiles:
            state = _ChainState(tempfiles)
            machine = _machine_for_program(prog)
            if machine is not None:
                execute_command(machine.ident, args, 0, state)
                return 0

            target: Optional[str] = None
            pending: list[str] = []
            for arg in args:
                if arg.startswith("+"):
                    if target is not None:
                        execute_command(target, pending, 1, state)
                        pending = []
                    target = arg[1:]
                else:
                    pending.append(arg)

            if target is None:
                raise AppmakeError(usage_text())
            execute_command(target, pending, 2, state)
    except AppmakeError as exc:
        message = str(exc)
        sys.stderr.write(message if message.endswith("\n") else message + "\n")
        return exc.code
    return 0


if __name__ == "__main__":
    sys.exit(main())