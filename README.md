# appmake

`appmake` turns the output of a Z80 cross-compiler into files that an
emulator or the real machine can load. The command line offers one
target, `+laser500`, for the Laser 350/500/700: it writes a `.cas`
cassette image of a linked binary and, on request, a WAV recording of
that image.

## Installation

```sh
pip install .
```

This installs two commands, `appmake` and `laser2cas`.

## Usage

Show the available targets (printed on standard error, exit status 1):

```sh
appmake
```

Build a cassette image from a linked binary:

```sh
appmake +laser500 -b program.bin
```

This writes `program.cas` next to the input. Running `laser2cas` is the
same as `appmake +laser500`:

```sh
laser2cas -b program.bin --audio
```

Options of the `+laser500` target:

| Option | Meaning |
| --- | --- |
| `-b`, `--binfile` | Linked binary file (required) |
| `-c`, `--crt0file` | crt0 file used in linking; its `.map` and `.sym` files are consulted |
| `-o`, `--output` | Name of the output file (default: the binary's name with `.cas`) |
| `-t`, `--tokbasic` | Mark the block as tokenized BASIC (type `0xF0`) instead of binary (`0xF1`) |
| `--audio` | Also create a WAV file |
| `--fast` | Use shorter pulses for a faster loading WAV |
| `--nogap` | Leave out the silent gap after the file name in the WAV |
| `--freq3600` | Write the WAV at 3600 Hz instead of 44100 Hz |
| `-h`, `--help` | Show the options for the target |

Options take their value either as the next argument or after `=`
(`--output=game.cas`). Running a target without `-b`, or with `-h`,
prints its option list.

### What gets written

The block name in the image is the binary's file name, upper-cased and
cut to 17 characters. The program is loaded at `0x8995`; the image
ends with a 16-bit sum of the addresses and data. With `--audio` the
image is first rendered to a `.RAW` file of 8-bit samples, which is then
wrapped in a WAV header as a `.wav` file and removed.

### Finding the binary

If the linker left the program in sections (`<name>_CODE.bin` or
`<name>_COMMON0.bin`, newer than `<name>`), they are joined in a
temporary file: code, then data according to `__crt_model` in the crt0
map file (`1` appends `<name>_DATA.bin`; `2` appends it after
compressing it with the external `zx7` command), then `<name>_HIMEM.bin`
if present. Temporary files are removed when the command ends.

## Library use

The building blocks can be used on their own:

- `appmake.vz` — `create_file`, `vz_exec` (Laser 200/300 `.vz` input)
  and `laser500_exec`, plus the pulse writers `vz_click`, `vz_bit` and
  `vz_rawout`.
- `appmake.ihex.bin2hex` — write Intel HEX records; `record_checksum`
  computes a record's checksum.
- `appmake.audio.raw2wav` — wrap raw 8-bit mono samples in a WAV header;
  `zx_pilot`, `zx_rawbit` and `zx_rawout` write square-wave pulses.
- `appmake.banks` — `enumerate_banks` reads a linker map into a
  `BankedMemory`; `BankedMemory.sort_banks`, `check_alignment` and
  `generate_output_binary_complete` check the layout and write one
  binary (and optionally `.ihx`) per bank.
- `appmake.binfile` — `parameter_search`, `get_org_addr`, `open_binary`
  and the `TempFiles` context manager.
- `appmake.options` — `Option`, `OptionType`, `parse_options` and
  `format_options`.
- `appmake.util` — `suffix_change`, `num2bcd`, `hexdigit` and the
  little-endian writers `ByteWriter`, `ChecksumWriter`,
  `XorParityWriter` and `KansasParityWriter`.

Errors are raised as `appmake.util.AppmakeError`; the command prints the
message and exits with its `code`.

## Limitations

- `+laser500` is the only command-line target. Laser 200/300 `.vz`
  conversion is available only through `appmake.vz.vz_exec` or
  `create_file`, not as a command.
- Chaining targets (`appmake +a ... +b ...`) passes files between
  stages only through options marked as input or output; the
  `+laser500` options carry no such mark, so a chain involving it stops
  with "Cannot set option of type ... for chained command".
- The banked-memory helpers are not reachable from the command line.

## Tests

```sh
pip install .[test]
pytest
```