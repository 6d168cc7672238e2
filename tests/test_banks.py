import io
import os

import pytest

from appmake.banks import (
    MAXBANKS,
    BankedMemory,
    BankSpace,
    MemoryBank,
    SectionAligned,
    SectionBinary,
    check_alignment,
    enumerate_banks,
    generate_output_binary,
    generate_output_binary_complete,
    output_section_binary,
    sort_bank_check,
)
from appmake.ihex import bin2hex
from appmake.util import AppmakeError


def _write(path, data):
    with open(path, "wb") as fp:
        fp.write(data)


@pytest.fixture
def mapped(tmp_path):
    binname = str(tmp_path / "out")
    _write(binname + "_CODE.bin", b"\x01\x02\x03\x04")
    _write(binname + "_BANK_3.bin", b"\xaa\xbb")
    map_text = (
        "__CODE_head = $8000 ; addr\n"
        "__CODE_size = $0004 ; const\n"
        "__BANK_3_head = $C000 ; addr\n"
        "__data_align_4_head = $8001 ; addr\n"
        "__data_align_4_size = $0002 ; const\n"
        "\n"
    )
    memory = BankedMemory()
    memory.create_bankspace("BANK")
    aligned = []
    enumerate_banks(io.StringIO(map_text), binname, memory, aligned)
    return binname, memory, aligned


def test_enumerate_places_sections(mapped):
    binname, memory, _ = mapped
    main = memory.mainbank.sections
    assert [(s.section_name, s.org, s.size) for s in main] == [("CODE", 0x8000, 4)]
    assert main[0].filename == binname + "_CODE.bin"
    bank = memory.find_bankspace("BANK").banks[3]
    assert [(s.section_name, s.org, s.size) for s in bank.sections] == [("BANK_3", 0xC000, 2)]


def test_enumerate_records_aligned_sections(mapped):
    _, _, aligned = mapped
    assert aligned == [SectionAligned("data_align_4", 4, 0x8001, 2)]
    assert check_alignment(aligned) == 1


def test_check_alignment_sorts_and_accepts_aligned():
    aligned = [SectionAligned("b_align_2", 2, 0x10, 1), SectionAligned("a_align_4", 4, 0x20, 1)]
    assert check_alignment(aligned) == 0
    assert [a.section_name for a in aligned] == ["a_align_4", "b_align_2"]


def test_enumerate_drops_unassigned(tmp_path, capsys):
    binname = str(tmp_path / "out")
    _write(binname + "_UNASSIGNED.bin", b"x")
    memory = BankedMemory()
    enumerate_banks(io.StringIO("__UNASSIGNED_head = $0000\n"), binname, memory, [])
    assert memory.mainbank.sections == []
    assert "UNASSIGNED section ignored" in capsys.readouterr().out


def test_enumerate_warns_on_bad_line(tmp_path, capsys):
    memory = BankedMemory()
    enumerate_banks(io.StringIO("garbage line\n"), str(tmp_path / "out"), memory, [])
    assert "Unable to parse line" in capsys.readouterr().err


def test_find_and_remove_section(mapped):
    _, memory, _ = mapped
    bank, index = memory.find_section("BANK_3")
    assert bank is memory.find_bankspace("BANK").banks[3]
    assert index == 0
    assert memory.find_section("NOPE") is None
    assert memory.remove_section("CODE", False) is True
    assert memory.remove_section("CODE", False) is False


def test_remove_section_clean_deletes_file(mapped):
    binname, memory, _ = mapped
    assert memory.remove_section("CODE", True)
    assert not os.path.exists(binname + "_CODE.bin")


def test_user_remove_bank(mapped):
    _, memory, _ = mapped
    assert memory.user_remove_bank("BANK_3") == 2
    assert memory.user_remove_bank("BANK_3") == 0
    assert memory.user_remove_bank("BANK") == 1
    assert memory.find_bankspace("BANK") is None
    assert memory.user_remove_bank("OTHER") == 0


def test_bankspace_remove_bank_bounds():
    space = BankSpace("B")
    assert len(space.banks) == MAXBANKS
    assert space.remove_bank(MAXBANKS, False) is False
    space.banks[1].sections.append(SectionBinary("f", "B_1", 0, 1))
    assert space.remove_bank(1, False) is True
    assert space.banks[1].sections == []


def test_sort_bank_check_sorts_and_detects_overlap():
    bank = MemoryBank([SectionBinary("b", "B", 0x102, 4), SectionBinary("a", "A", 0x100, 4)])
    assert sort_bank_check(bank, 0, 0) == 1
    assert [s.section_name for s in bank.sections] == ["A", "B"]


def test_sort_bank_check_limits():
    assert sort_bank_check(MemoryBank([SectionBinary("a", "A", -1, 1)]), 0, 0) == 1
    assert sort_bank_check(MemoryBank([SectionBinary("a", "A", 0xFFFF, 2)]), 0, 0) == 1
    assert sort_bank_check(MemoryBank([SectionBinary("a", "A", 0xC000, 0x10)]), 0xC000, 8) == 1
    assert sort_bank_check(MemoryBank([SectionBinary("a", "A", 0xC000, 8)]), 0xC000, 8) == 0


def test_sort_banks_counts_all(mapped):
    _, memory, _ = mapped
    memory.mainbank.sections.append(SectionBinary("x", "X", 0x8002, 1))
    assert memory.sort_banks() == 1


def test_output_section_binary(tmp_path):
    path = str(tmp_path / "s.bin")
    _write(path, b"abcdef")
    out = io.BytesIO()
    assert output_section_binary(out, SectionBinary(path, "S", 0, 3, offset=2)) == 0
    assert out.getvalue() == b"cde"
    short = io.BytesIO()
    assert output_section_binary(short, SectionBinary(path, "S", 0, 10, offset=4)) == 8
    assert short.getvalue() == b"ef"


def test_output_section_binary_missing_file(tmp_path):
    with pytest.raises(AppmakeError):
        output_section_binary(io.BytesIO(), SectionBinary(str(tmp_path / "no"), "S", 0, 1))


def _two_sections(tmp_path):
    a = str(tmp_path / "a.bin")
    b = str(tmp_path / "b.bin")
    _write(a, b"AB")
    _write(b, b"CD")
    return MemoryBank([SectionBinary(a, "A", 0x8000, 2), SectionBinary(b, "B", 0x8004, 2)])


def test_generate_output_binary_fills_gaps(tmp_path):
    bank = _two_sections(tmp_path)
    out = io.BytesIO()
    hexout = io.StringIO()
    generate_output_binary(out, 0xFF, hexout, False, 16, bank, 0, 0)
    assert out.getvalue() == b"AB\xff\xffCD"
    assert hexout.getvalue().endswith(":00000001FF\n")
    assert hexout.getvalue().count("\n") == 3


def test_generate_output_binary_fixed_bank_size(tmp_path):
    bank = _two_sections(tmp_path)
    out = io.BytesIO()
    generate_output_binary(out, 0, None, False, 16, bank, 0x7FFF, 10)
    assert out.getvalue() == b"\x00AB\x00\x00CD\x00\x00\x00"


def test_generate_output_binary_padded_hex_matches_binary(tmp_path):
    bank = _two_sections(tmp_path)
    out = io.BytesIO()
    hexout = io.StringIO()
    generate_output_binary(out, 0xFF, hexout, True, 16, bank, 0, 0)
    expected = io.StringIO()
    bin2hex(io.BytesIO(out.getvalue()), expected, 0x8000, None, 16, True)
    assert hexout.getvalue() == expected.getvalue()


def test_generate_output_binary_short_section_raises(tmp_path):
    path = str(tmp_path / "a.bin")
    _write(path, b"A")
    bank = MemoryBank([SectionBinary(path, "A", 0, 5)])
    with pytest.raises(AppmakeError):
        generate_output_binary(io.BytesIO(), 0, None, False, 16, bank, 0, 0)


def test_generate_output_binary_complete(mapped, capsys):
    binname, memory, _ = mapped
    generate_output_binary_complete(binname, True, 0, False, 16, memory)
    with open(binname + "__.bin", "rb") as fp:
        assert fp.read() == b"\x01\x02\x03\x04"
    with open(binname + "__BANK_003.bin", "rb") as fp:
        assert fp.read() == b"\xaa\xbb"
    assert os.path.exists(binname + "__.ihx")
    assert "Creating " + binname + "__.bin (org 0x8000)" in capsys.readouterr().out


def test_generate_output_binary_complete_missing_section(tmp_path):
    memory = BankedMemory()
    memory.mainbank.sections.append(SectionBinary(str(tmp_path / "gone.bin"), "X", 0, 1))
    with pytest.raises(AppmakeError):
        generate_output_binary_complete(str(tmp_path / "out"), False, 0, False, 16, memory)


def test_delete_source_binaries(mapped):
    binname, memory, _ = mapped
    memory.delete_source_binaries()
    assert not os.path.exists(binname + "_CODE.bin")
    assert not os.path.exists(binname + "_BANK_3.bin")
    # the bank layout itself is left in place
    bank, index = memory.find_section("CODE")
    assert bank is memory.mainbank
    assert index == 0
    with pytest.raises(AppmakeError):
        output_section_binary(io.BytesIO(), bank.sections[index])