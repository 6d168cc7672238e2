import os

import pytest

from appmake.binfile import TempFiles, get_org_addr, open_binary, parameter_search
from appmake.util import AppmakeError


def _write(path, data):
    mode = "wb" if isinstance(data, bytes) else "w"
    with open(path, mode) as fp:
        fp.write(data)


def test_tempfiles_new_and_cleanup():
    temps = TempFiles()
    first = temps.new()
    second = temps.new()
    assert first != second
    assert os.path.exists(first) and os.path.exists(second)
    temps.cleanup()
    assert not os.path.exists(first)
    assert not os.path.exists(second)
    assert temps.paths == []


def test_tempfiles_context_manager_removes_files():
    with TempFiles() as temps:
        path = temps.new()
        assert temps.paths == [path]
        assert os.path.exists(path)
    assert temps.paths == []
    assert not os.path.exists(path)


def test_parameter_search_finds_hex_value(tmp_path):
    base = str(tmp_path / "prog")
    _write(base + ".map", "other = $1234\n__crt_org_code = $8000 ; const, public\n")
    assert parameter_search(base, ".map", "__crt_org_code") == 0x8000


def test_parameter_search_requires_whole_symbol(tmp_path):
    base = str(tmp_path / "prog")
    _write(base + ".map", "CRT_ORG_CODE_X = $10\n")
    assert parameter_search(base, ".map", "CRT_ORG_CODE") == -1


def test_parameter_search_missing_file_or_name(tmp_path):
    assert parameter_search(str(tmp_path / "nothing"), ".map", "X") == -1
    assert parameter_search(None, ".map", "X") == -1


def test_get_org_addr_prefers_sym(tmp_path):
    base = str(tmp_path / "prog")
    _write(base + ".sym", "CRT_ORG_CODE = $4000\n")
    _write(base + ".map", "__crt_org_code = $8000\n")
    assert get_org_addr(base) == 0x4000


def test_get_org_addr_falls_back_to_map(tmp_path):
    base = str(tmp_path / "prog")
    _write(base + ".map", "CRT_ORG_CODE = $6000\n")
    assert get_org_addr(base) == 0x6000
    assert get_org_addr(str(tmp_path / "none")) == -1


def test_open_binary_empty_name_returns_none():
    with TempFiles() as temps:
        assert open_binary("", None, temps) is None


def test_open_binary_missing_file_raises(tmp_path):
    with TempFiles() as temps, pytest.raises(AppmakeError):
        open_binary(str(tmp_path / "missing.bin"), None, temps)


def test_open_binary_classic_single_file(tmp_path):
    fname = str(tmp_path / "prog.bin")
    _write(fname, b"\x01\x02\x03")
    with TempFiles() as temps:
        fp = open_binary(fname, None, temps)
        with fp:
            assert fp.read() == b"\x01\x02\x03"


def test_open_binary_classic_appends_himem(tmp_path):
    fname = str(tmp_path / "prog.bin")
    _write(fname, b"code")
    _write(str(tmp_path / "prog_HIMEM.bin"), b"himem")
    with TempFiles() as temps:
        fp = open_binary(fname, None, temps)
        with fp:
            assert fp.read() == b"codehimem"


def test_open_binary_new_lib_rom_model(tmp_path):
    fname = str(tmp_path / "prog.bin")
    code = str(tmp_path / "prog_CODE.bin")
    _write(fname, b"")
    _write(code, b"CODE")
    _write(str(tmp_path / "prog_DATA.bin"), b"DATA")
    os.utime(fname, (100, 100))
    os.utime(code, (200, 200))
    crt = str(tmp_path / "crt")
    _write(crt + ".map", "__crt_model = $1\n")
    with TempFiles() as temps:
        fp = open_binary(fname, crt, temps)
        with fp:
            assert fp.read() == b"CODEDATA"


def test_open_binary_rom_model_without_data_raises(tmp_path):
    fname = str(tmp_path / "prog.bin")
    code = str(tmp_path / "prog_CODE.bin")
    _write(fname, b"")
    _write(code, b"CODE")
    os.utime(fname, (100, 100))
    os.utime(code, (200, 200))
    crt = str(tmp_path / "crt")
    _write(crt + ".map", "__crt_model = $1\n")
    with TempFiles() as temps, pytest.raises(AppmakeError):
        open_binary(fname, crt, temps)


def test_open_binary_warns_about_alignment(tmp_path, capsys):
    fname = str(tmp_path / "prog.bin")
    _write(fname, b"x")
    crt = str(tmp_path / "crt")
    _write(crt + ".map", "__data_align_256_size = $10\n__data_align_256_head = $8001\n")
    with TempFiles() as temps:
        fp = open_binary(fname, crt, temps)
        fp.close()
    err = capsys.readouterr().err
    assert "__data_align_256_head is not aligned" in err