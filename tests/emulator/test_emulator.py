# type: ignore
import pytest
from click.testing import CliRunner

import hvm.sasm.asm as asm
import hvm.sasm.masm as masm
import hvm.runtime.emulator as emulator
from hvm.common.hwconf import LOADER_BASE, DUMPER_BASE
from hvm.common.objstream import ObjectImage, format_tokens

from unit_utils import find_file, load_file
from fixtures import with_loader  # noqa: F401


def test_boot_installs_loader():
    proc = emulator.cpu.CPU()
    image = emulator.boot(proc)

    assert image.start == LOADER_BASE
    assert len(image.payload) == 0x46
    assert proc.memory.read_block(LOADER_BASE, 0x46) == image.payload
    assert proc.memory[0x46] == 0xFF


def test_load_and_run(with_loader):  # noqa: F811
    text = format_tokens(asm.assemble(load_file('testdata/countdown.asm')))
    image = emulator.load(with_loader, text)

    assert not with_loader.error
    assert with_loader.memory.read_block(image.start, len(image.payload)) == image.payload

    with emulator.attached(with_loader, emulator.BufferDevice()) as device:
        with_loader.run(image.start)

    assert device.output == load_file('testdata/countdown.log')


def test_load_crosses_page(with_loader):  # noqa: F811
    payload = bytes(range(0x10, 0x30))
    image = ObjectImage(0x0F0, payload)

    emulator.load(with_loader, image.to_text())

    assert not with_loader.error
    assert with_loader.memory.read_block(0x0F0, len(payload)) == payload


def test_loads_accumulate(with_loader):  # noqa: F811
    first = ObjectImage(0x200, b'\x01\x02')
    second = ObjectImage(0x300, b'\x03')

    emulator.load(with_loader, first.to_text())
    emulator.load(with_loader, second.to_text())

    assert with_loader.memory.read_block(0x200, 2) == b'\x01\x02'
    assert with_loader.memory[0x300] == 0x03


def test_empty_payload(with_loader):  # noqa: F811
    emulator.load(with_loader, ObjectImage(0x200).to_text())
    assert not with_loader.error


def test_loader_detects_bad_checksum(with_loader, caplog):  # noqa: F811
    data = bytearray(ObjectImage(0x200, b'\x11\x22\x33').to_bytes())
    data[-1] ^= 0x01

    emulator.load(with_loader, format_tokens(data))

    assert with_loader.error
    assert with_loader.memory.read_block(0x200, 3) == b'\x11\x22\x33'
    assert 'could be corrupt' in caplog.text


def test_loader_detects_truncation(with_loader):  # noqa: F811
    emulator.load(with_loader, '02 00 02 11 22')

    assert with_loader.error
    assert with_loader.fault == 'Input device exhausted'


def test_example_end_to_end(with_loader):  # noqa: F811
    image = emulator.load(with_loader, asm.assemble_image(load_file('testdata/example.asm')).to_text())

    assert image.start == 0x0000
    assert len(image.payload) == 4

    with_loader.run(0x001)

    assert not with_loader.error
    assert with_loader.acc == 0x05


def test_dump(with_loader):  # noqa: F811
    program = asm.assemble_image(load_file('testdata/echo.asm'))
    emulator.load(with_loader, program.to_text())

    image = emulator.dump(with_loader, 0x100, 0x112)

    assert image == program
    assert with_loader.memory.read_block(DUMPER_BASE, 1) != b'\xff'


def test_dump_signed_bytes(with_loader):  # noqa: F811
    data = bytes([0x80, 0xFF, 0x7F, 0x00])
    emulator.install(with_loader, ObjectImage(0xA00, data))

    assert emulator.dump(with_loader, 0xA00, 0xA03).payload == data


def test_dump_range_limits(with_loader):  # noqa: F811
    with pytest.raises(ValueError):
        emulator.dump(with_loader, 0x200, 0x1FF)

    with pytest.raises(ValueError):
        emulator.dump(with_loader, 0x000, 0x100)


def test_dumper_source():
    item = masm.dumper_item(0xABC, 0x10)

    assert 'SIZE K 10' in item.contents
    assert 'PTR1 K 0A' in item.contents
    assert 'PTR2 K BC' in item.contents
    assert asm.compile_item(item).start == DUMPER_BASE


def test_format_memory():
    proc = emulator.cpu.CPU()
    proc.memory[0x123] = 0x42

    lines = emulator.format_memory(proc.memory, 0x123, 0x131).splitlines()

    assert lines[0] == 'Memory at 0123'
    assert len(lines) == 4
    assert lines[2].startswith('12 FF FF FF 42')


def test_cli_assemble_and_run(tmp_path):
    runner = CliRunner()
    obj = tmp_path / 'example.obj'

    result = runner.invoke(masm.compile, [str(find_file('testdata/example.asm')), str(obj)])
    assert result.exit_code == masm.EXIT_OK
    assert obj.read_text() == '00 00 04 05 80 00 B0 39 '

    result = runner.invoke(emulator.run, ['--start', '001', str(obj)])
    assert result.exit_code == emulator.EXIT_HALT
    assert 'Accumulator value: 05' in result.output


def test_cli_devices_and_dump(tmp_path):
    runner = CliRunner()
    obj = tmp_path / 'echo.obj'
    dev_in = tmp_path / 'input.txt'
    dev_out = tmp_path / 'output.txt'
    dev_in.write_text('05 06 ')

    assert runner.invoke(masm.compile, [str(find_file('testdata/echo.asm')), str(obj)]).exit_code == 0

    result = runner.invoke(emulator.run, [
        '-i', str(dev_in), '-o', str(dev_out), '--dump', '111', '112', str(obj)
    ])

    assert result.exit_code == emulator.EXIT_HALT
    assert dev_out.read_text() == '0B 1E '
    assert 'Dumper output: 01 11 02 05 06 1F ' in result.output


def test_cli_fault_exit_code(tmp_path):
    runner = CliRunner()
    obj = tmp_path / 'echo.obj'
    runner.invoke(masm.compile, [str(find_file('testdata/echo.asm')), str(obj)])

    result = runner.invoke(emulator.run, [str(obj)])
    assert result.exit_code == emulator.EXIT_FAULT


def test_cli_assembly_error(tmp_path):
    src = tmp_path / 'bad.asm'
    src.write_text(' FOO 1\n')

    result = CliRunner().invoke(masm.compile, [str(src)])

    assert result.exit_code == masm.EXIT_ASSEMBLY_ERROR
    assert not (tmp_path / 'bad.obj').exists()


def test_cli_missing_object(tmp_path):
    result = CliRunner().invoke(emulator.run, [str(tmp_path / 'missing.obj')])
    assert result.exit_code == emulator.EXIT_EXEC_ERROR
