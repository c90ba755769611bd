import sys
from pathlib import Path
import logging as lg
import traceback
from contextlib import contextmanager
from typing import Iterator

import click

from hvm.common.hwconf import ADDRESS_MASK, BYTE_MASK, LOADER_BASE, DUMPER_BASE
from hvm.common.objstream import ObjectImage, ObjectFormatError
from hvm.runtime.mmu import Memory
from hvm.runtime.peripheral import Peripheral, BufferDevice, FileDevice
import hvm.runtime.cpu as cpu
import hvm.sasm.asm as asm
import hvm.sasm.masm as masm


EXIT_HALT = 0
EXIT_FAULT = 1
EXIT_EXEC_ERROR = 100


@contextmanager
def attached(proc: cpu.CPU, device: Peripheral) -> Iterator[Peripheral]:
    saved = proc.device
    proc.device = device

    try:
        yield device
    finally:
        proc.device = saved


def install(proc: cpu.CPU, image: ObjectImage):
    ''' Writes an image straight into memory, bypassing the loader '''
    for i, b in enumerate(image.payload):
        proc.memory[(image.start + i) & ADDRESS_MASK] = b

    lg.debug(f'Installed {image}')


def boot(proc: cpu.CPU) -> ObjectImage:
    image = asm.compile_item(masm.collect_library('loader'))
    install(proc, image)
    return image


def load(proc: cpu.CPU, text: str) -> ObjectImage:
    ''' Runs the resident loader over an object stream '''
    image = ObjectImage.from_text(text, strict=False)

    with attached(proc, BufferDevice(text)):
        proc.run(LOADER_BASE)

    if proc.error:
        lg.warning(
            f'The checksum could not be verified, the program loaded '
            f'at 0x{image.start:04X} could be corrupt ({proc.fault})'
        )

    return image


def dump(proc: cpu.CPU, first: int, last: int) -> ObjectImage:
    ''' Copies memory[first..last] out through the dumper program '''
    first &= ADDRESS_MASK
    last &= ADDRESS_MASK
    dumper = asm.compile_item(masm.dumper_item(first, last + 1 - first))

    load(proc, dumper.to_text())

    with attached(proc, BufferDevice()) as device:
        proc.run(DUMPER_BASE)

    return ObjectImage.from_text(device.output)


def format_memory(memory: Memory, first: int, last: int) -> str:
    lines = [f'Memory at {first:04X}', '    ' + '  '.join(f'{j:X}' for j in range(0x10))]

    for row in range(first & 0xFF0, (last & 0xFF0) + 0x10, 0x10):
        cells = ' '.join(f'{memory[row | j]:02X}' for j in range(0x10))
        lines.append(f'{row >> 4:02X} {cells}')

    return '\n'.join(lines)


def execute(objects: list[Path], start: int | None, device: Peripheral) -> cpu.CPU:
    proc = cpu.CPU(Memory(), device)
    boot(proc)

    images = [load(proc, path.read_text()) for path in objects]

    if start is None:
        start = images[0].start if images else LOADER_BASE

    proc.run(start)
    return proc


class HexAddress(click.ParamType):
    name = 'address'

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value

        try:
            address = int(value, 16)
        except ValueError:
            self.fail(f'{value!r} is not a hex address', param, ctx)

        if not 0 <= address <= ADDRESS_MASK:
            self.fail(f'{value} is outside 000..{ADDRESS_MASK:03X}', param, ctx)

        return address


@click.command()
@click.option('-v', '--verbose', is_flag=True, help='Sets logging level to debug')
@click.option('-s', '--start', type=HexAddress(), help='Start address, defaults to the first object')
@click.option('-i', '--input', 'input_path', type=Path, help='Input device file')
@click.option('-o', '--output', 'output_path', type=Path, help='Output device file')
@click.option('-d', '--dump', 'dump_range', type=HexAddress(), nargs=2, default=None,
              help='First and last address to dump after the run')
@click.argument('objects', nargs=-1, type=Path)
def run(
    verbose: bool,
    start: int | None,
    input_path: Path | None,
    output_path: Path | None,
    dump_range: tuple[int, int] | None,
    objects: tuple[Path]
):
    lg.basicConfig(level=lg.DEBUG if verbose else lg.INFO)
    lg.info('HVM')

    try:
        proc = execute(list(objects), start, FileDevice(input_path, output_path))
        (failed, fault) = (proc.error, proc.fault)
        click.echo(f'Accumulator value: {proc.acc & BYTE_MASK:02X}')

        if dump_range:
            (first, last) = dump_range
            image = dump(proc, first, last)
            click.echo(format_memory(proc.memory, first, last))
            click.echo(f'Dumper output: {image.to_text()}')

        if failed:
            lg.info(f'Execution halted on fault: {fault}')
            sys.exit(EXIT_FAULT)

        lg.info('Execution halted gracefully')
        sys.exit(EXIT_HALT)

    except KeyboardInterrupt:
        lg.info('Execution halted by the user')
        sys.exit(EXIT_EXEC_ERROR)

    except (OSError, ObjectFormatError, ValueError) as e:
        lg.error(f'Execution failed: {e}')
        traceback.print_exc()
        sys.exit(EXIT_EXEC_ERROR)


if __name__ == '__main__':
    run()
