from pathlib import Path

import hvm.sasm.asm as asm
import hvm.runtime.cpu as cpu
import hvm.runtime.emulator as emulator
from hvm.common.objstream import ObjectImage
from hvm.runtime.peripheral import BufferDevice


def find_file(filename: str) -> Path:
    return Path(__file__).parent / filename


def load_file(filename: str) -> str:
    return find_file(filename).read_text()


def prepare_source(source: str, input_text: str = '') -> tuple[cpu.CPU, ObjectImage]:
    ''' Assembles and installs a program without running it '''
    image = asm.assemble_image(source)
    proc = cpu.CPU(device=BufferDevice(input_text))
    emulator.install(proc, image)
    return proc, image


def execute_source(source: str, start: int | None = None, input_text: str = '') -> cpu.CPU:
    proc, image = prepare_source(source, input_text)
    proc.run(image.start if start is None else start)
    return proc


def execute_file(filename: str, start: int | None = None, input_text: str = '') -> cpu.CPU:
    return execute_source(load_file(filename), start, input_text)


def output_of(proc: cpu.CPU) -> str:
    return proc.device.output  # type: ignore
