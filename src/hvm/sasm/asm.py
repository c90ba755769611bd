import os
import logging as lg
import tempfile
from pathlib import Path

from hvm.common.hwconf import ADDRESS_MASK, BYTE_MASK, NIBBLE_MASK
from hvm.common.ops import MNEMONICS, Pseudo
from hvm.common.objstream import ObjectImage, format_tokens
from hvm.sasm.fpp import AssemblyError  # noqa: F401
from hvm.sasm.fpp import FPP, Line, Pass, Tokens, parse_hex, parse_lines


class CompilationItem:
    name: str
    contents: str

    def __init__(self, name: str = '<source>', contents: str = ''):
        self.name = name
        self.contents = contents


class SPP(Pass):
    ''' Second pass processor: emits the object stream '''
    label_dict: dict[str, int]
    count: int
    buffer: bytearray
    checksum: int

    def __init__(self, label_dict: dict[str, int], count: int):
        super().__init__()
        self.label_dict = label_dict
        self.count = count
        self.buffer = bytearray()
        self.checksum = 0

    def output_byte(self, b: int):
        b &= BYTE_MASK
        self.buffer.append(b)
        self.checksum = (self.checksum + b) & BYTE_MASK

    def output_word(self, w: int):
        self.output_byte(w >> 8)
        self.output_byte(w)

    def resolve(self, operand: str) -> int:
        if operand in self.label_dict:
            return self.label_dict[operand]

        value = parse_hex(operand, ADDRESS_MASK)

        if value is None:
            self.fail(f'Operand {operand} is neither a symbol nor an address.')

        return value

    def process(self, lines: list[Line]) -> bytes:
        if not lines or lines[0].action != 'on_origin':
            self.line = lines[0] if lines else None
            self.fail('Program must begin with origin declaration.')

        super().process(lines)

        lg.debug(f'Checksum 0x{self.checksum:02X}')
        self.buffer.append(self.checksum)
        return bytes(self.buffer)

    def on_origin(self, tokens: Tokens):
        address = parse_hex(tokens[0], ADDRESS_MASK)

        if address is None:
            self.fail(f'Invalid origin address {tokens[0]}.')

        # Only the first origin makes the header
        if not self.buffer:
            self.output_word(address)
            self.output_byte(self.count)

    def on_label(self, tokens: Tokens):
        pass

    def on_constant(self, tokens: Tokens):
        value = parse_hex(tokens[1], BYTE_MASK)

        if value is None:
            self.fail(f'Invalid {Pseudo.CONSTANT.value} value {tokens[1]}.')

        self.output_byte(value)

    def on_instruction(self, tokens: Tokens):
        op = MNEMONICS[tokens[0]]
        operand = self.resolve(tokens[1])

        if op.size == 1:
            self.output_byte((op.value << 4) | (operand & NIBBLE_MASK))
        else:
            self.output_word(op.opcode | operand)

        lg.debug(f'{op.name} {tokens[1]} -> 0x{operand:03X}')


def assemble(source: str) -> bytes:
    lines = parse_lines(source)

    first_pass = FPP()
    first_pass.process(lines)

    second_pass = SPP(first_pass.label_dict, first_pass.count)
    return second_pass.process(lines)


def assemble_image(source: str) -> ObjectImage:
    return ObjectImage.from_bytes(assemble(source))


def compile_item(item: CompilationItem) -> ObjectImage:
    lg.info(f'Processing {item.name}')
    return assemble_image(item.contents)


def write_atomic(destination: Path, text: str):
    ''' Replaces destination only once the whole text is on disk '''
    fd, tmp_name = tempfile.mkstemp(prefix=destination.name, suffix='.tmp', dir=destination.parent)

    try:
        with os.fdopen(fd, 'w') as out:
            out.write(text)

        os.replace(tmp_name, destination)

    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def assemble_file(source: Path, destination: Path) -> ObjectImage:
    binary = assemble(source.read_text())
    destination.parent.mkdir(parents=True, exist_ok=True)
    write_atomic(destination, format_tokens(binary))

    lg.info(f'Assembly complete: {destination}')
    return ObjectImage.from_bytes(binary)
