import re
import logging as lg
from typing import List, Any

import pyparsing as pp

from hvm.common.hwconf import ADDRESS_MASK, MAX_PAYLOAD
from hvm.common.ops import MNEMONICS, RESERVED, Pseudo
import hvm.sasm.grammar as grammar

Tokens = List[Any]

HEX_RE = re.compile(r'[0-9A-Fa-f]+')


class AssemblyError(Exception):
    def __init__(self, line_no: int, line: str, message: str):
        super().__init__(f'Line #{line_no}: {line.strip()} is not valid! {message}')
        self.line_no = line_no
        self.line = line
        self.message = message


class Line:
    number: int         # 1-based
    text: str
    action: str
    tokens: Tokens

    def __init__(self, number: int, text: str, action: str, tokens: Tokens):
        self.number = number
        self.text = text
        self.action = action
        self.tokens = tokens

    def __repr__(self):
        return f'Line({self.number}, {self.action}, {self.tokens})'


def parse_hex(text: str, limit: int) -> int | None:
    ''' Bare hex digits, no prefix or sign '''
    if not HEX_RE.fullmatch(text):
        return None

    value = int(text, 16)
    return value if value <= limit else None


def is_statement(text: str) -> bool:
    ''' Instructions are indented; pseudo-ops may start the line '''
    if text[0].isspace():
        return True

    head = text.split()[0]
    return head in (Pseudo.ORIGIN.value, Pseudo.END.value)


def parse_lines(source: str) -> list[Line]:
    lines = []

    for number, raw in enumerate(source.splitlines(), 1):
        text = raw.upper()
        stripped = text.strip()

        if not stripped or stripped.startswith('//'):
            continue

        expr = grammar.statement_line if is_statement(text) else grammar.label_line

        try:
            (action, tokens) = expr.parse_string(text, parse_all=True)[0]
        except pp.ParseException as e:
            raise AssemblyError(number, raw, 'Syntax error.') from e

        lines.append(Line(number, raw, action, tokens))

    return lines


class Pass:
    ''' Walks parsed lines, dispatching on the grammar's handler names '''
    line: Line | None
    ended: bool

    def __init__(self):
        self.line = None
        self.ended = False

    def fail(self, message: str):
        if self.line is None:
            raise AssemblyError(0, '', message)

        raise AssemblyError(self.line.number, self.line.text, message)

    def process(self, lines: list[Line]):
        for line in lines:
            self.line = line
            getattr(self, line.action)(line.tokens)

            if self.ended:
                break

    def on_end(self, tokens: Tokens):
        lg.debug(f'End at line {self.line.number if self.line else 0}')
        self.ended = True

    def on_bad_label(self, tokens: Tokens):
        self.fail(f'Invalid pseudo-instruction, expecting {Pseudo.CONSTANT.value}.')

    def on_missing_operand(self, tokens: Tokens):
        self.fail(f'Instruction {tokens[0]} needs an operand.')

    def on_unknown(self, tokens: Tokens):
        self.fail('Invalid instruction.')


class FPP(Pass):
    ''' First pass processor: symbol table and program size '''
    label_dict: dict[str, int]
    offset: int     # Address cursor
    count: int      # Bytes to be emitted

    def __init__(self):
        super().__init__()
        self.label_dict = dict()
        self.offset = 0
        self.count = 0

    def declare(self, name: str):
        if name in RESERVED:
            self.fail('Cannot declare a symbol with the same name as an instruction or pseudo-instruction.')

        if name in self.label_dict:
            self.fail(f'Symbol {name} is already declared.')

        self.label_dict[name] = self.offset
        lg.debug(f'Label {name} @ 0x{self.offset:03X}')

    def reserve(self, size: int):
        self.offset = (self.offset + size) & ADDRESS_MASK
        self.count += size

        if self.count > MAX_PAYLOAD:
            self.fail(f'Program does not fit in 0x{MAX_PAYLOAD:X} bytes.')

    def on_label(self, tokens: Tokens):
        self.declare(tokens[0])

    def on_constant(self, tokens: Tokens):
        self.declare(tokens[0])
        self.reserve(1)

    def on_origin(self, tokens: Tokens):
        address = parse_hex(tokens[0], ADDRESS_MASK)

        if address is None:
            self.fail(f'Invalid origin address {tokens[0]}.')

        self.offset = address

    def on_instruction(self, tokens: Tokens):
        op = MNEMONICS[tokens[0]]
        self.reserve(op.size)
