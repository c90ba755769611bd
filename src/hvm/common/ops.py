''' Instruction catalog '''

from enum import Enum, IntEnum


class Op(IntEnum):
    JP = 0x0    # PC := A
    JZ = 0x1    # if ACC .eq 0 PC := A
    JN = 0x2    # if ACC .lt 0 PC := A
    CN = 0x3    # 0: halt, else arm pointer latch
    ADD = 0x4   # ACC + M[A] -> ACC
    SUB = 0x5   # ACC - M[A] -> ACC
    MULT = 0x6  # ACC * M[A] -> ACC
    DIV = 0x7   # ACC / M[A] -> ACC
    LD = 0x8    # M[A] -> ACC
    MM = 0x9    # ACC -> M[A]
    SC = 0xA    # push PC; PC := A
    OS = 0xB    # 0: return, else fail
    IO = 0xC    # even: read ACC, odd: write ACC

    @property
    def size(self) -> int:
        return SIZES[self]

    @property
    def opcode(self) -> int:
        ''' Opcode as it sits in the 16-bit instruction word '''
        return self.value << 12


# Bytes per instruction: 2 for a 12-bit address word, 1 for a control byte
SIZES = {
    Op.JP: 2,
    Op.JZ: 2,
    Op.JN: 2,
    Op.CN: 1,
    Op.ADD: 2,
    Op.SUB: 2,
    Op.MULT: 2,
    Op.DIV: 2,
    Op.LD: 2,
    Op.MM: 2,
    Op.SC: 2,
    Op.OS: 1,
    Op.IO: 1,
}


class Pseudo(str, Enum):
    ORIGIN = '@'
    END = '#'
    CONSTANT = 'K'


MNEMONICS: dict[str, Op] = {op.name: op for op in Op}

# Symbolic spellings of the arithmetic group
MNEMONICS.update({
    '+': Op.ADD,
    '-': Op.SUB,
    '*': Op.MULT,
    '/': Op.DIV,
})

PSEUDO_OPS: dict[str, Pseudo] = {p.value: p for p in Pseudo}

RESERVED = frozenset(MNEMONICS) | frozenset(PSEUDO_OPS)

_BY_NIBBLE = {op.value: op for op in Op}


def decode(byte: int) -> Op | None:
    ''' Instruction class from the high nibble of the first byte '''
    return _BY_NIBBLE.get((byte >> 4) & 0x0F)
