import logging as lg
from typing import Callable

import hvm.common.ops as ops
from hvm.common.ops import Op
from hvm.common.hwconf import ADDRESS_MASK, BYTE_MASK, NIBBLE_MASK
from hvm.runtime.mmu import Memory
from hvm.runtime.peripheral import Peripheral, BufferDevice, Channel, DeviceError


class Halt(Exception):
    pass


class Fault(Exception):
    pass


def signed8(value: int) -> int:
    value &= BYTE_MASK
    return value - 0x100 if value & 0x80 else value


def divide(a: int, b: int) -> int:
    ''' Quotient truncated toward zero '''
    if b == 0:
        raise Fault('Division by zero')

    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


class CPU():
    acc: int            # Accumulator, signed 8 bit
    pc: int             # Program counter, 12 bit
    stack: list[int]    # Return addresses
    pointer: bool       # One-shot indirection latch
    running: bool
    error: bool
    fault: str | None   # Why the last run failed

    def __init__(self, memory: Memory | None = None, device: Peripheral | None = None):
        self.memory = memory if memory is not None else Memory()
        self.device = device if device is not None else BufferDevice()
        self.channel: Channel | None = None     # Set for the duration of a run

        self.acc = 0
        self.pc = 0
        self.stack = []
        self.pointer = False
        self.running = False
        self.error = False
        self.fault = None

    # - Helpers - #

    def debug_dump(self):
        state = [f'{k}:{v:X}' for k, v in {
            'PC': self.pc,
            'ACC': self.acc & BYTE_MASK,
            'PTR': int(self.pointer),
        }.items()]

        state.append('STACK:' + ','.join(f'{a:X}' for a in self.stack))

        lg.debug(' '.join(state))

    def fetch(self) -> tuple[Op, int]:
        first = self.memory[self.pc]
        op = ops.decode(first)

        if op is None:
            raise Fault(f'Undefined opcode 0x{first:02X} at 0x{self.pc:03X}')

        if op.size == 1:
            return op, first & NIBBLE_MASK

        second = self.memory[(self.pc + 1) & ADDRESS_MASK]
        return op, ((first & NIBBLE_MASK) << 8) | second

    def advance(self, size: int):
        self.pc = (self.pc + size) & ADDRESS_MASK

    def jump(self, addr: int):
        self.pc = addr & ADDRESS_MASK

    def resolve(self, operand: int) -> int:
        if not self.pointer:
            return operand

        self.pointer = False
        hi = self.memory[operand]
        lo = self.memory[(operand + 1) & ADDRESS_MASK]
        addr = ((hi << 8) | lo) & ADDRESS_MASK

        lg.debug(f'Pointer at 0x{operand:03X} -> 0x{addr:03X}')
        return addr

    def load(self, operand: int) -> int:
        return signed8(self.memory[self.resolve(operand)])

    def arithm(self, operand: int, op: Callable[[int, int], int]):
        b = self.load(operand)
        self.acc = signed8(op(self.acc, b))
        self.advance(2)

    def fail(self, message: str):
        self.stack.clear()
        self.pc = 0
        self.pointer = False
        self.error = True
        self.running = False
        self.fault = message

        lg.warning(f'Execution fault: {message}')

    # - Operations - #

    def jp(self, operand: int):
        self.jump(self.resolve(operand))

    def jz(self, operand: int):
        target = self.resolve(operand)

        if self.acc == 0:
            self.jump(target)
        else:
            self.advance(2)

    def jn(self, operand: int):
        target = self.resolve(operand)

        if self.acc < 0:
            self.jump(target)
        else:
            self.advance(2)

    def cn(self, sub: int):
        self.pointer = False

        if sub == 0:
            raise Halt()

        self.pointer = True
        self.advance(1)

    def add(self, operand: int):
        self.arithm(operand, lambda a, b: a + b)

    def sub(self, operand: int):
        self.arithm(operand, lambda a, b: a - b)

    def mult(self, operand: int):
        self.arithm(operand, lambda a, b: a * b)

    def div(self, operand: int):
        self.arithm(operand, divide)

    def ld(self, operand: int):
        self.acc = self.load(operand)
        self.advance(2)

    def mm(self, operand: int):
        self.memory[self.resolve(operand)] = self.acc
        self.advance(2)

    def sc(self, operand: int):
        self.pointer = False
        self.stack.append(self.pc)
        self.jump(operand)

    def oscall(self, sub: int):
        self.pointer = False

        if sub != 0:
            raise Fault(f'OS call 0x{sub:X}')

        if not self.stack:
            raise Halt()

        self.jump(self.stack.pop() + 2)

    def io(self, sub: int):
        if self.channel is None:
            raise Fault('No device attached')

        if sub & 1 == 0:
            try:
                self.acc = signed8(self.channel.read_token())
            except DeviceError as e:
                raise Fault(str(e)) from e

            lg.debug(f'IO read 0x{self.acc & BYTE_MASK:02X}')
        else:
            self.channel.write_token(self.acc)
            lg.debug(f'IO write 0x{self.acc & BYTE_MASK:02X}')

        self.advance(1)

    HANDLERS: dict[Op, Callable[['CPU', int], None]] = {
        Op.JP: jp,
        Op.JZ: jz,
        Op.JN: jn,
        Op.CN: cn,
        Op.ADD: add,
        Op.SUB: sub,
        Op.MULT: mult,
        Op.DIV: div,
        Op.LD: ld,
        Op.MM: mm,
        Op.SC: sc,
        Op.OS: oscall,
        Op.IO: io,
    }

    # -- Implementation -- #

    def exec_next(self):
        op, operand = self.fetch()
        lg.debug(f'0x{self.pc:03X}: {op.name} 0x{operand:X}')
        handler = self.HANDLERS[op]
        handler(self, operand)

    def run(self, start: int):
        self.pc = start & ADDRESS_MASK
        self.error = False
        self.fault = None

        lg.info(f'Running from 0x{self.pc:03X}')

        try:
            with self.device.open() as channel:
                self.channel = channel
                self.running = True

                try:
                    while self.running:
                        self.exec_next()
                        self.debug_dump()

                except Halt:
                    self.running = False
                    lg.info('Execution halted')

                except Fault as e:
                    self.fail(str(e))

                finally:
                    self.channel = None

        except OSError as e:
            self.fail(f'Device failure: {e}')
