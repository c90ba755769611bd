# Emulated main memory

from hvm.common.hwconf import MEMORY_SIZE, MEMORY_FILL, BYTE_MASK


class Memory:
    ''' Flat byte store. Callers mask addresses to 12 bits '''

    def __init__(self, size: int = MEMORY_SIZE, fill: int = MEMORY_FILL):
        self.cells = bytearray([fill] * size)

    def __len__(self):
        return len(self.cells)

    def __getitem__(self, addr):
        return self.cells[addr]

    def __setitem__(self, addr: int, value: int):
        self.cells[addr] = value & BYTE_MASK

    def read_block(self, addr: int, length: int) -> bytes:
        return bytes(self.cells[addr:addr + length])

    def write_block(self, addr: int, buf: bytes):
        if addr + len(buf) > len(self.cells):
            raise IndexError(f'Block of {len(buf)} bytes at 0x{addr:X} runs past the end of memory')

        self.cells[addr:addr + len(buf)] = buf
