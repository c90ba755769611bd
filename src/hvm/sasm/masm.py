import sys
from pathlib import Path
import logging as lg

import click

from hvm.common.hwconf import ADDRESS_MASK, BYTE_MASK, MAX_PAYLOAD
from hvm.sasm.asm import AssemblyError, CompilationItem, assemble_file

LIB_DIR = Path(__file__).parent.parent / 'lib'

EXIT_OK = 0
EXIT_ASSEMBLY_ERROR = 1
EXIT_IO_ERROR = 2


def collect_file(filepath: str | Path) -> CompilationItem:
    if isinstance(filepath, str):
        filepath = Path(filepath)

    lg.debug(f'Collecting file {filepath}')
    return CompilationItem(filepath.stem, filepath.read_text())


def collect_library(name: str) -> CompilationItem:
    ''' One of the programs shipped in hvm/lib '''
    return collect_file(LIB_DIR / f'{name}.asm')


def dumper_item(first: int, length: int) -> CompilationItem:
    ''' Dumper source patched to copy length bytes from first '''
    if not 0 < length <= MAX_PAYLOAD:
        raise ValueError(f'Cannot dump 0x{length:X} bytes in one object')

    first &= ADDRESS_MASK
    item = collect_library('dumper')
    item.contents = item.contents.format(size=length, ptr1=first >> 8, ptr2=first & BYTE_MASK)
    return item


def default_binary(source: Path) -> Path:
    return source.with_suffix('.obj')


@click.command()
@click.option('-v', '--verbose', is_flag=True, help='Sets logging level to debug')
@click.argument('source', type=Path)
@click.argument('binary', type=Path, required=False)
def compile(verbose: bool, source: Path, binary: Path | None):
    lg.basicConfig(level=lg.DEBUG if verbose else lg.INFO)
    lg.info('HVM ASM')

    if binary is None:
        binary = default_binary(source)

    try:
        image = assemble_file(source, binary)
        lg.info(f'{image} written to {binary}')

    except AssemblyError as e:
        lg.error(f'Assembly failed! {e}')
        sys.exit(EXIT_ASSEMBLY_ERROR)

    except OSError as e:
        lg.error(f'Assembly failed! Error message: {e}')
        sys.exit(EXIT_IO_ERROR)

    sys.exit(EXIT_OK)


if __name__ == '__main__':
    compile()
