''' Token devices attached to the IO instruction '''

import io
import logging as lg
from pathlib import Path
from contextlib import contextmanager
from typing import ContextManager, Iterator, TextIO

from hvm.common.objstream import ObjectFormatError, format_token, parse_token


class DeviceError(Exception):
    pass


class DeviceExhausted(DeviceError):
    pass


class Channel:
    ''' One run's view of the devices: a token reader and a token writer '''

    def __init__(self, source: str, out: TextIO):
        self.tokens = iter(source.split())
        self.out = out

    def read_token(self) -> int:
        token = next(self.tokens, None)

        if token is None:
            raise DeviceExhausted('Input device exhausted')

        try:
            return parse_token(token)
        except ObjectFormatError as e:
            raise DeviceError(f'Input device: {e}') from e

    def write_token(self, value: int):
        self.out.write(format_token(value))


class Peripheral:
    ''' Opens a fresh channel for every run '''

    def open(self) -> ContextManager[Channel]:
        raise NotImplementedError()


class BufferDevice(Peripheral):
    input_text: str
    output: str

    def __init__(self, input_text: str = ''):
        self.input_text = input_text
        self.output = ''

    @contextmanager
    def open(self) -> Iterator[Channel]:
        out = io.StringIO()

        try:
            yield Channel(self.input_text, out)
        finally:
            self.output = out.getvalue()


class FileDevice(Peripheral):
    ''' Input is re-read and output truncated on every run '''

    def __init__(self, input_path: Path | None, output_path: Path | None):
        self.input_path = input_path
        self.output_path = output_path

    @contextmanager
    def open(self) -> Iterator[Channel]:
        source = ''

        if self.input_path is not None:
            source = self.input_path.read_text()

        if self.output_path is None:
            yield Channel(source, io.StringIO())
            return

        lg.debug(f'Device output to {self.output_path}')

        with self.output_path.open('w') as out:
            yield Channel(source, out)
