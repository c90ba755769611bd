''' Object stream codec: AA AA LL D0 .. Dn CC as hex-pair tokens '''

import re
import logging as lg
from typing import Iterable

from hvm.common.hwconf import BYTE_MASK, MAX_PAYLOAD

HEADER_SIZE = 3
TOKEN_RE = re.compile(r'[0-9A-Fa-f]{2}')


class ObjectFormatError(Exception):
    pass


class ChecksumError(ObjectFormatError):
    pass


def checksum(data: Iterable[int]) -> int:
    return sum(data) & BYTE_MASK


def format_token(value: int) -> str:
    return f'{value & BYTE_MASK:02X} '


def format_tokens(data: Iterable[int]) -> str:
    return ''.join(format_token(b) for b in data)


def parse_token(token: str) -> int:
    if not TOKEN_RE.fullmatch(token):
        raise ObjectFormatError(f'Bad token {token!r}')

    return int(token, 16)


def parse_tokens(text: str) -> bytes:
    return bytes(parse_token(t) for t in text.split())


class ObjectImage:
    start: int
    payload: bytes

    def __init__(self, start: int, payload: bytes = b''):
        if len(payload) > MAX_PAYLOAD:
            raise ObjectFormatError(f'Payload of {len(payload)} bytes does not fit the header')

        self.start = start
        self.payload = bytes(payload)

    def __repr__(self):
        return f'ObjectImage(start=0x{self.start:04X}, length=0x{len(self.payload):02X})'

    def __eq__(self, other):
        if not isinstance(other, ObjectImage):
            return NotImplemented

        return self.start == other.start and self.payload == other.payload


    def header(self) -> bytes:
        return bytes([(self.start >> 8) & BYTE_MASK, self.start & BYTE_MASK, len(self.payload)])

    def to_bytes(self) -> bytes:
        body = self.header() + self.payload
        return body + bytes([checksum(body)])

    def to_text(self) -> str:
        return format_tokens(self.to_bytes())

    @classmethod
    def from_bytes(cls, data: bytes, strict: bool = True) -> 'ObjectImage':
        if len(data) < HEADER_SIZE:
            raise ObjectFormatError('Object stream is shorter than its header')

        start = (data[0] << 8) | data[1]
        length = data[2]
        body = data[HEADER_SIZE:HEADER_SIZE + length]

        if len(body) < length:
            raise ObjectFormatError(f'Expected {length} payload bytes, got {len(body)}')

        image = cls(start, body)
        tail = data[HEADER_SIZE + length:]

        if not tail:
            if strict:
                raise ChecksumError('Object stream has no checksum byte')

            lg.warning(f'Object at 0x{start:04X} has no checksum byte')
            return image

        expected = checksum(data[:HEADER_SIZE + length])

        if tail[0] != expected:
            message = f'Checksum 0x{tail[0]:02X} does not match 0x{expected:02X}'

            if strict:
                raise ChecksumError(message)

            lg.warning(message)

        return image

    @classmethod
    def from_text(cls, text: str, strict: bool = True) -> 'ObjectImage':
        return cls.from_bytes(parse_tokens(text), strict)
