"""Parsing of RWKV vocabulary files.

Each line holds one token written as a Python-style byte literal, for example
``b'hello'`` or ``b"\\xe4\\xbd"``. Tokens may contain partial UTF-8 sequences,
so they are decoded to raw bytes rather than text.
"""

import logging
from typing import List, Optional

from gguf_pack.errors import EmptyTokenError, InvalidTokenFormatError, UnknownEscapeError

logger = logging.getLogger(__name__)

_SIMPLE_ESCAPES = {
    "\\": b"\\",
    "'": b"'",
    '"': b'"',
    "t": b"\t",
    "r": b"\r",
    "n": b"\n",
}

_HEX_DIGITS = set("0123456789abcdefABCDEF")


def parse_vocab(raw: str) -> List[bytes]:
    """Parse vocabulary text into a list of byte tokens.

    Args:
        raw: Full vocabulary text, one byte literal per line

    Returns:
        Tokens in file order

    Raises:
        InvalidTokenFormatError: If a line is not a quoted byte literal
        UnknownEscapeError: If a token uses an unsupported escape
        EmptyTokenError: If a token decodes to nothing
    """
    lines = raw.split("\n")
    if lines and lines[-1] == "":
        lines.pop()

    vocab = []
    for number, line in enumerate(lines, start=1):
        line = line.rstrip("\r")
        token = parse_vocab_line(line, number)
        if not token:
            raise EmptyTokenError("empty tokens not allowed", line=number)
        vocab.append(token)

    logger.debug(f"Parsed {len(vocab)} vocabulary tokens")
    return vocab


def parse_vocab_line(line: str, number: Optional[int] = None) -> bytes:
    """Decode one quoted byte literal line."""
    if (
        len(line) < 3
        or not (line.startswith("b'") or line.startswith('b"'))
        or not (line.endswith("'") or line.endswith('"'))
    ):
        raise InvalidTokenFormatError(
            f"invalid tokenizer format: {line[:40]!r}", line=number
        )

    return unescape(line[2:-1], number)


def unescape(value: str, number: Optional[int] = None) -> bytes:
    """Resolve escape sequences into raw bytes.

    Escaped ``\\xHH`` sequences may form partial codepoints, so the output
    is assembled as bytes; unescaped characters are encoded as UTF-8.
    """
    output = bytearray()
    i = 0
    while i < len(value):
        c = value[i]
        if c != "\\":
            output += c.encode("utf-8")
            i += 1
            continue

        if i + 1 >= len(value):
            raise UnknownEscapeError("dangling escape at end of token", line=number)

        code = value[i + 1]
        if code in _SIMPLE_ESCAPES:
            output += _SIMPLE_ESCAPES[code]
            i += 2
        elif code == "x":
            digits = value[i + 2 : i + 4]
            if len(digits) != 2 or not set(digits) <= _HEX_DIGITS:
                raise UnknownEscapeError(
                    f"invalid hex escape \\x{digits}", line=number
                )
            output.append(int(digits, 16))
            i += 4
        else:
            raise UnknownEscapeError(
                f"unknown escape sequence \\{code}", line=number
            )

    return bytes(output)


def escape_single_byte(token: bytes) -> bytes:
    """Spell out a lone non-UTF-8 byte token as a literal ``\\xNN`` escape.

    llama.cpp does not handle single-byte tokens that are not valid UTF-8,
    so such tokens are stored as escape text instead.
    """
    if len(token) != 1:
        return token
    value = token[0]
    if value == 0 or value >= 0x80:
        return f"\\x{value:02x}".encode("ascii")
    return token
