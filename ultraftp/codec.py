# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Wire format shared by both ends of the control connection.

Replies are made of a three-digit code followed by a space (last line)
or by a hyphen (first line of a multi-line reply):

    211-Features:
     UTF8
    211 End

Requests are "VERB[ PARAM]" lines. Every line is CRLF terminated.
"""

import collections

from .exceptions import MalformedResponse

__all__ = [
    "CRLF",
    "Command",
    "Response",
    "encode",
    "encode_multi",
    "parse_command",
    "read_response",
]


CRLF = b"\r\n"
ENCODING = "utf8"
UNICODE_ERRORS = "replace"


class Response(
    collections.namedtuple("Response", ["code", "message", "continuation"])
):
    """A reply as seen by the caller: a whole logical unit, never a
    partial multi-line block.

    - (int) code: the three-digit reply code.
    - (str) message: the reply text; lines of a multi-line reply are
      joined with "\\n".
    - (bool) continuation: whether the reply spanned multiple lines.
    """

    __slots__ = ()

    def __str__(self):
        return f"{self.code} {self.message}"

    @property
    def lines(self):
        return self.message.split("\n")


Command = collections.namedtuple("Command", ["verb", "arg"])


def _check_code(code):
    if not isinstance(code, int) or not 100 <= code <= 599:
        raise ValueError(f"invalid reply code {code!r}")


def encode(code, message, encoding=ENCODING, errors=UNICODE_ERRORS):
    """Return a single-line reply as bytes, CRLF terminated."""
    _check_code(code)
    return f"{code} {message}\r\n".encode(encoding, errors)


def encode_multi(code, messages, encoding=ENCODING, errors=UNICODE_ERRORS):
    """Return a multi-line reply block as bytes.

    The first line is tagged "CODE-", the last one "CODE " and the
    lines in between are indented by one space.
    """
    _check_code(code)
    messages = list(messages)
    if not messages:
        raise ValueError("no messages to encode")
    if len(messages) == 1:
        return encode(code, messages[0], encoding, errors)
    lines = [f"{code}-{messages[0]}"]
    lines.extend(f" {msg}" for msg in messages[1:-1])
    lines.append(f"{code} {messages[-1]}")
    return ("\r\n".join(lines) + "\r\n").encode(encoding, errors)


def _is_tagged(line):
    return (
        len(line) >= 4
        and line[:3].isdigit()
        and line[3:4] in (b" ", b"-")
    )


def _strip_eol(line):
    if line.endswith(b"\n"):
        line = line[:-1]
    if line.endswith(b"\r"):
        line = line[:-1]
    return line


def read_response(readline, encoding=ENCODING, errors=UNICODE_ERRORS):
    """Read one logical reply using `readline`, a callable returning
    the next CRLF terminated line as bytes (e.g. the readline method
    of a socket makefile("rb")).

    Raise MalformedResponse on a badly formed reply and EOFError if
    the stream ends before the reply is complete.
    """
    line = readline()
    if not line:
        raise EOFError("connection closed while reading reply")
    line = _strip_eol(line)
    if not _is_tagged(line) or line[:1] not in b"12345":
        raise MalformedResponse(
            f"invalid reply format: {line.decode(encoding, errors)!r}"
        )
    code = line[:3]
    parts = [line[4:]]
    continuation = line[3:4] == b"-"
    if continuation:
        while True:
            line = readline()
            if not line:
                raise EOFError("connection closed inside multi-line reply")
            line = _strip_eol(line)
            if line[:3] == code and line[3:4] == b" ":
                parts.append(line[4:])
                break
            if line[:3] == code and line[3:4] == b"-":
                parts.append(line[4:])
            else:
                parts.append(line)
    message = b"\n".join(parts).decode(encoding, errors)
    return Response(int(code), message, continuation)


def parse_command(line):
    """Split a request line into a Command(verb, arg) tuple where verb
    is upper-cased and arg is the remainder of the line (possibly
    empty). Return None for blank lines.
    """
    if isinstance(line, bytes):
        line = line.decode(ENCODING, UNICODE_ERRORS)
    line = line.strip()
    if not line:
        return None
    verb, _, arg = line.partition(" ")
    return Command(verb.upper(), arg)
