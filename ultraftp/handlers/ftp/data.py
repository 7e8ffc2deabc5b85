# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Whole-stream copies between a connected data socket and a local file
object (or an iterable of lines). They don't close the socket: callers
are in charge of that, whatever the outcome.

Every function returns the number of bytes copied. Failures on the
socket raise TransferError, failures reading or writing the local file
raise FileReadWriteError.
"""

from ultraftp.exceptions import FileReadWriteError
from ultraftp.exceptions import TransferError
from ultraftp.log import debug

__all__ = ["BUFSIZE", "receive_all", "receive_file", "send_file", "send_lines"]


BUFSIZE = 65536


def _sendall(sock, data):
    try:
        sock.sendall(data)
    except OSError as err:
        raise TransferError(f"data connection error: {err}") from err


def _recv(sock, bufsize):
    try:
        return sock.recv(bufsize)
    except OSError as err:
        raise TransferError(f"data connection error: {err}") from err


def send_file(sock, fileobj, bufsize=BUFSIZE):
    """Send the content of `fileobj` (opened in binary mode) until EOF."""
    total = 0
    while True:
        try:
            chunk = fileobj.read(bufsize)
        except OSError as err:
            raise FileReadWriteError(f"can't read file: {err}") from err
        if not chunk:
            break
        _sendall(sock, chunk)
        total += len(chunk)
    debug(f"send_file(): {total} bytes sent", inst=sock)
    return total


def receive_file(sock, fileobj, bufsize=BUFSIZE):
    """Write everything received from `sock` into `fileobj` until the
    remote end closes the connection.
    """
    total = 0
    while True:
        chunk = _recv(sock, bufsize)
        if not chunk:
            break
        try:
            fileobj.write(chunk)
        except OSError as err:
            raise FileReadWriteError(f"can't write file: {err}") from err
        total += len(chunk)
    debug(f"receive_file(): {total} bytes received", inst=sock)
    return total


def send_lines(sock, lines):
    """Send an iterable of already encoded (bytes) lines."""
    total = 0
    for line in lines:
        _sendall(sock, line)
        total += len(line)
    return total


def receive_all(sock, bufsize=BUFSIZE):
    """Read from `sock` until EOF and return the data as bytes."""
    chunks = []
    while True:
        chunk = _recv(sock, bufsize)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)
