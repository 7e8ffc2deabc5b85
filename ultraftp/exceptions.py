# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

__all__ = [
    "AuthorizationError",
    "DataConnectionError",
    "Error",
    "FileReadWriteError",
    "FilesystemError",
    "LoginError",
    "MalformedResponse",
    "NotFoundError",
    "ProtocolFormatError",
    "ReplyError",
    "TransferError",
    "TransferInProgress",
]


class Error(Exception):
    """Base class for ultraftp exceptions.

    If the error was caused by a reply received over the control
    connection, the parsed reply is available as the `response`
    attribute (None otherwise).
    """

    def __init__(self, msg="", response=None):
        if not msg and response is not None:
            msg = str(response)
        super().__init__(msg)
        self.response = response


class ProtocolFormatError(Error):
    """Raised on a malformed command, reply or address tuple."""


class MalformedResponse(ProtocolFormatError):
    """Raised when a reply read from the wire does not respect the
    "NNN<SP|->message" layout.
    """


class DataConnectionError(Error):
    """Raised when the data channel cannot be listened on, dialed
    or accepted.
    """


class ReplyError(Error):
    """Raised when the server replies with an unexpected code."""


class AuthorizationError(ReplyError):
    """Raised when a command is refused because the session is not
    logged in.
    """


class LoginError(AuthorizationError):
    """Raised when the USER / PASS exchange does not end with a
    successful login.
    """


class NotFoundError(ReplyError):
    """Raised when the remote file or directory does not exist."""


class TransferError(Error):
    """Raised when copying bytes over the data channel fails."""


class FileReadWriteError(TransferError):
    """Raised when reading or writing the local file during a
    transfer fails.
    """


class TransferInProgress(Error):
    """Raised when a control command is issued while a data transfer
    is still in flight.
    """


class FilesystemError(Error):
    """Custom class for filesystem-related exceptions.
    You can raise this from an AbstractedFS subclass in order to
    send a customized error string to the client.
    """
