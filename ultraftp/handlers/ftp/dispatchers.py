# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import concurrent.futures
import re
import socket
import threading

from ultraftp.exceptions import DataConnectionError
from ultraftp.exceptions import ProtocolFormatError
from ultraftp.log import debug
from ultraftp.log import logger

__all__ = [
    "ActiveDTP",
    "PassiveDTP",
    "dial",
    "format_address",
    "parse_address",
    "parse_pasv_response",
]


_pasv_re = re.compile(r"\(([^)]*)\)")


def format_address(ip, port):
    """Render an IPv4 address and a port in the "h1,h2,h3,h4,p1,p2"
    form used by PORT and by 227 replies.
    """
    octets = ip.split(".")
    if len(octets) != 4:
        raise ProtocolFormatError(f"not an IPv4 address: {ip!r}")
    if not 0 <= port <= 65535:
        raise ProtocolFormatError(f"port out of range: {port!r}")
    return "%s,%d,%d" % (",".join(octets), port // 256, port % 256)


def parse_address(text):
    """Parse "h1,h2,h3,h4,p1,p2" and return an (ip, port) tuple where
    port is p1 * 256 + p2.
    """
    fields = text.strip().split(",")
    if len(fields) != 6:
        raise ProtocolFormatError(f"invalid address tuple: {text!r}")
    try:
        numbers = [int(x) for x in fields]
    except ValueError:
        raise ProtocolFormatError(
            f"invalid address tuple: {text!r}"
        ) from None
    if any(not 0 <= x <= 255 for x in numbers):
        raise ProtocolFormatError(f"invalid address tuple: {text!r}")
    ip = ".".join(str(x) for x in numbers[:4])
    port = numbers[4] * 256 + numbers[5]
    return ip, port


def parse_pasv_response(message):
    """Extract (ip, port) from the text of a 227 reply, e.g.
    "Entering Passive Mode (127,0,0,1,4,1).".
    """
    match = _pasv_re.search(message)
    if match is None:
        raise ProtocolFormatError(f"invalid 227 reply: {message!r}")
    return parse_address(match.group(1))


class PassiveDTP:
    """Creates a socket listening on a local port and accepts the one
    incoming data connection. Used for handling PASV command.

    The accept runs on a daemon thread and its result is handed over
    to the session thread through a one-shot future.

     - (int) timeout: the timeout for a remote client to establish
       connection with the listening socket. Defaults to 30 seconds.
       None waits forever, 0 only polls.

     - (int) backlog: the maximum number of queued connections passed
       to listen(). Defaults to 1.
    """

    timeout = 30
    backlog = 1

    def __init__(self, cmd_channel):
        """Initialize the passive data server.

        - (instance) cmd_channel: the command channel class instance.
        """
        self.cmd_channel = cmd_channel
        self._lock = threading.Lock()
        self._closed = False
        self._claimed = False
        self._future = concurrent.futures.Future()
        self._thread = None
        local_ip = cmd_channel.socket.getsockname()[0]
        if local_ip.startswith("::ffff:"):
            local_ip = local_ip[7:]
        try:
            self.socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            try:
                # By using 0 as port number value we let kernel choose
                # a free unprivileged random port.
                self.socket.bind((local_ip, 0))
                self.socket.listen(self.backlog)
            except OSError:
                self.socket.close()
                raise
        except OSError as err:
            raise DataConnectionError(
                f"can't listen on {local_ip}: {err}"
            ) from err

    def __repr__(self):
        status = "closed" if self._closed else "listening"
        try:
            addr = "%s:%s" % self.address
        except OSError:
            addr = "?"
        return f"<{self.__class__.__name__} {addr} {status}>"

    @property
    def address(self):
        """The (ip, port) pair the listener is bound to."""
        return self.socket.getsockname()[:2]

    def start(self):
        """Start waiting for the incoming data connection in a
        separate thread.
        """
        self._thread = threading.Thread(
            target=self._accept, name=f"pasv-{self.address[1]}", daemon=True
        )
        self._thread.start()

    def _accept(self):
        try:
            sock, addr = self.socket.accept()
        except OSError as err:
            with self._lock:
                if not self._future.done():
                    self._future.set_exception(
                        DataConnectionError(f"accept() failed: {err}")
                    )
            return
        with self._lock:
            if self._closed:
                sock.close()
                return
            self._future.set_result(sock)
        debug(f"accepted data connection from {addr[0]}:{addr[1]}", self)

    def get_channel(self):
        """Return the accepted data socket. Raise DataConnectionError
        if no client connected within `timeout` seconds.
        """
        try:
            sock = self._future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError:
            raise DataConnectionError(
                "passive data channel timed out"
            ) from None
        with self._lock:
            self._claimed = True
        return sock

    def close(self):
        """Close the listener and any accepted connection nobody
        claimed yet.
        """
        debug("call: close()", inst=self)
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if not self._future.done():
                self._future.set_exception(
                    DataConnectionError("passive data channel closed")
                )
            sock = None
            if not self._claimed and self._future.exception() is None:
                sock = self._future.result()
        # shutdown() wakes up a thread blocked in accept()
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self.socket.close()
        if sock is not None:
            sock.close()


class ActiveDTP:
    """Connects to remote client's data socket. Used for handling
    PORT command.

     - (int) timeout: the timeout for us to establish connection with
       the client's listening data socket.
    """

    timeout = 30

    def __init__(self, ip, port, cmd_channel):
        """Initialize the active data channel attempting to connect
        to remote data socket.

         - (str) ip: the remote IP address.
         - (int) port: the remote port.
         - (instance) cmd_channel: the command channel class instance.
        """
        self.cmd_channel = cmd_channel
        self._normalized_addr = f"{ip}:{port}"
        try:
            self.socket = socket.create_connection(
                (ip, port), timeout=self.timeout
            )
        except OSError as err:
            logger.debug(
                "can't connect to %s: %s", self._normalized_addr, err
            )
            raise DataConnectionError(
                f"can't connect to {self._normalized_addr}: {err}"
            ) from err
        self.socket.settimeout(None)

    def __repr__(self):
        return f"<{self.__class__.__name__} {self._normalized_addr}>"

    def get_channel(self):
        """Return the connected data socket."""
        return self.socket

    def close(self):
        debug("call: close()", inst=self)
        self.socket.close()


def dial(ip, port, timeout=None):
    """Open a data connection to (ip, port), as done by a client in
    passive mode.
    """
    try:
        return socket.create_connection((ip, port), timeout=timeout)
    except OSError as err:
        raise DataConnectionError(
            f"can't connect to {ip}:{port}: {err}"
        ) from err
