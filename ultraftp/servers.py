# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
This module contains the main FTPServer class which listens on a
host:port and dispatches the incoming connections to a handler.

The main thread is only used to accept new connections: every time a
client connects a new thread is spawned which runs the handler's
blocking command loop until the client disconnects. This way the
handler is free to block (waiting for a data connection, copying a
file) without hanging the other sessions.

Sessions don't share anything but the registry of connected clients,
which is only locked to add or remove entries.
"""

import errno
import os
import select
import socket
import threading
import traceback

from .log import config_logging
from .log import debug
from .log import is_logging_configured
from .log import logger

__all__ = ["FTPServer"]


class FTPServer:
    """Creates a socket listening on <address>, dispatching the requests
    to a <handler> (typically FTPHandler class).

    Every connection is served by a separate thread.

     - (int) join_timeout: how many seconds to wait when join()ing
       session threads on close_all() (defaults to 5).

     - (float) poll_timeout: how often serve_forever() checks whether
       close_all() was called (defaults to 1.0).
    """

    join_timeout = 5
    poll_timeout = 1.0

    def __init__(self, address_or_socket, handler, root_dir=None, backlog=100):
        """Creates a socket listening on 'address' dispatching
        connections to a 'handler'.

         - (tuple) address_or_socket: the (host, port) pair on which
           the command channel will listen for incoming connections or
           an existent socket object.

         - (instance) handler: the handler class to use.

         - (str) root_dir: the directory served to clients, seen by
           them as "/" (defaults to the current working directory).

         - (int) backlog: the maximum number of queued connections
           passed to listen(). If a connection request arrives when
           the queue is full the client may raise ECONNRESET.
           Defaults to 100.
        """
        if root_dir is None:
            root_dir = os.getcwd()
        if not os.path.isdir(root_dir):
            raise ValueError(f"no such directory: {root_dir!r}")
        self.root_dir = os.path.realpath(root_dir)
        self.handler = handler
        self.backlog = backlog
        self._sessions = {}
        self._lock = threading.Lock()
        self._threads = []
        self._exit = threading.Event()
        if callable(getattr(address_or_socket, "listen", None)):
            self.socket = address_or_socket
        else:
            self.socket = socket.create_server(
                address_or_socket, family=socket.AF_INET, backlog=backlog
            )
        self.socket.listen(backlog)

    def __repr__(self):
        status = "closed" if self._exit.is_set() else "listening"
        return f"<{self.__class__.__name__}({self.root_dir!r}, {status})>"

    @property
    def address(self):
        return self.socket.getsockname()[:2]

    @property
    def sessions(self):
        """A snapshot of the connected sessions as a
        {"ip:port": handler} dict.
        """
        with self._lock:
            return dict(self._sessions)

    # --- session registry

    @staticmethod
    def _key(handler):
        return f"{handler.remote_ip}:{handler.remote_port}"

    def register(self, handler):
        with self._lock:
            self._sessions[self._key(handler)] = handler

    def unregister(self, handler):
        with self._lock:
            key = self._key(handler)
            if self._sessions.get(key) is handler:
                del self._sessions[key]

    # --- serving

    def _log_start(self):
        if not is_logging_configured():
            # If we get to this point it means the user hasn't
            # configured any logger. We want logging to be on
            # by default (stderr).
            config_logging()
        addr = self.address
        logger.info(
            ">>> starting FTP server on %s:%s, pid=%i <<<",
            addr[0],
            addr[1],
            os.getpid(),
        )
        logger.info("root directory: %r", self.root_dir)
        logger.info("concurrency model: multi-thread")
        logger.info("passive timeout: %s", self.handler.passive_dtp.timeout)

    def serve_forever(self, timeout=None, handle_exit=True):
        """Start serving.

         - (float) timeout: how often (in seconds) to check whether
           the server was asked to stop (defaults to poll_timeout).

         - (bool) handle_exit: when True catches KeyboardInterrupt and
           SystemExit exceptions (generally caused by SIGTERM / SIGINT
           signals) and gracefully exits after cleaning up resources.
           Also, logs server start and stop.
        """
        if timeout is None:
            timeout = self.poll_timeout
        if handle_exit:
            self._log_start()
            try:
                self._serve(timeout)
            except (KeyboardInterrupt, SystemExit):
                pass
            logger.info(
                ">>> shutting down FTP server (%s active sessions) <<<",
                len(self.sessions),
            )
            self.close_all()
        else:
            self._serve(timeout)

    def _serve(self, timeout):
        while not self._exit.is_set():
            try:
                readable, _, _ = select.select([self.socket], [], [], timeout)
            except (OSError, ValueError):
                # listening socket closed by close_all()
                if self._exit.is_set():
                    break
                raise
            if not readable:
                continue
            try:
                sock, addr = self.socket.accept()
            except OSError as err:
                if self._exit.is_set():
                    break
                # ECONNABORTED might be thrown on *BSD
                if err.errno in (errno.ECONNABORTED, errno.EAGAIN):
                    continue
                raise
            self.handle_accepted(sock, addr)

    def handle_accepted(self, sock, addr):
        """Called when remote client initiates a connection."""
        handler = None
        try:
            handler = self.handler(sock, self)
            if not handler.connected:
                sock.close()
                return
            self.register(handler)
            t = threading.Thread(
                target=self._loop, args=(handler,), name=repr(addr)
            )
            t.daemon = True
            t.start()
            with self._lock:
                # clean finished threads
                self._threads = [x for x in self._threads if x.is_alive()]
                self._threads.append(t)
        except Exception:
            # This is supposed to be an application bug that should
            # be fixed. We do not want to tear down the server though.
            logger.error(traceback.format_exc())
            if handler is not None:
                handler.close()
            else:
                sock.close()

    def _loop(self, handler):
        """Serve a single session in a separate thread."""
        try:
            handler.handle()
        except Exception:
            logger.error(traceback.format_exc())
        finally:
            handler.close()
            debug("session thread exited", inst=handler)

    def close_all(self):
        """Stop serving and also disconnect all currently connected
        clients.
        """
        self._exit.set()
        try:
            self.socket.close()
        except OSError:
            pass
        for handler in self.sessions.values():
            handler.shutdown()
        with self._lock:
            threads = self._threads[:]
            del self._threads[:]
        self._wait_for_threads(threads)

    def _wait_for_threads(self, threads):
        """Wait for session threads to terminate."""
        join_timeout = self.join_timeout
        for t in threads:
            if t is threading.current_thread():
                continue
            t.join(join_timeout)
            if t.is_alive():
                # don't wait again in case also other threads are
                # hanging
                join_timeout = 0
                logger.warning("thread %r didn't terminate; ignoring it", t)
