# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.


import functools
import logging
import os
import shutil
import stat
import sys
import tempfile
import threading
import time
import unittest
import warnings

import psutil

from ultraftp.handlers import FTPHandler
from ultraftp.servers import FTPServer

HERE = os.path.realpath(os.path.abspath(os.path.dirname(__file__)))
ROOT_DIR = os.path.realpath(os.path.join(HERE, "..", ".."))

POSIX = os.name == "posix"
WINDOWS = os.name == "nt"

GITHUB_ACTIONS = "GITHUB_ACTIONS" in os.environ or "CIBUILDWHEEL" in os.environ
CI_TESTING = GITHUB_ACTIONS
PYTEST_PARALLEL = "PYTEST_XDIST_WORKER" in os.environ

# PASV replies only carry IPv4 addresses
HOST = "127.0.0.1"

USER = "anonymous"
PASSWD = "guest@"
# Use PID to disambiguate file name for parallel testing.
TESTFN_PREFIX = f"ultraftp-tmp-{os.getpid()}-"
GLOBAL_TIMEOUT = 2
NO_RETRIES = 5

if CI_TESTING:
    GLOBAL_TIMEOUT *= 3
    NO_RETRIES *= 3


class UltraftpTestCase(unittest.TestCase):
    """All test classes inherit from this one."""

    def setUp(self):
        super().setUp()
        reset_server_opts()

    def __str__(self):
        # Print a full path representation of the single unit tests
        # being run.
        fqmod = self.__class__.__module__
        if not fqmod.startswith("ultraftp."):
            fqmod = "ultraftp.test." + fqmod
        return f"{fqmod}.{self.__class__.__name__}.{self._testMethodName}"

    def get_testfn(self, suffix="", dir=None):
        fname = get_testfn(suffix=suffix, dir=dir)
        self.addCleanup(safe_rmpath, fname)
        return fname

    def get_testdir(self):
        """Create a temporary directory and return its real path."""
        dirname = self.get_testfn()
        os.mkdir(dirname)
        return os.path.realpath(dirname)


def close_client(session):
    """Closes a ftplib.FTP or FTPClient session."""
    try:
        if session.sock is not None:
            try:
                session.quit()
            except Exception:
                pass
    finally:
        session.close()


def get_testfn(suffix="", dir=None):
    """Return an absolute pathname of a file or dir that did not
    exist at the time this call is made. Also schedule it for safe
    deletion at interpreter exit. It's technically racy but probably
    not really due to the time variant.
    """
    if dir is None:
        dir = os.getcwd()
    while True:
        name = tempfile.mktemp(prefix=TESTFN_PREFIX, suffix=suffix, dir=dir)
        if not os.path.exists(name):  # also include dirs
            return os.path.basename(name)


def safe_rmpath(path):
    """Convenience function for removing temporary test files or dirs."""

    def retry_fun(fun):
        # On Windows it could happen that the file or directory has
        # open handles or references preventing the delete operation
        # to succeed immediately, so we retry for a while. See:
        # https://bugs.python.org/issue33240
        stop_at = time.time() + GLOBAL_TIMEOUT
        while time.time() < stop_at:
            try:
                return fun()
            except FileNotFoundError:
                pass
            except OSError as _:
                err = _
                warnings.warn(f"ignoring {err!s}", UserWarning, stacklevel=2)
            time.sleep(0.01)
        raise err

    try:
        st = os.lstat(path)
        if stat.S_ISDIR(st.st_mode):
            fun = functools.partial(shutil.rmtree, path)
        else:
            fun = functools.partial(os.remove, path)
        if POSIX:
            fun()
        else:
            retry_fun(fun)
    except FileNotFoundError:
        pass


def touch(name, data=b""):
    """Create a file with `data` as content and return its name."""
    with open(name, "wb") as f:
        f.write(data)
        return f.name


def disable_log_warning(fun):
    """Temporarily set FTP server's logging level to ERROR."""

    @functools.wraps(fun)
    def wrapper(self, *args, **kwargs):
        logger = logging.getLogger("ultraftp")
        level = logger.getEffectiveLevel()
        logger.setLevel(logging.ERROR)
        try:
            return fun(self, *args, **kwargs)
        finally:
            logger.setLevel(level)

    return wrapper


def retry_on_failure(fun):
    """Decorator which runs a test function and retries N times before
    actually failing.
    """

    @functools.wraps(fun)
    def wrapper(self, *args, **kwargs):
        for x in range(NO_RETRIES):
            try:
                return fun(self, *args, **kwargs)
            except AssertionError as exc:
                if x + 1 >= NO_RETRIES:
                    raise
                msg = f"{exc!r}, retrying"
                print(msg, file=sys.stderr)  # noqa: T201
                if PYTEST_PARALLEL:
                    warnings.warn(msg, ResourceWarning, stacklevel=2)
                self.tearDown()
                self.setUp()

    return wrapper


def call_until(fun, expr, timeout=GLOBAL_TIMEOUT):
    """Keep calling function for timeout secs and exit if eval()
    expression is True.
    """
    stop_at = time.time() + timeout
    while time.time() < stop_at:
        ret = fun()
        if eval(expr):
            return ret
        time.sleep(0.001)
    raise RuntimeError(f"timed out (ret={ret!r})")


def assert_free_resources(parent_pid=None, threads_before=None):
    # check orphaned threads (PASV accept threads are daemons and
    # exit as soon as their listener is closed)
    if threads_before is None:
        threads_before = {threading.main_thread()}
    try:
        call_until(
            lambda: set(threading.enumerate()) - threads_before,
            "not ret",
        )
    except RuntimeError as err:
        warnings.warn(
            f"some threads didn't terminate {err}", UserWarning, stacklevel=2
        )
    # check unclosed connections
    this_proc = psutil.Process(parent_pid or os.getpid())
    if POSIX:
        cons = [
            x
            for x in this_proc.net_connections("tcp")
            if x.status
            not in (psutil.CONN_CLOSE_WAIT, psutil.CONN_TIME_WAIT)
        ]
        if cons:
            warnings.warn(
                f"some connections didn't close (pid={os.getpid()!r})"
                f" {str(cons)!r}",
                UserWarning,
                stacklevel=2,
            )


def reset_server_opts():
    # Since all ultraftp configurable "options" are class attributes
    # we reset them at module.class level.
    import ultraftp.client  # noqa: PLC0415
    import ultraftp.handlers  # noqa: PLC0415
    import ultraftp.servers  # noqa: PLC0415

    # Control handler.
    klass = ultraftp.handlers.FTPHandler
    klass.banner = "ultraftp ready."
    klass.timeout = None
    klass.use_gmt_times = True
    klass.encoding = "utf8"
    klass.unicode_errors = "replace"
    klass.passive_dtp = ultraftp.handlers.PassiveDTP
    klass.active_dtp = ultraftp.handlers.ActiveDTP

    # Data channel negotiators.
    ultraftp.handlers.PassiveDTP.timeout = GLOBAL_TIMEOUT
    ultraftp.handlers.ActiveDTP.timeout = GLOBAL_TIMEOUT

    # Acceptor.
    ultraftp.servers.FTPServer.join_timeout = GLOBAL_TIMEOUT
    ultraftp.servers.FTPServer.poll_timeout = 1.0

    # Client.
    ultraftp.client.FTPClient.timeout = None


class FtpdThreadWrapper(threading.Thread):
    """A threaded FTP server used for running tests.
    This is basically a modified version of the FTPServer class which
    wraps the accept loop into a thread.
    The instance returned can be start()ed and stop()ped.
    """

    handler = FTPHandler
    server_class = FTPServer
    poll_interval = 0.01
    # Makes the thread stop on interpreter exit.
    daemon = True

    def __init__(self, root_dir, addr=None, handler=None):
        self.parent_pid = os.getpid()
        self.threads_before = set(threading.enumerate())
        super().__init__(name="test-ftpd")
        if handler is not None:
            self.handler = handler
        addr = (HOST, 0) if addr is None else addr
        self.server = self.server_class(addr, self.handler, root_dir=root_dir)
        self.host, self.port = self.server.address

    def run(self):
        self.server.serve_forever(
            timeout=self.poll_interval, handle_exit=False
        )

    def stop(self):
        self.server.close_all()
        self.join(GLOBAL_TIMEOUT)
        reset_server_opts()
        assert_free_resources(self.parent_pid, self.threads_before)
