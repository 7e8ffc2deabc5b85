# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import os
import socket
import time
import traceback

from ultraftp.codec import encode
from ultraftp.codec import encode_multi
from ultraftp.codec import parse_command
from ultraftp.exceptions import DataConnectionError
from ultraftp.exceptions import FileReadWriteError
from ultraftp.exceptions import FilesystemError
from ultraftp.exceptions import ProtocolFormatError
from ultraftp.exceptions import TransferError
from ultraftp.filesystems import AbstractedFS
from ultraftp.log import debug
from ultraftp.log import logger
from ultraftp.utils import strerror

from .data import receive_file
from .data import send_file
from .data import send_lines
from .dispatchers import ActiveDTP
from .dispatchers import PassiveDTP
from .dispatchers import format_address
from .dispatchers import parse_address

__all__ = ["FTPHandler", "proto_cmds"]


proto_cmds = {
    "CDUP": dict(
        auth=True,
        help="Syntax: CDUP (go to parent directory).",
    ),
    "CWD": dict(
        auth=True,
        help="Syntax: CWD [<SP> dir-name] (change working directory).",
    ),
    "FEAT": dict(
        auth=False,
        help="Syntax: FEAT (list all new features supported).",
    ),
    "LIST": dict(
        auth=True,
        help="Syntax: LIST [<SP> path] (list files).",
    ),
    "PASS": dict(
        auth=False,
        help="Syntax: PASS [<SP> password] (set user password).",
    ),
    "PASV": dict(
        auth=False,
        help="Syntax: PASV (open passive data connection).",
    ),
    "PORT": dict(
        auth=False,
        help="Syntax: PORT <sp> h,h,h,h,p,p (open active data connection).",
    ),
    "PWD": dict(
        auth=False,
        help="Syntax: PWD (get current working directory).",
    ),
    "QUIT": dict(
        auth=False,
        help="Syntax: QUIT (quit current session).",
    ),
    "RETR": dict(
        auth=True,
        help="Syntax: RETR <SP> file-name (retrieve a file).",
    ),
    "STOR": dict(
        auth=True,
        help="Syntax: STOR <SP> file-name (store a file).",
    ),
    "SYST": dict(
        auth=False,
        help="Syntax: SYST (get operating system type).",
    ),
    "TYPE": dict(
        auth=False,
        help="Syntax: TYPE <SP> [A | I] (set transfer type).",
    ),
    "USER": dict(
        auth=False,
        help="Syntax: USER <SP> user-name (set username).",
    ),
}

# LIST arguments some clients send meaning "/bin/ls -l" style output
# of the current directory.
_list_flags = ("-a", "-l", "-al", "-la")

timer = time.monotonic


class FTPHandler:
    """Implements the FTP server Protocol Interpreter (see RFC-959),
    handling commands received from the client on the control channel.

    One instance is created per accepted connection and handle() is
    run on a dedicated thread by FTPServer.

    All relevant session information is stored in class attributes
    reproduced below and can be modified before instantiating this
    class.

     - (str) banner: the string sent when client connects.

     - (float) timeout: the timeout applied to control connection reads
       and writes (defaults to None, no timeout).

     - (bool) use_gmt_times: when True causes the server to report all
       LIST times in GMT and not local time (defaults True).

     - (str) encoding: the encoding used for the control and listing
       channels (defaults "utf8").

     - (str) unicode_errors: the error handler passed to ''.encode()
       and ''.decode() (defaults "replace").

     - (instance) passive_dtp: class used for handling PASV.

     - (instance) active_dtp: class used for handling PORT.

     - (instance) abstracted_fs: class used to interact with the
       file system providing a virtual root directory.

    Session state (per instance):

     - (bool) authenticated: True after PASS.

     - (str) username: the name passed to the last USER command.

     - (instance) fs: the AbstractedFS instance holding the current
       working directory.
    """

    # these are overridable defaults

    # default classes
    passive_dtp = PassiveDTP
    active_dtp = ActiveDTP
    abstracted_fs = AbstractedFS
    proto_cmds = proto_cmds

    # session attributes (explained in the docstring)
    timeout = None
    banner = "ultraftp ready."
    use_gmt_times = True
    encoding = "utf8"
    unicode_errors = "replace"

    def __init__(self, conn, server):
        """Initialize the command channel.

        - (instance) conn: the socket object instance of the newly
           established connection.
        - (instance) server: the FTPServer instance which accepted
           the connection.
        """
        self.socket = conn
        self.server = server
        self.authenticated = False
        self.username = ""
        self.fs = None
        self.connected = True
        self._dtp = None
        self._closing = False
        self._rfile = None
        try:
            self.remote_ip, self.remote_port = conn.getpeername()[:2]
        except OSError as err:
            self.remote_ip, self.remote_port = "", 0
            self.connected = False
            debug(f"getpeername() failed: {err}", self)
            return
        if self.remote_ip.startswith("::ffff:"):
            self.remote_ip = self.remote_ip[7:]
        conn.settimeout(self.timeout)
        self.fs = self.abstracted_fs(server.root_dir, self)

    def __repr__(self):
        return "<%s(%s)>" % (self.__class__.__name__, self._repr_info())

    __str__ = __repr__

    def _repr_info(self):
        status = "connected" if self.connected else "disconnected"
        return (
            f"{self.remote_ip}:{self.remote_port}, user={self.username!r},"
            f" {status}"
        )

    # --- main loop

    def handle(self):
        """Send the welcome banner and serve commands until the client
        quits or disconnects.
        """
        if not self.connected:
            return
        self.log("FTP session opened (connect)")
        try:
            self._rfile = self.socket.makefile("rb")
            self.respond(220, self.banner)
            while not self._closing:
                line = self._rfile.readline()
                if not line:
                    self.log("control connection closed by client")
                    break
                if not line.endswith(b"\n"):
                    # peer closed the connection mid-line
                    break
                self.found_terminator(line)
        except OSError as err:
            if self.connected:
                self.log(
                    f"control connection error: {strerror(err)}",
                    logfun=logger.warning,
                )
        except Exception:
            self.handle_error()
        finally:
            self.close()

    def found_terminator(self, line):
        """Called for every complete line received on the control
        connection.
        """
        cmd = parse_command(line)
        if cmd is None:
            return
        if cmd.verb == "PASS":
            debug("<- PASS ******", self)
        else:
            debug(f"<- {cmd.verb} {cmd.arg}".rstrip(), self)
        self.process_command(cmd.verb, cmd.arg)

    def process_command(self, cmd, arg):
        """Process command by calling the corresponding ftp_* class
        method (e.g. for received command "MKD pathname", ftp_MKD()
        method is called with "pathname" as the argument).
        """
        if cmd not in self.proto_cmds:
            self.respond(502, "Command not implemented.")
            self.log_cmd(cmd, arg, 502, "Command not implemented.")
            return
        if self.proto_cmds[cmd]["auth"] and not self.authenticated:
            self.respond(530, "Not logged in.")
            self.log_cmd(cmd, arg, 530, "Not logged in.")
            return
        method = getattr(self, "ftp_" + cmd)
        method(arg)

    def close(self):
        """Close the current channel disconnecting the client."""
        debug("call: close()", inst=self)
        if not self.connected:
            return
        self.connected = False
        self._shutdown_dtp()
        if self._rfile is not None:
            self._rfile.close()
        try:
            self.socket.close()
        except OSError:
            pass
        if self.fs is not None:
            self.log("FTP session closed (disconnect).")
        unregister = getattr(self.server, "unregister", None)
        if unregister is not None:
            unregister(self)

    def shutdown(self):
        """Force the control connection down; the thread serving this
        session will exit as soon as its blocking read returns.
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    # --- utility

    def respond(self, code, msg, logfun=None):
        """Send a single line response to the client."""
        self._send(encode(code, msg, self.encoding, self.unicode_errors))
        debug(f"-> {code} {msg}", self)
        if logfun is not None:
            self.log(f"{code} {msg}", logfun=logfun)

    def respond_multi(self, code, lines):
        """Send a multi-line response to the client."""
        self._send(
            encode_multi(code, lines, self.encoding, self.unicode_errors)
        )
        debug(f"-> {code} {' | '.join(lines)}", self)

    def _send(self, data):
        self.socket.sendall(data)

    def log(self, msg, logfun=logger.info):
        """Log a message, including additional identifying session data."""
        prefix = f"{self.remote_ip}:{self.remote_port}-[{self.username}]"
        logfun(f"{prefix} {msg}")

    def log_cmd(self, cmd, arg, respcode, respstr):
        """Log commands and responses in a standardized format.

         - (str) cmd:
            the command sent by client

         - (str) arg:
            the command argument sent by client.

         - (int) respcode:
            the response code as being sent by server.

         - (str) respstr:
            the response string as being sent by server.
        """
        line = f"{cmd} {arg}".strip()
        self.log(f"{line} {respcode} {respstr}", logfun=logger.debug)

    def log_transfer(self, cmd, filename, completed, nbytes, elapsed):
        """Log a file transfer (or a listing) once it is over."""
        self.log(
            "%s %s completed=%s bytes=%s seconds=%s"
            % (cmd, filename, int(completed), nbytes, round(elapsed, 3))
        )

    def _shutdown_dtp(self):
        """Close the data channel (or the passive listener) if any and
        leave the slot empty.
        """
        dtp, self._dtp = self._dtp, None
        if dtp is not None:
            dtp.close()

    def _take_data_channel(self):
        """Remove the data channel negotiator from the session slot and
        return it (None if PASV or PORT were not issued).
        """
        dtp, self._dtp = self._dtp, None
        return dtp

    def _run_transfer(self, cmd, filename, dtp, copy):
        """Wait for the data connection, run `copy(sock)` and send the
        completion response. The data channel is always closed before
        the completion response is sent.
        """
        start = timer()
        nbytes = 0
        try:
            sock = dtp.get_channel()
        except DataConnectionError as err:
            dtp.close()
            self.log(f"{cmd} {filename}: {err}", logfun=logger.warning)
            self.respond(425, "Cannot open data connection.")
            return False
        try:
            nbytes = copy(sock)
        except FileReadWriteError as err:
            code = 451
            msg = "Requested action aborted: local error in processing."
            self.log(f"{cmd} {filename}: {err}", logfun=logger.warning)
        except TransferError as err:
            code = 426
            msg = "Connection closed; transfer aborted."
            self.log(f"{cmd} {filename}: {err}", logfun=logger.warning)
        else:
            code = None
        finally:
            try:
                sock.close()
            finally:
                dtp.close()
        elapsed = timer() - start
        self.log_transfer(cmd, filename, code is None, nbytes, elapsed)
        if code is not None:
            self.respond(code, msg)
            return False
        return True

    def _resolve(self, arg):
        """Return a (ftp_path, real_path) pair for `arg`; ftp_path is
        None if the path escapes the served root or can't be used as a
        file system path.
        """
        ftp_path = self.fs.ftpnorm(arg)
        real_path = self.fs.ftp2fs(arg)
        try:
            valid = self.fs.validpath(real_path)
        except ValueError as err:
            # e.g. "embedded null byte"
            self.log(f"{ftp_path!r}: {err}", logfun=logger.warning)
            return None, real_path
        if not valid:
            self.log(
                f"{ftp_path!r} points outside root", logfun=logger.warning
            )
            return None, real_path
        return ftp_path, real_path

    # --- connection

    def ftp_PORT(self, line):
        """Start an active data channel by using IPv4."""
        # close existent DTP-server instance, if any.
        self._shutdown_dtp()
        try:
            ip, port = parse_address(line)
        except ProtocolFormatError:
            self.respond(501, "Invalid PORT command.")
            self.log_cmd("PORT", line, 501, "Invalid PORT command.")
            return
        try:
            self._dtp = self.active_dtp(ip, port, self)
        except DataConnectionError as err:
            self.log(f"PORT {ip}:{port}: {err}", logfun=logger.warning)
            self.respond(425, "Cannot open data connection.")
            return
        self.respond(200, "PORT command successful.")
        self.log_cmd("PORT", f"{ip}:{port}", 200, "PORT command successful.")

    def ftp_PASV(self, line):
        """Start a passive data channel by using IPv4."""
        # close existing DTP-server instance, if any
        self._shutdown_dtp()
        try:
            dtp = self.passive_dtp(self)
        except DataConnectionError as err:
            self.log(f"PASV: {err}", logfun=logger.warning)
            self.respond(425, "Cannot open data connection.")
            return
        dtp.start()
        self._dtp = dtp
        ip, port = dtp.address
        self.respond(
            227, "Entering Passive Mode (%s)." % format_address(ip, port)
        )

    def ftp_QUIT(self, line):
        """Quit the current session disconnecting the client."""
        self.respond(221, "Goodbye.")
        self.log_cmd("QUIT", line, 221, "Goodbye.")
        self._closing = True

    # --- data transferring

    def ftp_LIST(self, path):
        """Return a list of files in the specified directory to the
        client.
        """
        # - If no argument, fall back on cwd as default.
        # - Some older FTP clients erroneously issue /bin/ls-like LIST
        #   formats in which case we fall back on cwd as default.
        if not path or path.lower() in _list_flags:
            path = self.fs.cwd
        dtp = self._take_data_channel()
        if dtp is None:
            self.respond(425, "Use PORT or PASV first.")
            return
        ftp_path, real_path = self._resolve(path)
        if ftp_path is None:
            dtp.close()
            self.respond(550, "Permission denied.")
            return
        try:
            if self.fs.isdir(real_path):
                listing = self.fs.listdir(real_path)
                basedir = real_path
            elif self.fs.lexists(real_path):
                basedir, filename = os.path.split(real_path)
                listing = [filename]
            else:
                raise FileNotFoundError(real_path)
        except (OSError, FilesystemError) as err:
            dtp.close()
            self.log(f"LIST {ftp_path}: {err}", logfun=logger.warning)
            self.respond(550, "File not found.")
            return
        lines = self.fs.format_list(basedir, listing)
        self.respond(150, "Here comes the directory listing.")
        if self._run_transfer(
            "LIST", ftp_path, dtp, lambda sock: send_lines(sock, lines)
        ):
            self.respond(226, "Directory send OK.")

    def ftp_RETR(self, file):
        """Retrieve the specified file (transfer from the server to the
        client).
        """
        dtp = self._take_data_channel()
        if dtp is None:
            self.respond(425, "Use PORT or PASV first.")
            return
        ftp_path, real_path = self._resolve(file)
        if ftp_path is None:
            dtp.close()
            self.respond(550, "Permission denied.")
            return
        try:
            if not self.fs.isfile(real_path):
                raise FileNotFoundError(real_path)
            fd = self.fs.open(real_path, "rb")
        except (OSError, FilesystemError) as err:
            dtp.close()
            self.log(f"RETR {ftp_path}: {err}", logfun=logger.warning)
            self.respond(550, "File not found.")
            self.log_cmd("RETR", file, 550, "File not found.")
            return
        try:
            try:
                size = self.fs.getsize(real_path)
            except OSError:
                size = 0
            self.respond(
                150,
                f"Opening data connection for {ftp_path} ({size} bytes).",
            )
            ok = self._run_transfer(
                "RETR", ftp_path, dtp, lambda sock: send_file(sock, fd)
            )
        finally:
            fd.close()
        if ok:
            self.respond(226, "Transfer complete.")

    def ftp_STOR(self, file):
        """Store a file (transfer from the client to the server)."""
        dtp = self._take_data_channel()
        if dtp is None:
            self.respond(425, "Use PORT or PASV first.")
            return
        ftp_path, real_path = self._resolve(file)
        if ftp_path is None:
            dtp.close()
            self.respond(550, "Permission denied.")
            return
        try:
            if not file or self.fs.isdir(real_path):
                raise IsADirectoryError(real_path)
            fd = self.fs.open(real_path, "wb")
        except (OSError, FilesystemError) as err:
            dtp.close()
            self.log(f"STOR {ftp_path}: {err}", logfun=logger.warning)
            self.respond(550, "Cannot create file.")
            self.log_cmd("STOR", file, 550, "Cannot create file.")
            return
        try:
            self.respond(150, "Ok to send data.")
            ok = self._run_transfer(
                "STOR", ftp_path, dtp, lambda sock: receive_file(sock, fd)
            )
        finally:
            fd.close()
        if ok:
            self.respond(226, "Transfer complete.")

    # --- authentication

    def ftp_USER(self, line):
        """Set the username for the current session."""
        # Any username is accepted; once logged in the session stays
        # logged in.
        self.username = line
        self.respond(331, "User name okay, need password.")
        self.log_cmd("USER", line, 331, "User name okay, need password.")

    def ftp_PASS(self, line):
        """Log in; any password is accepted."""
        self.authenticated = True
        self.respond(230, "User logged in, proceed.")
        self.log(f"USER {self.username!r} logged in.")

    # --- filesystem operations

    def ftp_PWD(self, line):
        """Return the name of the current working directory to the client."""
        cwd = self.fs.cwd
        # RFC-959 requires embedded double-quotes to be doubled
        self.respond(
            257, '"%s" is the current directory.' % cwd.replace('"', '""')
        )

    def ftp_CWD(self, path):
        """Change the current working directory."""
        if not path:
            path = "/"
        ftp_path, real_path = self._resolve(path)
        if ftp_path is None or not self.fs.isdir(real_path):
            self.respond(550, "Directory not found.")
            self.log_cmd("CWD", path, 550, "Directory not found.")
            return
        self.fs.cwd = ftp_path
        self.respond(250, "Directory successfully changed.")
        self.log_cmd("CWD", ftp_path, 250, "Directory successfully changed.")

    def ftp_CDUP(self, path):
        """Change into the parent directory."""
        # Note: RFC-959 says that code 200 is required but it also says
        # that CDUP uses the same codes as CWD.
        return self.ftp_CWD("..")

    # --- miscellaneous

    def ftp_TYPE(self, line):
        """Set current type data type to binary/ascii."""
        # Both types are served as binary streams.
        type = line.upper().replace(" ", "")
        if type in ("A", "AN"):
            self.respond(200, "Type set to A.")
        elif type in ("I", "L8"):
            self.respond(200, "Type set to I.")
        else:
            self.respond(504, "Unsupported type.")
            self.log_cmd("TYPE", line, 504, "Unsupported type.")

    def ftp_SYST(self, line):
        """Return system type (always returns UNIX type: L8)."""
        # This command is used to find out the type of operating system
        # at the server.  The reply shall have as its first word one of
        # the system names listed in RFC-943.
        # Since that we always return a "/bin/ls -lA"-like output on
        # LIST we  prefer to respond as if we would on Unix in any case.
        self.respond(215, "UNIX Type: L8")

    def ftp_FEAT(self, line):
        """List all new features supported as defined in RFC-2398."""
        self.respond_multi(211, ["Features:", "UTF8", "End"])

    def handle_error(self):
        """Called when an unexpected exception escapes a command; the
        session is closed, other sessions are not affected.
        """
        logger.error(traceback.format_exc())
        self.close()
