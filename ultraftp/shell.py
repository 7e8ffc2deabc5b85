# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
A minimal interactive FTP shell built on top of FTPClient:

$ python3 -m ultraftp client shell user:passwd@127.0.0.1:2121
ftp> ls
ftp> get a.txt
ftp> quit
"""

import os
import sys

from .client import FTPClient
from .client import parse_connection_string
from .exceptions import Error

__all__ = ["InteractiveSession", "start_shell"]


PROMPT = "ftp> "

_help = """\
Available commands:
  ls, dir [path]           List files in current directory
  cd, cwd <directory>      Change working directory
  pwd                      Print working directory
  get <remote> [local]     Download a file
  put <local> [remote]     Upload a file
  mkdir <directory>        Create a directory
  rmdir <directory>        Remove a directory
  rm, delete <file>        Delete a file
  help                     Show this help
  quit, exit, bye          Exit the shell"""


class InteractiveSession:
    """Read commands from `stdin` and run them against a connected
    and logged in FTPClient instance, printing results to `stdout`.

    Failures of a single command are printed and the session goes on.
    """

    prompt = PROMPT

    def __init__(self, client, stdin=None, stdout=None):
        self.client = client
        self.stdin = stdin if stdin is not None else sys.stdin
        self.stdout = stdout if stdout is not None else sys.stdout
        self._dispatch = {
            "ls": self.do_ls,
            "dir": self.do_ls,
            "cd": self.do_cd,
            "cwd": self.do_cd,
            "pwd": self.do_pwd,
            "get": self.do_get,
            "put": self.do_put,
            "mkdir": self.do_mkdir,
            "rmdir": self.do_rmdir,
            "rm": self.do_rm,
            "delete": self.do_rm,
            "help": self.do_help,
        }

    def write(self, s):
        self.stdout.write(s + "\n")
        self.stdout.flush()

    def start(self):
        """Run the read / eval loop until EOF or a quit command."""
        self.write(
            "Connected to FTP server. Type 'help' for available commands,"
            " 'quit' to exit."
        )
        while True:
            self.stdout.write(self.prompt)
            self.stdout.flush()
            line = self.stdin.readline()
            if not line:
                # EOF
                self.write("")
                return
            parts = line.split()
            if not parts:
                continue
            if self.process_command(parts[0].lower(), parts[1:]):
                return

    def process_command(self, cmd, args):
        """Run a single command; return True if the session should
        end.
        """
        if cmd in ("quit", "exit", "bye"):
            self.write("Goodbye!")
            return True
        fun = self._dispatch.get(cmd)
        if fun is None:
            self.write(
                f"Unknown command: {cmd}\nType 'help' for available commands."
            )
            return False
        try:
            fun(args)
        except (Error, OSError) as err:
            self.write(f"Error: {err}")
        return False

    # --- commands

    def do_help(self, args):
        self.write(_help)

    def do_ls(self, args):
        path = args[0] if args else ""
        self.client.dir(path, self.write)

    def do_cd(self, args):
        if not args:
            self.write("Usage: cd <directory>")
            return
        self.client.cwd(args[0])
        self.write(f"Changed to directory: {args[0]}")

    def do_pwd(self, args):
        self.write(f"Current directory: {self.client.pwd()}")

    def do_get(self, args):
        if not args:
            self.write("Usage: get <remote-file> [local-file]")
            return
        remote = args[0]
        local = args[1] if len(args) > 1 else os.path.basename(remote)
        self.write(f"Downloading {remote} to {local}...")
        nbytes = 0
        with open(local, "wb") as f:

            def callback(data):
                nonlocal nbytes
                f.write(data)
                nbytes += len(data)

            resp = self.client.retrbinary("RETR " + remote, callback)
        self._report("Download", resp, nbytes)

    def do_put(self, args):
        if not args:
            self.write("Usage: put <local-file> [remote-file]")
            return
        local = args[0]
        remote = args[1] if len(args) > 1 else os.path.basename(local)
        with open(local, "rb") as f:
            self.write(f"Uploading {local} to {remote}...")
            resp = self.client.storbinary("STOR " + remote, f)
            nbytes = f.tell()
        self._report("Upload", resp, nbytes)

    def _report(self, what, resp, nbytes):
        if resp.code in (226, 250):
            self.write(f"{what} complete. {nbytes} bytes transferred.")
        else:
            self.write(f"Unexpected response after transfer: {resp}")

    def do_mkdir(self, args):
        if not args:
            self.write("Usage: mkdir <directory>")
            return
        self.client.mkd(args[0])
        self.write(f"Directory created: {args[0]}")

    def do_rmdir(self, args):
        if not args:
            self.write("Usage: rmdir <directory>")
            return
        self.client.rmd(args[0])
        self.write(f"Directory removed: {args[0]}")

    def do_rm(self, args):
        if not args:
            self.write("Usage: rm <file>")
            return
        self.client.delete(args[0])
        self.write(f"File deleted: {args[0]}")


def start_shell(conn_str, stdin=None, stdout=None, **kwargs):
    """Connect and log in using a connection string (see
    parse_connection_string()) then run an interactive session.
    """
    host, port, user, passwd = parse_connection_string(conn_str, **kwargs)
    with FTPClient(host, port) as client:
        client.login(user, passwd)
        InteractiveSession(client, stdin, stdout).start()
