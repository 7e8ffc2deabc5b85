# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import os
import stat
import time

from .exceptions import FilesystemError

__all__ = ["AbstractedFS", "FilesystemError"]


_months_map = {
    1: "Jan",
    2: "Feb",
    3: "Mar",
    4: "Apr",
    5: "May",
    6: "Jun",
    7: "Jul",
    8: "Aug",
    9: "Sep",
    10: "Oct",
    11: "Nov",
    12: "Dec",
}


class AbstractedFS:
    """A class used to interact with the file system, providing a
    cross-platform interface compatible with both Windows and
    UNIX style filesystems where all paths use "/" separator.

    AbstractedFS distinguishes between "real" filesystem paths and
    "virtual" ftp paths emulating a UNIX chroot jail where the user
    can not escape the served root directory (example: real
    "/srv/ftp" path will be seen as "/" by the client).

    The virtual current working directory of the session lives here
    and is only rewritten by the directory-change commands.

    FilesystemError exception can be raised from within any of
    the methods below in order to send a customized error string
    to the client.
    """

    def __init__(self, root, cmd_channel):
        """
        - (str) root: the served "real" root directory (e.g. '/srv/ftp')
        - (instance) cmd_channel: the FTPHandler class instance.
        """
        self._cwd = "/"
        self._root = root
        self.cmd_channel = cmd_channel

    @property
    def root(self):
        """The served root directory."""
        return self._root

    @property
    def cwd(self):
        """The session current (virtual) working directory."""
        return self._cwd

    @root.setter
    def root(self, path):
        self._root = path

    @cwd.setter
    def cwd(self, path):
        self._cwd = path

    # --- Pathname / conversion utilities

    @staticmethod
    def _isabs(path, _windows=os.name == "nt"):
        # Windows + Python 3.13: isabs() changed so that a path
        # starting with "/" is no longer considered absolute.
        if _windows and path.startswith("/"):
            return True
        return os.path.isabs(path)

    def ftpnorm(self, ftppath):
        """Normalize a "virtual" ftp pathname (typically the raw string
        coming from client) depending on the current working directory.

        Example (having "/foo" as current working directory):
        >>> ftpnorm('bar')
        '/foo/bar'

        Note: directory separators are system independent ("/").
        Pathname returned is always absolutized and can never go
        above "/" (e.g. "/.." is "/").
        """
        if self._isabs(ftppath):
            p = os.path.normpath(ftppath)
        else:
            p = os.path.normpath(os.path.join(self.cwd, ftppath))
        # normalize string in a standard web-path notation having '/'
        # as separator.
        if os.sep == "\\":
            p = p.replace("\\", "/")
        # POSIX normpath() keeps exactly two leading slashes; collapse
        # them as we don't deal with UNC paths.
        while p[:2] == "//":
            p = p[1:]
        if not p.startswith("/"):
            p = "/"
        return p

    def ftp2fs(self, ftppath):
        """Translate a "virtual" ftp pathname (typically the raw string
        coming from client) into equivalent absolute "real" filesystem
        pathname.

        Example (having "/srv/ftp" as root directory):
        >>> ftp2fs("foo")
        '/srv/ftp/foo'

        Note: directory separators are system dependent.
        """
        if os.path.normpath(self.root) == os.sep:
            return os.path.normpath(self.ftpnorm(ftppath))
        p = self.ftpnorm(ftppath)[1:]
        return os.path.normpath(os.path.join(self.root, p))

    def validpath(self, path):
        """Check whether the path belongs to the served root directory.
        Expected argument is a "real" filesystem pathname.

        If path is a symbolic link it is resolved to check its real
        destination.

        Pathnames escaping from the root directory are considered
        not valid.
        """
        root = self.realpath(self.root)
        path = self.realpath(path)
        if not root.endswith(os.sep):
            root += os.sep
        if not path.endswith(os.sep):
            path += os.sep
        return path[0 : len(root)] == root

    # --- Wrapper methods around open() and os.* calls

    def open(self, filename, mode):
        """Open a file returning its handler."""
        return open(filename, mode)

    def listdir(self, path):
        """List the content of a directory."""
        return sorted(os.listdir(path))

    def stat(self, path):
        """Perform a stat() system call on the given path."""
        return os.stat(path)

    if hasattr(os, "lstat"):

        def lstat(self, path):
            """Like stat but does not follow symbolic links."""
            return os.lstat(path)

    else:
        lstat = stat

    def isfile(self, path):
        """Return True if path is a file."""
        return os.path.isfile(path)

    def isdir(self, path):
        """Return True if path is a directory."""
        return os.path.isdir(path)

    def getsize(self, path):
        """Return the size of the specified file in bytes."""
        return os.path.getsize(path)

    def realpath(self, path):
        """Return the canonical version of path eliminating any
        symbolic links encountered in the path (if they are
        supported by the operating system).
        """
        return os.path.realpath(path)

    def lexists(self, path):
        """Return True if path refers to an existing path, including
        a broken or circular symbolic link.
        """
        return os.path.lexists(path)

    # --- Listing utilities

    def format_list(self, basedir, listing, ignore_err=True):
        """Return an iterator object that yields the entries of given
        directory emulating the "/bin/ls -l" UNIX command output.

         - (str) basedir: the absolute dirname.
         - (list) listing: the names of the entries in basedir
         - (bool) ignore_err: when False raise exception if os.lstat()
         call fails.

        Link count, owner and group are always printed as the "1",
        "owner" and "group" placeholders.

        This is how output appears to client:

        -rw-r--r-- 1 owner group 7045120 Sep 02 03:47 music.mp3
        drwxr-xr-x 1 owner group 4096 Aug 31 18:50 e-books
        """
        if getattr(self.cmd_channel, "use_gmt_times", True):
            timefunc = time.gmtime
        else:
            timefunc = time.localtime
        encoding = getattr(self.cmd_channel, "encoding", "utf8")
        errors = getattr(self.cmd_channel, "unicode_errors", "replace")
        for basename in listing:
            file = os.path.join(basedir, basename)
            try:
                st = self.lstat(file)
            except (OSError, FilesystemError):
                if ignore_err:
                    continue
                raise

            perms = stat.filemode(st.st_mode)
            try:
                mtime = timefunc(st.st_mtime)
                mtimestr = "%s %s" % (
                    _months_map[mtime.tm_mon],
                    time.strftime("%d %H:%M", mtime),
                )
            except (ValueError, OverflowError, OSError):
                # mtime out of the platform supported range; show the
                # current time instead.
                mtime = timefunc()
                mtimestr = "%s %s" % (
                    _months_map[mtime.tm_mon],
                    time.strftime("%d %H:%M", mtime),
                )
            line = "%s 1 owner group %d %s %s\r\n" % (
                perms,
                st.st_size,
                mtimestr,
                basename,
            )
            yield line.encode(encoding, errors)
