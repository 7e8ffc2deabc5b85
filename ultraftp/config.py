# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Defaults for the command line tools, overridable via environment
variables:

 - ULTRAFTP_SERVER_PORT
 - ULTRAFTP_SERVER_DIR
 - ULTRAFTP_DEFAULT_USER
 - ULTRAFTP_DEFAULT_PASSWORD

Behavioural knobs of the server and of the client live as class
attributes on FTPHandler, PassiveDTP, FTPServer and FTPClient instead.
"""

import os

from .log import logger

__all__ = ["Config", "load_config"]


ENV_PREFIX = "ULTRAFTP_"


class Config:
    """The application configuration."""

    def __init__(
        self,
        server_port=2121,
        server_dir=".",
        default_user="anonymous",
        default_password="guest@",
    ):
        self.server_port = server_port
        self.server_dir = server_dir
        self.default_user = default_user
        self.default_password = default_password

    def __repr__(self):
        return (
            f"<{self.__class__.__name__}(server_port={self.server_port!r},"
            f" server_dir={self.server_dir!r},"
            f" default_user={self.default_user!r})>"
        )

    def __eq__(self, other):
        if not isinstance(other, Config):
            return NotImplemented
        return vars(self) == vars(other)

    def validate_server_config(self):
        """Raise ValueError if the server can't be started with this
        configuration.
        """
        if not isinstance(self.server_port, int) or not (
            0 < self.server_port <= 65535
        ):
            raise ValueError(f"invalid port: {self.server_port!r}")
        path = os.path.abspath(self.server_dir)
        if not os.path.exists(path):
            raise ValueError(f"cannot access directory: {path}")
        if not os.path.isdir(path):
            raise ValueError(f"not a directory: {path}")


def load_config(environ=None):
    """Return a Config instance with defaults overridden by the
    ULTRAFTP_* environment variables. Empty variables and non numeric
    ports are ignored.
    """
    if environ is None:
        environ = os.environ
    config = Config()
    port = environ.get(ENV_PREFIX + "SERVER_PORT")
    if port:
        try:
            config.server_port = int(port)
        except ValueError:
            logger.warning(
                "ignoring invalid %sSERVER_PORT %r", ENV_PREFIX, port
            )
    value = environ.get(ENV_PREFIX + "SERVER_DIR")
    if value:
        config.server_dir = value
    value = environ.get(ENV_PREFIX + "DEFAULT_USER")
    if value:
        config.default_user = value
    value = environ.get(ENV_PREFIX + "DEFAULT_PASSWORD")
    if value:
        config.default_password = value
    return config
