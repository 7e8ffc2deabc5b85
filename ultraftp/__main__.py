# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
Start a standalone FTP server or run the FTP client from the command
line:

$ python3 -m ultraftp server -d /srv/ftp
$ python3 -m ultraftp client get ftp://127.0.0.1:2121/a.txt a.txt
$ python3 -m ultraftp client put a.txt ftp://127.0.0.1:2121/b.txt
$ python3 -m ultraftp client shell user:secret@127.0.0.1:2121
"""

import argparse
import logging
import os
import sys

from . import client
from . import servers
from . import shell
from .config import load_config
from .exceptions import Error
from .handlers import FTPHandler
from .log import config_logging
from .log import logger
from .utils import hilite
from .utils import term_supports_colors


class ColorHelpFormatter(argparse.HelpFormatter):
    def start_section(self, heading):  # titles / groups
        heading = f"{hilite(heading.capitalize(), 'orange')}"
        super().start_section(heading)

    def _format_action_invocation(self, action):
        # colorize the flag part (e.g. "-i, --interface")
        if not action.option_strings:
            default = self._metavar_formatter(action, action.dest)(1)[0]
            return f"{hilite(default, 'white')}"

        parts = []
        for option in action.option_strings:
            parts.append(f"{hilite(option, 'lightblue')}")

        if action.nargs != 0:
            metavar = self._format_args(
                action, self._get_default_metavar_for_optional(action)
            )
            parts[-1] += " " + f"{hilite(metavar, 'green')}"

        return ", ".join(parts)


def _formatter():
    if term_supports_colors():
        return ColorHelpFormatter
    return argparse.HelpFormatter


def parse_port(value):
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid port: {value!r}"
        ) from None
    if not 0 < port <= 65535:
        raise argparse.ArgumentTypeError(
            "port number must be between 1 and 65535"
        )
    return port


def parse_args(args=None, config=None):
    if config is None:
        config = load_config()
    parser = argparse.ArgumentParser(
        prog="ultraftp",
        description=main.__doc__,
        formatter_class=_formatter(),
    )
    parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="enable DEBUG logging level",
    )
    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    # --- server

    srv = commands.add_parser(
        "server",
        help="start an FTP server",
        formatter_class=_formatter(),
    )
    group_main = srv.add_argument_group("Main options")
    group_main.add_argument(
        "-i",
        "--interface",
        default="",
        metavar="ADDRESS",
        help="specify the interface to run on (default: all interfaces)",
    )
    group_main.add_argument(
        "-p",
        "--port",
        type=parse_port,
        default=config.server_port,
        metavar="PORT",
        help=f"specify port number to run on (default: {config.server_port})",
    )
    group_main.add_argument(
        "-d",
        "--directory",
        default=config.server_dir,
        metavar="PATH",
        help=(
            "specify the directory to share (default:"
            f" {config.server_dir!r})"
        ),
    )
    group_main.add_argument(
        "-D",
        "--debug",
        action="store_true",
        dest="server_debug",
        help="enable DEBUG logging level",
    )
    group_misc = srv.add_argument_group("Other options")
    group_misc.add_argument(
        "--timeout",
        type=float,
        default=FTPHandler.timeout,
        metavar="SECS",
        help=(
            "idle timeout in seconds for control connections (default:"
            f" {FTPHandler.timeout or 'no timeout'})"
        ),
    )
    group_misc.add_argument(
        "--banner",
        type=str,
        default=FTPHandler.banner,
        help=(
            "the message sent when client connects (default:"
            f" {FTPHandler.banner!r})"
        ),
    )
    group_misc.add_argument(
        "--use-localtime",
        default=False,
        action="store_true",
        help=(
            "display directory listings with the time in your local time zone"
            " (default: use GMT)"
        ),
    )

    # --- client

    cli = commands.add_parser(
        "client",
        help="FTP client operations",
        formatter_class=_formatter(),
    )
    actions = cli.add_subparsers(dest="action", metavar="ACTION")
    actions.required = True
    get = actions.add_parser(
        "get",
        help="download a file from an FTP server",
        formatter_class=_formatter(),
    )
    get.add_argument("url", metavar="URL", help="e.g. ftp://host:port/a.txt")
    get.add_argument("local", metavar="LOCAL", help="the local file path")
    put = actions.add_parser(
        "put",
        help="upload a file to an FTP server",
        formatter_class=_formatter(),
    )
    put.add_argument("local", metavar="LOCAL", help="the local file path")
    put.add_argument("url", metavar="URL", help="e.g. ftp://host:port/a.txt")
    sh = actions.add_parser(
        "shell",
        help="start an interactive FTP session",
        formatter_class=_formatter(),
    )
    sh.add_argument(
        "connection",
        metavar="CONNECTION",
        help="[ftp://][user[:passwd]@]host[:port]",
    )

    opts = parser.parse_args(args)
    opts.config = config
    return opts


def run_server(opts, args=None):
    config = opts.config
    config.server_port = opts.port
    config.server_dir = opts.directory
    config.validate_server_config()

    # On recent Windows versions, if address is not specified and IPv6
    # is installed the socket will listen on IPv6 by default; in this
    # case we force IPv4 instead.
    if os.name in ("nt", "ce") and not opts.interface:
        opts.interface = "0.0.0.0"

    # Configure handler.
    handler = FTPHandler
    # 0 disables the timeout
    handler.timeout = opts.timeout or None
    handler.banner = opts.banner
    handler.use_gmt_times = not opts.use_localtime

    server = servers.FTPServer(
        (opts.interface, opts.port), handler, root_dir=config.server_dir
    )
    try:
        server.serve_forever()
    finally:
        server.close_all()

    if args:  # only used in unit tests
        return server
    return None


def run_client(opts):
    config = opts.config
    creds = dict(
        default_user=config.default_user,
        default_passwd=config.default_password,
    )
    if opts.action == "get":
        resp = client.get(opts.url, opts.local, **creds)
        logger.info("%s -> %s: %s", opts.url, opts.local, resp)
    elif opts.action == "put":
        resp = client.put(opts.local, opts.url, **creds)
        logger.info("%s -> %s: %s", opts.local, opts.url, resp)
    else:
        shell.start_shell(opts.connection, **creds)


def main(args=None):
    """Start a standalone FTP server or run the FTP client."""
    opts = parse_args(args=args)
    if opts.debug or getattr(opts, "server_debug", False):
        config_logging(level=logging.DEBUG)
    else:
        config_logging()

    if opts.command == "server":
        return run_server(opts, args)
    try:
        run_client(opts)
    except (Error, OSError, EOFError, ValueError) as err:
        logger.error("%s: %s", err.__class__.__name__, err)
        sys.exit(1)
    return None


if __name__ == "__main__":
    main()
