# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""
ultraftp: a minimal FTP control / data channel engine, usable both
as a server and as a client.

A hierarchy of classes outlined below implement the backend
functionality:

    [ultraftp.servers.FTPServer]
      accepts connections and dispatches each of them to a handler
      running in its own thread.

    [ultraftp.handlers.FTPHandler]
      a class representing the server-protocol-interpreter
      (server-PI, see RFC-959). Each time a new connection occurs
      FTPServer will create a new FTPHandler instance to handle the
      current PI session.

    [ultraftp.handlers.ActiveDTP]
    [ultraftp.handlers.PassiveDTP]
      classes negotiating the data channel in active and passive mode.

    [ultraftp.filesystems.AbstractedFS]
      class used to interact with the file system, providing a virtual
      root directory the client can't escape from.

    [ultraftp.client.FTPClient]
      the client-protocol-interpreter, issuing commands and consuming
      responses in a strict request / response fashion.

Usage example:

>>> from ultraftp.handlers import FTPHandler
>>> from ultraftp.servers import FTPServer
>>>
>>> server = FTPServer(("127.0.0.1", 2121), FTPHandler, root_dir="/srv")
>>> server.serve_forever()
[I 24-02-19 10:55:42] >>> starting FTP server on 127.0.0.1:2121, pid=4312 <<<
[I 24-02-19 10:55:42] root directory: '/srv'
[I 24-02-19 10:55:45] 127.0.0.1:34178-[] FTP session opened (connect)
[I 24-02-19 10:55:48] 127.0.0.1:34178-[anonymous] USER 'anonymous' logged in.
[I 24-02-19 10:56:27] 127.0.0.1:34178-[anonymous] RETR /a.txt completed=1 bytes=5 seconds=0.001
[I 24-02-19 10:56:39] 127.0.0.1:34178-[anonymous] FTP session closed (disconnect).
"""

__ver__ = "1.0.0"
__author__ = "Giampaolo Rodola' <g.rodola@gmail.com>"
