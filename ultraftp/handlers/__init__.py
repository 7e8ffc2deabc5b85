# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

from .ftp.control import FTPHandler  # noqa: F401
from .ftp.dispatchers import ActiveDTP  # noqa: F401
from .ftp.dispatchers import PassiveDTP  # noqa: F401
