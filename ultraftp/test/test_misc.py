# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

import errno
import logging
import os

from ultraftp.log import LogFormatter
from ultraftp.log import config_logging
from ultraftp.log import debug
from ultraftp.log import is_logging_configured
from ultraftp.utils import memoize
from ultraftp.utils import strerror

from . import UltraftpTestCase


class TestLogging(UltraftpTestCase):

    def setUp(self):
        super().setUp()
        logger = logging.getLogger("ultraftp")
        handlers = logger.handlers[:]
        level = logger.level

        def restore():
            logger.handlers[:] = handlers
            logger.setLevel(level)

        self.addCleanup(restore)

    def test_config_logging(self):
        config_logging(level=logging.WARNING)
        logger = logging.getLogger("ultraftp")
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, LogFormatter)
        assert is_logging_configured()
        # calling it again replaces the handler
        config_logging()
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO

    def test_config_logging_other_loggers(self):
        other = logging.getLogger("ultraftp-test-other")
        self.addCleanup(other.handlers.clear)
        config_logging(other_loggers=[other])
        assert len(other.handlers) == 1

    def test_formatter(self):
        record = logging.LogRecord(
            "ultraftp", logging.INFO, __file__, 1, "hello %s", ("world",), None
        )
        formatter = LogFormatter()
        formatter._coloured = False
        line = formatter.format(record)
        assert line.startswith("[I ")
        assert line.endswith("] hello world")

    def test_formatter_multi_line(self):
        record = logging.LogRecord(
            "ultraftp", logging.ERROR, __file__, 1, "a\nb", (), None
        )
        formatter = LogFormatter()
        formatter._coloured = False
        assert formatter.format(record).endswith("a\n    b")

    def test_debug(self):
        with self.assertLogs("ultraftp", level="DEBUG") as cm:
            debug("hello", inst="inst")
        assert cm.output == ["DEBUG:ultraftp:[debug] hello ('inst')"]


class TestUtils(UltraftpTestCase):

    def test_memoize(self):
        calls = []

        @memoize
        def foo(*args, **kwargs):
            calls.append(None)
            return args, kwargs

        assert foo(1, a=2) == ((1,), {"a": 2})
        assert foo(1, a=2) == ((1,), {"a": 2})
        assert len(calls) == 1
        foo(2)
        assert len(calls) == 2

    def test_strerror(self):
        err = OSError(errno.ECONNRESET, "reset")
        assert strerror(err) == os.strerror(errno.ECONNRESET)
        assert strerror(OSError("foo")) == "foo"
        assert strerror(ValueError("bar")) == "bar"
