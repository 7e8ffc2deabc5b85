# Copyright (C) 2007 Giampaolo Rodola' <g.rodola@gmail.com>.
# Use of this source code is governed by MIT license that can be
# found in the LICENSE file.

"""ultraftp installer.

$ python -m pip install .
"""

import ast
import os
import sys

WINDOWS = os.name == "nt"
HERE = os.path.abspath(os.path.dirname(__file__))

# Test deps, installable via `pip install .[test]`.
TEST_DEPS = [
    "psutil",
    "pytest",
    "pytest-instafail",
    "pytest-xdist",
    "setuptools",
]

# Development deps, installable via `pip install .[dev]`.
DEV_DEPS = [
    "black",
    "check-manifest",
    "coverage",
    "pylint",
    "pytest-cov",
    "pytest-xdist",
    "rstcheck",
    "ruff",
    "toml-sort",
    "twine",
]
if WINDOWS:
    DEV_DEPS.extend(["pyreadline3", "pdbpp"])


def get_version():
    INIT = os.path.join(HERE, "ultraftp", "__init__.py")
    with open(INIT) as f:
        for line in f:
            if line.startswith("__ver__"):
                ret = ast.literal_eval(line.strip().split(" = ")[1])
                assert ret.count(".") == 2, ret
                for num in ret.split("."):
                    assert num.isdigit(), ret
                return ret
        raise ValueError("couldn't find version string")


with open(os.path.join(HERE, "README.rst")) as f:
    long_description = f.read()


def main():
    from setuptools import setup  # noqa: PLC0415

    kwargs = dict(
        name="ultraftp",
        version=get_version(),
        description="Minimal FTP control / data channel engine (server and client)",
        long_description=long_description,
        long_description_content_type="text/x-rst",
        license="MIT",
        platforms="Platform Independent",
        author="Giampaolo Rodola'",
        author_email="g.rodola@gmail.com",
        packages=[
            "ultraftp",
            "ultraftp.handlers",
            "ultraftp.handlers.ftp",
            "ultraftp.test",
        ],
        entry_points={
            "console_scripts": ["ultraftp = ultraftp.__main__:main"],
        },
        # fmt: off
        keywords=["ftp", "server", "client", "ftpd", "python", "rfc959"],
        # fmt: on
        install_requires=[],
        extras_require={
            "dev": DEV_DEPS,
            "test": TEST_DEPS,
        },
        python_requires=">=3.8",
        zip_safe=False,
        classifiers=[
            "Development Status :: 4 - Beta",
            "Environment :: Console",
            "Intended Audience :: Developers",
            "Intended Audience :: System Administrators",
            "Operating System :: OS Independent",
            "Programming Language :: Python",
            "Programming Language :: Python :: 3",
            "Topic :: Internet :: File Transfer Protocol (FTP)",
            "Topic :: Software Development :: Libraries :: Python Modules",
        ],
    )
    setup(**kwargs)


if sys.version_info[0] < 3:  # noqa: UP036
    sys.exit("Python 2 is not supported.")

if __name__ == "__main__":
    main()
