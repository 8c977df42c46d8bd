"""Pytest configuration and fixtures for embeddb tests."""

from __future__ import annotations

import sys
import textwrap
from pathlib import Path
from typing import Callable, Generator

import pytest

from embeddb.config import Configuration
from embeddb.provision.distribution import platform_name
from embeddb.supervisor import exit_guard

FAKE_INSTALL_SCRIPT = """\
#!{python}
import sys
import pathlib

args = sys.argv[1:]
datadir = next(a.split("=", 1)[1] for a in args if a.startswith("--datadir="))
pathlib.Path(datadir, "install-args.txt").write_text("\\n".join(args))
print("Installing MariaDB/MySQL system tables in '" + datadir + "' ...")
sys.exit({exit_code})
"""

FAKE_SERVER_SCRIPT = """\
#!{python}
import sys
import time
import signal
import pathlib

args = sys.argv[1:]
datadir = next(a.split("=", 1)[1] for a in args if a.startswith("--datadir="))
pathlib.Path(datadir, "server-args.txt").write_text("\\n".join(args))
signal.signal(signal.SIGTERM, lambda signum, frame: sys.exit(0))

sys.stderr.write("[Note] mysqld (mysqld 10.11.6) starting as process 1 ...\\n")
sys.stderr.flush()
mode = "{mode}"
if mode == "die":
    sys.exit(7)
if mode == "ready":
    sys.stderr.write("[Note] mysqld: ready for connections.\\n")
    sys.stderr.flush()
while True:
    time.sleep(0.05)
"""


def write_script(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(content))
    path.chmod(0o755)
    return path


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for tests."""
    return tmp_path


@pytest.fixture
def make_distribution(temp_dir: Path) -> Callable[..., Path]:
    """
    Provide a factory writing a fake server distribution.

    The fake install command records its arguments and exits with `install_exit`.
    The fake server records its arguments and then, depending on `server_mode`,
    announces readiness ('ready'), exits early ('die') or stays silent ('silent').
    """
    def _make(version: str = "fake-1.0", install_exit: int = 0, server_mode: str = "ready") -> Path:
        distributions_dir = temp_dir / "distributions"
        bin_dir = distributions_dir / version / platform_name() / "bin"
        python = sys.executable
        write_script(bin_dir / "mysql_install_db", FAKE_INSTALL_SCRIPT.format(python=python, exit_code=install_exit))
        write_script(bin_dir / "mysqld", FAKE_SERVER_SCRIPT.format(python=python, mode=server_mode))
        write_script(bin_dir / "my_print_defaults", f"#!{python}\nprint('--no-defaults')\n")
        return distributions_dir

    return _make


@pytest.fixture
def make_config(temp_dir: Path) -> Callable[..., Configuration]:
    """Provide a factory for configurations rooted in the test's temporary directory."""
    def _make(**overrides) -> Configuration:
        values = {
            "base_dir": temp_dir / "base",
            "data_dir": temp_dir / "data",
            "port": 13306,
            "version": "fake-1.0",
            "distributions_dir": temp_dir / "distributions",
            "download_url_template": "",
            "ready_timeout": 10.0,
            "shutdown_grace_period": 5.0,
        }
        values.update(overrides)
        return Configuration(**values)

    return _make


@pytest.fixture(autouse=True)
def drain_exit_guard() -> Generator[None, None, None]:
    """Run and clear any exit actions a test left behind so no server outlives it."""
    yield
    exit_guard.run_all()


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "integration: tests that spawn real child processes")
