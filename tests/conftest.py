"""
Shared pytest fixtures for Deploy Hooks.

Fixtures write a real ``config.toml`` into ``tmp_path`` so that tests go
through the same loading path as the server.
"""

from __future__ import annotations

import logging
import stat
from pathlib import Path
from typing import Callable

import pytest
import structlog

from deploy_hooks.config import DeployConfig, load_config

from tests.helpers import SECRET


CONFIG_TEMPLATE = """
data_dir = "{data_dir}"

[webhooks]
pipe = "{pipe}"
listen_addr = "127.0.0.1"
dispatch_timeout_seconds = {timeout}

[dispatch]
pipe = "{pipe}"
scripts_dir = "{scripts_dir}"
script_timeout_seconds = 5

[clients.shop]
secret = "{secret}"
project = "shop"
permissions = ["deploy"]

[clients.readonly]
secret = "another-secret"
project = "blog"
permissions = []
"""


@pytest.fixture(autouse=True)
def _reset_logging():
    """Undo logging configuration done by the CLI between tests."""
    yield
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    (path / "scripts").mkdir(parents=True)
    return path


@pytest.fixture
def write_config(data_dir: Path) -> Callable[..., Path]:
    """Return a function that writes ``config.toml`` and returns its path."""

    def _write(timeout: float = 1.0, extra: str = "") -> Path:
        path = data_dir / "config.toml"
        path.write_text(
            CONFIG_TEMPLATE.format(
                data_dir=data_dir,
                pipe=data_dir / "deploy.pipe",
                scripts_dir=data_dir / "scripts",
                secret=SECRET,
                timeout=timeout,
            )
            + extra,
            encoding="utf-8",
        )
        return path

    return _write


@pytest.fixture
def config_path(write_config: Callable[..., Path]) -> Path:
    return write_config()


@pytest.fixture
def config(config_path: Path) -> DeployConfig:
    return load_config(config_path)


@pytest.fixture
def make_script(data_dir: Path) -> Callable[..., Path]:
    """Create an executable ``scripts/<project>/<action>`` shell script."""

    def _make(project: str, body: str, action: str = "deploy") -> Path:
        script = data_dir / "scripts" / project / action
        script.parent.mkdir(parents=True, exist_ok=True)
        script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make
