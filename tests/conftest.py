"""Shared test fixtures."""

from __future__ import annotations

import pytest

from taskline.errors import LaunchError

from .fakes import FakeRunner


@pytest.fixture()
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture()
def launch_error() -> LaunchError:
    return LaunchError(target="check", step=None, message="cargo is not available", hint="install it")
