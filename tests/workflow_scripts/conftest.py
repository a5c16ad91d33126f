#!/usr/bin/env python3
# file: tests/workflow_scripts/conftest.py
# version: 1.0.0
# guid: 6b1f8d2e-4c7a-49e5-a3d0-e25c9f7b1a86

"""Shared fixtures: a fake npm process and config cache reset."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import Generator

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "scripts"))

import npm_cli  # pylint: disable=wrong-import-position
import workflow_common  # pylint: disable=wrong-import-position


class FakeProcess:
    """Stands in for subprocess.Popen with canned output."""

    def __init__(
        self,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        hang: bool = False,
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.hang = hang
        self.terminated = False
        self.stdin_data: str | None = None

    def communicate(self, input=None, timeout=None):  # noqa: A002
        self.stdin_data = input
        if self.hang and not self.terminated:
            raise subprocess.TimeoutExpired("npm", timeout)
        return self.stdout, self.stderr

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15


class FakeNpm:
    """Records npm invocations and replies from a response table."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.responses: dict[tuple[str, ...], FakeProcess] = {}
        self.processes: list[FakeProcess] = []

    def reply(self, args: list[str], stdout: str = "", returncode: int = 0, stderr: str = "") -> None:
        self.responses[tuple(args)] = FakeProcess(returncode, stdout, stderr)

    def popen(self, command, **_kwargs) -> FakeProcess:
        args = list(command[1:])
        self.calls.append(args)
        template = self.responses.get(tuple(args), FakeProcess())
        process = FakeProcess(
            template.returncode,
            template.stdout,
            template.stderr,
            template.hang,
        )
        self.processes.append(process)
        return process

    @property
    def set_calls(self) -> list[list[str]]:
        return [call for call in self.calls if call[:2] == ["config", "set"]]


@pytest.fixture
def fake_npm(monkeypatch: pytest.MonkeyPatch) -> FakeNpm:
    """Replace subprocess.Popen inside npm_cli with a recorder."""
    fake = FakeNpm()
    monkeypatch.setattr(npm_cli.subprocess, "Popen", fake.popen)
    return fake


@pytest.fixture(autouse=True)
def reset_config_cache() -> Generator[None, None, None]:
    """Reset cached repository config between tests."""
    workflow_common._CONFIG_CACHE.clear()  # type: ignore[attr-defined]
    yield
    workflow_common._CONFIG_CACHE.clear()  # type: ignore[attr-defined]
