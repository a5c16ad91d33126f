#!/usr/bin/env python3
# file: scripts/npm_cli.py
# version: 1.0.0
# guid: 5d2a8f61-0c3e-4b7d-9e14-a6f0b3c8d927

"""Thin wrapper around the ``npm`` command line.

Only the commands needed to read configuration, read a manifest field and
set a configuration key are exposed. Output is parsed from ``--json`` where
npm supports it; the package manager stays the single source of truth for
configuration, no ``.npmrc`` file is ever read or written here.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
import json
import shutil
import signal
import subprocess
from typing import Any, Optional

import workflow_common

LOCATIONS = ("global", "project", "user")


class NpmError(workflow_common.WorkflowError):
    """npm exited non-zero, was killed by a signal, or could not start."""

    def __init__(
        self,
        message: str,
        stdout: str = "",
        stderr: str = "",
        returncode: Optional[int] = None,
        signal_name: Optional[str] = None,
        hint: str = "",
    ) -> None:
        if not hint:
            hint = _last_line(stderr) or "Ensure npm is installed and available on PATH"
        super().__init__(message, hint=workflow_common.sanitize_log(hint))
        self.stdout = stdout
        self.stderr = stderr
        self.returncode = returncode
        self.signal_name = signal_name


def _last_line(text: str) -> str:
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    return lines[-1] if lines else ""


def try_parse_json(text: str) -> Any:
    """Return decoded JSON, or the text itself when it is not JSON."""
    try:
        return json.loads(text)
    except ValueError:
        return text


def decode_manifest_field(key: str, output: str) -> Any:
    """Normalize ``npm pkg get`` output to the value of ``key``.

    npm 7+ prints ``{"<key>": value}`` for a single key while older
    releases print the bare value. An unset field comes back as ``{}``
    (or nothing at all) and decodes to None.
    """
    parsed = try_parse_json(output)
    if isinstance(parsed, dict):
        if key in parsed:
            parsed = parsed[key]
        elif not parsed:
            return None
    if parsed in ("", {}):
        return None
    return parsed


def format_command(args: Iterable[str], secrets: Iterable[str] = (), dry_run: bool = False) -> str:
    """Render the command echo, with secret arguments masked."""
    hidden = set(secrets)
    shown = ["***" if arg in hidden else arg for arg in args]
    line = " ".join(["$ npm", *shown])
    if dry_run:
        line += " (dry-run)"
    return line


@dataclass
class NpmRunner:
    """Runs npm subcommands and decodes their output.

    Attributes:
        console: Narration settings; every command is echoed through it
        timeout: Seconds before a command is sent SIGTERM, or None to wait
        executable: npm binary, resolved from PATH by default
        cwd: Working directory for npm (the package root)
        env: Environment for npm, or None to inherit
    """

    console: workflow_common.Console = field(default_factory=workflow_common.Console)
    timeout: Optional[float] = None
    executable: str = field(default_factory=lambda: shutil.which("npm") or "npm")
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = None

    def execute(
        self,
        args: list[str],
        dry_run: bool = False,
        secrets: Iterable[str] = (),
        stdin: Optional[str] = None,
    ) -> str:
        """Run ``npm <args>`` and return its stripped stdout.

        In dry-run mode the command is only echoed and an empty string is
        returned.

        Raises:
            NpmError: If npm cannot start, exits non-zero, or is terminated
        """
        if not all(isinstance(arg, str) for arg in args):
            raise TypeError("npm arguments must be strings")

        self.console.info(format_command(args, secrets, dry_run))
        if dry_run:
            return ""

        try:
            process = subprocess.Popen(
                [self.executable, *args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                cwd=self.cwd,
                env=dict(self.env) if self.env is not None else None,
            )
        except OSError as error:
            raise NpmError(f"Failed to start npm: {error}") from error

        timed_out = False
        try:
            stdout, stderr = process.communicate(input=stdin, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            timed_out = True
            process.terminate()
            stdout, stderr = process.communicate()

        returncode = process.returncode
        if timed_out or returncode < 0:
            signum = -returncode if returncode < 0 else signal.SIGTERM
            signal_name = signal.Signals(signum).name
            raise NpmError(
                f"npm was terminated by signal {signal_name}",
                stdout=stdout,
                stderr=stderr,
                returncode=returncode,
                signal_name=signal_name,
            )
        if returncode != 0:
            raise NpmError(
                f"npm exited with code {returncode}",
                stdout=stdout,
                stderr=stderr,
                returncode=returncode,
            )
        return stdout.strip()

    def list_config(self, location: Optional[str] = None) -> dict[str, Any]:
        """Return the effective npm configuration for ``location``."""
        args = ["config", "list", "--json"]
        if location:
            args.append(f"--location={location}")
        output = self.execute(args)
        config = try_parse_json(output)
        if not isinstance(config, dict):
            raise workflow_common.WorkflowError(
                "npm config list did not return a JSON object",
                hint="npm 7 or newer is required for --json config output",
            )
        return config

    def get_manifest_field(self, key: str) -> Any:
        """Return a package.json field via ``npm pkg get``, or None if unset."""
        try:
            output = self.execute(["pkg", "get", key, "--json"])
        except NpmError:
            output = self.execute(["pkg", "get", key])
        return decode_manifest_field(key, output)

    def set_config(
        self,
        key: str,
        value: str,
        location: Optional[str] = None,
        dry_run: bool = False,
    ) -> None:
        """Persist ``key=value``; ``value`` never appears in the echo."""
        args = ["config", "set"]
        if location:
            args.extend(["--location", location])
        args.extend([key, value])
        self.execute(args, dry_run=dry_run, secrets=[value])
