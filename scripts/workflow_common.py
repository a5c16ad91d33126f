#!/usr/bin/env python3
# file: scripts/workflow_common.py
# version: 1.1.0
# guid: 0b7e4c1a-93d2-4f6e-8a51-2c9d7f3e6b14

"""Shared utilities for the setup-npm-auth scripts."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
import re
import sys
from typing import Any

import yaml

DEFAULT_CONFIG_FILE = ".github/repository-config.yml"

_CONFIG_CACHE: dict[str, dict[str, Any]] = {}


class WorkflowError(Exception):
    """Workflow execution error with optional hints and documentation links."""

    def __init__(
        self,
        message: str,
        hint: str = "",
        docs_url: str = "",
    ) -> None:
        """Initialize workflow error."""
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.docs_url = docs_url

    def __str__(self) -> str:
        """Format error with hints and documentation links."""
        parts = [f"❌ {self.message}"]
        if self.hint:
            parts.append(f"💡 Hint: {self.hint}")
        if self.docs_url:
            parts.append(f"📚 Docs: {self.docs_url}")
        return "\n".join(parts)


@dataclass(frozen=True)
class Console:
    """Console narration settings handed to every component that prints."""

    verbose: bool = False

    def info(self, *parts: Any) -> None:
        print(*parts)

    def detail(self, *parts: Any) -> None:
        """Print only when verbose output was requested."""
        if self.verbose:
            print(*parts)

    def error(self, message: str) -> None:
        print(sanitize_log(message), file=sys.stderr)


def append_to_file(path_env: str, content: str) -> None:
    """Append content to a GitHub Actions environment file."""
    file_path_str = os.environ.get(path_env)
    if not file_path_str:
        raise WorkflowError(
            f"Environment variable {path_env} not set",
            hint="This helper must run inside a GitHub Actions workflow",
            docs_url=(
                "https://docs.github.com/en/actions/using-workflows/"
                "workflow-commands-for-github-actions"
            ),
        )

    file_path = Path(file_path_str)
    if not file_path.exists():
        raise WorkflowError(
            f"File {file_path} does not exist",
            hint=f"Ensure GitHub Actions created the {path_env} file",
        )

    with file_path.open("a", encoding="utf-8") as handle:
        handle.write(content)


def write_output(name: str, value: str) -> None:
    """Write an output variable for downstream workflow steps."""
    append_to_file("GITHUB_OUTPUT", f"{name}={value}\n")


def append_summary(text: str) -> None:
    """Append markdown content to the GitHub Actions step summary."""
    append_to_file("GITHUB_STEP_SUMMARY", text)


def default_config_file() -> Path:
    """Return the repository config path, honouring ``CONFIG_FILE``."""
    return Path(os.environ.get("CONFIG_FILE") or DEFAULT_CONFIG_FILE)


def get_repository_config(config_file: Path | None = None) -> dict[str, Any]:
    """Load and cache the repository YAML config.

    A missing file is not an error: it yields an empty mapping so callers
    fall back to their built-in defaults.
    """
    path = config_file if config_file is not None else default_config_file()
    cache_key = str(path)
    if cache_key in _CONFIG_CACHE:
        return _CONFIG_CACHE[cache_key]

    if not path.exists():
        _CONFIG_CACHE[cache_key] = {}
        return _CONFIG_CACHE[cache_key]

    try:
        with path.open(encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as error:
        raise WorkflowError(
            f"Invalid YAML in {path}: {error}",
            hint=f"Validate with: yamllint {path}",
        ) from error

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise WorkflowError(
            f"{path} must contain a YAML dictionary",
            hint="Ensure the file starts with top-level keys",
        )

    _CONFIG_CACHE[cache_key] = data
    return data


def config_path(default: Any, *path: str, config_file: Path | None = None) -> Any:
    """Navigate configuration dictionary and return value or default."""
    current: Any = get_repository_config(config_file)
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def handle_error(error: Exception, context: str) -> None:
    """Handle workflow errors by printing details and exiting."""
    if isinstance(error, WorkflowError):
        message = str(error)
    else:
        message = f"❌ Unexpected error in {context}: {error}"
    print(sanitize_log(message), file=sys.stderr)
    sys.exit(1)


def sanitize_log(message: str) -> str:
    """Mask sensitive tokens from log messages."""
    sanitized = re.sub(r"ghp_[a-zA-Z0-9]{36}", "***GITHUB_TOKEN***", message)
    sanitized = re.sub(r"ghs_[a-zA-Z0-9]{36}", "***GITHUB_SECRET***", sanitized)
    sanitized = re.sub(r"npm_[a-zA-Z0-9]{36}", "***NPM_TOKEN***", sanitized)
    sanitized = re.sub(
        r"(:_authToken\s*=\s*)\S+",
        r"\1***TOKEN***",
        sanitized,
    )
    sanitized = re.sub(
        r"Bearer\s+[a-zA-Z0-9\-._~+/]+=*",
        "Bearer ***TOKEN***",
        sanitized,
    )
    return sanitized
