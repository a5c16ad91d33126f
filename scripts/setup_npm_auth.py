#!/usr/bin/env python3
# file: scripts/setup_npm_auth.py
# version: 1.0.0
# guid: 8c41f0d7-2b9e-4a63-b5d8-e17f9a24c6b0

"""Configure user-level auth tokens for npm registries.

Registries are derived from npm itself rather than from .npmrc files:

- the default registry (config key ``registry``)
- ``publishConfig.registry`` from package.json (via ``npm pkg get``)
- scoped registries (config keys ``@scope:registry``)

Example:
    NODE_AUTH_TOKEN=foo SCOPE_TOKEN=bar setup-npm-auth \\
        --include default --include @myscope=SCOPE_TOKEN --dry-run
"""

from __future__ import annotations

import argparse
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
import os
from pathlib import Path
import re
from typing import Any, Optional
from urllib.parse import urlsplit

import npm_cli
import workflow_common

__version__ = "1.0.0"

DEFAULT_ENV_VAR = "NODE_AUTH_TOKEN"
AUTH_LOCATION = "user"
DEFAULT_PORTS = {"http": 80, "https": 443, "ws": 80, "wss": 443, "ftp": 21}

_QUOTED = re.compile(r"""^(['"])(.*)\1$""", re.DOTALL)

EXAMPLES = """\
Examples:

  # Set auth for the default registry using NODE_AUTH_TOKEN
  $ NODE_AUTH_TOKEN=foo setup-npm-auth

  # Set auth for default and publishConfig.registry using different env vars
  $ NODE_AUTH_TOKEN=foo PUBLISH_TOKEN=bar setup-npm-auth --include default --include publish=PUBLISH_TOKEN

  # Set auth for a scoped registry
  $ SCOPE_TOKEN=abc setup-npm-auth --include @myscope=SCOPE_TOKEN

  # Read registries from a specific npm config location
  $ NODE_AUTH_TOKEN=foo setup-npm-auth -L project

  # Show what would be configured, but do not write anything
  $ NODE_AUTH_TOKEN=foo setup-npm-auth --dry-run --verbose

  # Fail if a required registry is not found
  $ setup-npm-auth --include @notfound
"""


class InvalidInclude(workflow_common.WorkflowError):
    """An --include value could not be parsed."""


class InvalidIncludeValue(InvalidInclude):
    """The --include value is empty or has no scope."""


class InvalidIncludeTarget(InvalidInclude):
    """The --include scope is not default, publish, or an @scope."""


class InvalidRegistryUrl(workflow_common.WorkflowError):
    """A registry URL is not an absolute URL."""


class UnresolvedInclude(workflow_common.WorkflowError):
    """An include target was requested but no registry was discovered."""

    HINTS = {
        "default": "Is a default registry configured?",
        "publish": "Is publishConfig.registry set in package.json?",
    }
    SCOPE_HINT = "Is this scope configured via @scope:registry in npm config?"

    def __init__(self, scope: str) -> None:
        super().__init__(
            f'Include target "{scope}" was requested '
            "but no registry could be discovered for it.",
            hint=self.HINTS.get(scope, self.SCOPE_HINT),
        )
        self.scope = scope


@dataclass(frozen=True)
class IncludeDirective:
    """One ``<scope>[=<ENV_VAR>]`` request."""

    scope: str
    env_var: str = DEFAULT_ENV_VAR


@dataclass(frozen=True)
class ResolvedTask:
    """A registry discovered for an include, with its token variable."""

    scope: str
    registry_url: str
    env_var: str


@dataclass
class RunOptions:
    """Options for one invocation.

    Attributes:
        includes: Parsed include directives; empty means ``default``
        location: npm config location to read registries from
        dry_run: Echo ``npm config set`` commands without running them
        verbose: Narrate options and discovered registries
        timeout: Seconds allowed per npm command
    """

    includes: list[IncludeDirective] = field(default_factory=list)
    location: Optional[str] = None
    dry_run: bool = False
    verbose: bool = False
    timeout: Optional[float] = None


def unquote(value: str) -> str:
    """Strip one pair of matching surrounding single or double quotes."""
    return _QUOTED.sub(r"\2", value)


def parse_include(
    raw: str,
    accumulated: Optional[Sequence[IncludeDirective]] = None,
) -> list[IncludeDirective]:
    """Parse ``<scope>[=<ENV_VAR>]`` and return ``accumulated`` plus the result.

    Raises:
        InvalidIncludeValue: If the value or its scope is empty
        InvalidIncludeTarget: If the scope is not default, publish or @scope
    """
    value = unquote(str(raw).strip())
    if not value:
        raise InvalidIncludeValue(f'Invalid --include value "{raw}".')

    scope, _, env_var = value.partition("=")
    scope = unquote(scope).strip()
    env_var = unquote(env_var).strip()
    if not scope:
        raise InvalidIncludeValue(f'Invalid --include value "{raw}".')

    if not (scope in ("default", "publish") or scope.startswith("@")):
        raise InvalidIncludeTarget(
            f'Invalid include target "{scope}".',
            hint='Use "default", "publish", or an "@scope" like "@my-scope".',
        )
    return [*(accumulated or []), IncludeDirective(scope, env_var or DEFAULT_ENV_VAR)]


def ensure_includes(includes: Optional[Sequence[IncludeDirective]]) -> list[IncludeDirective]:
    if not includes:
        return [IncludeDirective("default", DEFAULT_ENV_VAR)]
    return list(includes)


def registry_to_auth_key(registry_url: str) -> str:
    """Return the npm config key holding the token for ``registry_url``.

    ``https://registry.example.com/api`` becomes
    ``//registry.example.com/api/:_authToken``.
    """
    try:
        parts = urlsplit(str(registry_url).strip())
        port = parts.port
    except ValueError as error:
        raise InvalidRegistryUrl(f'Invalid registry URL "{registry_url}": {error}') from error

    hostname = parts.hostname
    if not parts.scheme or not hostname:
        raise InvalidRegistryUrl(
            f'Invalid registry URL "{registry_url}".',
            hint="Registry URLs must be absolute, e.g. https://registry.npmjs.org/",
        )

    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None and DEFAULT_PORTS.get(parts.scheme.lower()) != port:
        host = f"{host}:{port}"

    host_path = host + (parts.path or "/")
    if not host_path.endswith("/"):
        host_path += "/"
    return f"//{host_path}:_authToken"


def _find_include(
    includes: Sequence[IncludeDirective],
    scope: str,
) -> Optional[IncludeDirective]:
    return next((include for include in includes if include.scope == scope), None)


def discover_registries(
    includes: Sequence[IncludeDirective],
    config: Mapping[str, Any],
    npm: npm_cli.NpmRunner,
) -> list[ResolvedTask]:
    """Match include directives against npm's configuration.

    Order is default, publish, then scoped registries in config key order.
    npm is only asked for ``publishConfig.registry`` when ``publish`` was
    requested.
    """
    tasks: list[ResolvedTask] = []

    default_include = _find_include(includes, "default")
    if default_include:
        default_registry = config.get("registry")
        if default_registry:
            tasks.append(ResolvedTask("default", default_registry, default_include.env_var))

    publish_include = _find_include(includes, "publish")
    if publish_include:
        publish_registry = npm.get_manifest_field("publishConfig.registry")
        if publish_registry:
            tasks.append(ResolvedTask("publish", publish_registry, publish_include.env_var))

    for key, value in config.items():
        if not (key.startswith("@") and key.endswith(":registry")):
            continue
        scope = key[: key.index(":registry")]
        scope_include = _find_include(includes, scope)
        if scope_include:
            tasks.append(ResolvedTask(scope, value, scope_include.env_var))

    return tasks


def ensure_all_found(
    includes: Sequence[IncludeDirective],
    tasks: Sequence[ResolvedTask],
) -> None:
    """Raise UnresolvedInclude for the first include without a registry."""
    found = {task.scope for task in tasks}
    for include in includes:
        if include.scope not in found:
            raise UnresolvedInclude(include.scope)


def setup_registry_auth(
    tasks: Sequence[ResolvedTask],
    npm: npm_cli.NpmRunner,
    dry_run: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> list[ResolvedTask]:
    """Write one ``_authToken`` per task, in order.

    Tasks whose token variable is unset or empty are reported and skipped.
    Tokens always go to the ``user`` location regardless of where the
    registries were read from.

    Returns:
        The tasks that were configured (or would be, in dry-run mode)
    """
    if environ is None:
        environ = os.environ

    configured: list[ResolvedTask] = []
    for task in tasks:
        token = environ.get(task.env_var)
        if not token:
            npm.console.error(f"❌ Environment variable {task.env_var} does not exist.")
            continue

        auth_key = registry_to_auth_key(task.registry_url)
        npm.set_config(auth_key, token, location=AUTH_LOCATION, dry_run=dry_run)
        configured.append(task)
    return configured


def run(
    options: RunOptions,
    npm: Optional[npm_cli.NpmRunner] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> list[ResolvedTask]:
    """Discover registries and configure their tokens."""
    console = workflow_common.Console(verbose=options.verbose)
    if npm is None:
        npm = npm_cli.NpmRunner(console=console, timeout=options.timeout)

    includes = ensure_includes(options.includes)
    console.detail("")
    console.detail("🚀  Running with options:")
    console.detail("   🛠️  dryRun:", "enabled" if options.dry_run else "disabled")
    console.detail("   🛠️  verbose:", "enabled" if options.verbose else "disabled")
    console.detail("   🛠️  location:", options.location or "none given. Using npm default.")
    console.detail("   🛠️  includes:")
    for include in includes:
        console.detail(f"      ▶ {include.scope} -> {include.env_var}")
    console.detail("")

    config = npm.list_config(options.location)
    tasks = discover_registries(includes, config, npm)

    console.detail("")
    console.detail("🔎  Discovered registries:")
    for task in tasks:
        console.detail(f"   ▶ {task.scope} -> {task.registry_url} -> {task.env_var}")
    console.detail("")

    ensure_all_found(includes, tasks)
    if not tasks:
        console.info("Nothing to configure.")
        return []

    return setup_registry_auth(tasks, npm, dry_run=options.dry_run, environ=environ)


class IncludeAction(argparse.Action):
    """Accumulate ``--include`` values through parse_include."""

    def __call__(self, parser, namespace, values, option_string=None):
        current = getattr(namespace, self.dest, None)
        setattr(namespace, self.dest, parse_include(values, current))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="setup-npm-auth",
        description="Configure user-level auth tokens for npm registries.",
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-i",
        "--include",
        action=IncludeAction,
        default=None,
        metavar="<scope>",
        help='Include a registry. Repeatable. Grammar: <scope>[=<ENV_VAR>]. Defaults to "default".',
    )
    parser.add_argument(
        "-L",
        "--location",
        type=unquote,
        choices=npm_cli.LOCATIONS,
        default=None,
        help="npm config location to read registries from. Defaults to the npm default.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=None,
        help="Show which commands would be run, but don't execute them.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Show more detailed output.",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds to wait for each npm command before terminating it.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help=(
            "Repository config with an npm_auth section providing defaults "
            f"(default: $CONFIG_FILE or {workflow_common.DEFAULT_CONFIG_FILE})."
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def resolve_options(args: argparse.Namespace) -> RunOptions:
    """Merge CLI arguments over the ``npm_auth`` section of the repository config."""
    section = workflow_common.config_path({}, "npm_auth", config_file=args.config)
    if not isinstance(section, dict):
        raise workflow_common.WorkflowError(
            "npm_auth in the repository config must be a mapping",
            hint="Use keys such as includes, location and timeout",
        )

    includes = args.include
    if includes is None:
        configured = section.get("includes") or []
        if isinstance(configured, str):
            configured = configured.splitlines()
        includes = []
        for raw in configured:
            if str(raw).strip():
                includes = parse_include(raw, includes)

    location = args.location
    if location is None and section.get("location"):
        location = unquote(str(section["location"]).strip())
        if location not in npm_cli.LOCATIONS:
            raise workflow_common.WorkflowError(
                f'Invalid npm_auth.location "{location}"',
                hint=f"Use one of: {', '.join(npm_cli.LOCATIONS)}",
            )

    timeout = args.timeout
    if timeout is None and section.get("timeout") is not None:
        timeout = float(section["timeout"])

    return RunOptions(
        includes=includes,
        location=location,
        dry_run=bool(args.dry_run),
        verbose=bool(args.verbose),
        timeout=timeout,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    """CLI entry point; exits 1 on any error."""
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        run(resolve_options(args))
    except Exception as error:  # pylint: disable=broad-except
        workflow_common.handle_error(error, "setup-npm-auth")


if __name__ == "__main__":
    main()
