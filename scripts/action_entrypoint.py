#!/usr/bin/env python3
# file: scripts/action_entrypoint.py
# version: 1.0.0
# guid: 3f9c6e20-7a1d-4d58-b2e4-91c0a5f7d8e3

"""GitHub Actions entrypoint: map action inputs onto setup-npm-auth flags."""

from __future__ import annotations

import json
import os

import setup_npm_auth
import workflow_common

TRUE_VALUES = ("true", "True", "TRUE")
FALSE_VALUES = ("false", "False", "FALSE")


def get_input(name: str) -> str:
    """Return ``INPUT_<NAME>`` with dashes as underscores, trimmed."""
    env_name = "INPUT_" + name.replace(" ", "_").replace("-", "_").upper()
    return os.environ.get(env_name, "").strip()


def get_multiline_input(name: str) -> list[str]:
    return [line.strip() for line in get_input(name).splitlines() if line.strip()]


def get_boolean_input(name: str) -> bool:
    """Parse a boolean input using the YAML 1.2 core schema spellings."""
    value = get_input(name)
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES or not value:
        return False
    raise workflow_common.WorkflowError(
        f"Input does not meet YAML 1.2 \"Core Schema\" specification: {name}",
        hint="Support boolean input list: `true | True | TRUE | false | False | FALSE`",
    )


def build_args() -> list[str]:
    args: list[str] = []
    for include in get_multiline_input("includes"):
        args.extend(["--include", include])

    location = get_input("location")
    if location:
        args.extend(["--location", location])
    if get_boolean_input("dry-run"):
        args.append("--dry-run")
    if get_boolean_input("verbose"):
        args.append("--verbose")
    return args


def format_summary(tasks: list[setup_npm_auth.ResolvedTask], dry_run: bool) -> str:
    """Format configured registries as a markdown step summary."""
    title = "## npm registry auth" + (" (dry-run)" if dry_run else "")
    if not tasks:
        return f"{title}\n\nNothing configured\n"

    lines = [
        title,
        "",
        "| Scope | Registry | Token variable |",
        "|-------|----------|----------------|",
    ]
    for task in tasks:
        lines.append(f"| {task.scope} | {task.registry_url} | {task.env_var} |")
    return "\n".join(lines) + "\n"


def main() -> None:
    try:
        parser = setup_npm_auth.build_parser()
        options = setup_npm_auth.resolve_options(parser.parse_args(build_args()))
        tasks = setup_npm_auth.run(options)

        try:
            workflow_common.write_output(
                "configured",
                json.dumps([task.scope for task in tasks]),
            )
            workflow_common.append_summary(format_summary(tasks, options.dry_run))
        except workflow_common.WorkflowError as error:
            print(workflow_common.sanitize_log(str(error)))
    except Exception as error:  # pylint: disable=broad-except
        workflow_common.handle_error(error, "setup-npm-auth action")


if __name__ == "__main__":
    main()
