#!/usr/bin/env python3
# file: tests/workflow_scripts/__init__.py
# version: 1.1.0
# guid: a9e3d5c7-1f4b-4e82-9c60-7b2d8f1e3a54

"""Test package configuration for the setup-npm-auth scripts."""

from __future__ import annotations

from pathlib import Path
import sys

SCRIPTS_PATH = Path(__file__).resolve().parents[2] / "scripts"
if str(SCRIPTS_PATH) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_PATH))
