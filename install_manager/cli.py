#!/usr/bin/env python3
# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""
cli.py - CLI for installing the Trident storage orchestrator.

Subcommands:
    install    Install Trident, or write its manifests for editing

Examples:
    # Check everything, change nothing
    install-manager install --dry-run

    # Install into the 'trident' namespace
    install-manager install -n trident

    # Write the CSI manifests to ./setup, edit them, then install from them
    install-manager install --csi --generate-custom-yaml
    install-manager install --csi --use-custom-yaml

For detailed usage information, run: install-manager --help
"""

from __future__ import annotations

import logging
import sys

import typer

from install_manager import console
from install_manager.commands import install_cmd

app = typer.Typer(
    help="CLI for installing the Trident storage orchestrator.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(install_cmd.app, name="install")


if __name__ == "__main__":
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)
