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

"""Install command: checks, then installs Trident or writes its manifests."""

from __future__ import annotations

import logging
from pathlib import Path

import typer

from install_manager import console, set_quiet
from install_manager.config import InstallerSettings
from install_manager.constants import MANAGEMENT_CLI
from install_manager.environment import check_images, discover_environment
from install_manager.errors import InstallError
from install_manager.orchestrator import generate_manifests, run_install
from install_manager.rbac import select_rbac_manager
from install_manager.validation import build_request

app = typer.Typer(help="Install Trident.")


def _fail(message: str) -> None:
    console.quiet = False
    console.print(f"[red]\u274c {message}[/red]")
    raise typer.Exit(code=1)


@app.callback(invoke_without_command=True)
def install(
    dry_run: bool = typer.Option(False, "--dry-run", help="Run all the pre-checks, but don't install anything."),
    generate_custom_yaml: bool = typer.Option(
        False, "--generate-custom-yaml", help="Create YAML files, but don't install anything."
    ),
    use_custom_yaml: bool = typer.Option(
        False, "--use-custom-yaml", help="Use any existing YAML files that exist in setup directory."
    ),
    silent: bool = typer.Option(False, "--silent", help="Disable most output during installation."),
    csi: bool = typer.Option(False, "--csi", help="Install CSI Trident (technology preview)."),
    pvc: str = typer.Option("", "--pvc", help="The name of the PVC used by Trident."),
    pv: str = typer.Option("", "--pv", help="The name of the PV used by Trident."),
    volume_name: str = typer.Option("", "--volume-name", help="The name of the storage volume used by Trident."),
    volume_size: str | None = typer.Option(None, "--volume-size", help="The size of the storage volume."),
    trident_image: str | None = typer.Option(None, "--trident-image", help="The Trident image to install."),
    etcd_image: str | None = typer.Option(None, "--etcd-image", help="The etcd image to install."),
    k8s_timeout: float | None = typer.Option(
        None, "--k8s-timeout", help="Seconds to wait for each Kubernetes operation.", min=0.001
    ),
    namespace: str | None = typer.Option(None, "--namespace", "-n", help="Namespace to install Trident into."),
    ucp_bearer_token: str | None = typer.Option(None, "--ucp-bearer-token", help="UCP authorization token."),
    ucp_host: str | None = typer.Option(None, "--ucp-host", help="IP address of the UCP host."),
    setup_dir: Path | None = typer.Option(None, "--setup-dir", help="Directory holding backend.json and YAML files."),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug output."),
) -> None:
    """Install Trident into the cluster (or write its manifests)."""
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
    elif silent:
        logging.getLogger().setLevel(logging.ERROR)
    set_quiet(silent)

    settings = InstallerSettings()
    overrides: dict = {}
    if volume_size is not None:
        overrides["volume_size"] = volume_size
    if trident_image is not None:
        overrides["trident_image"] = trident_image
    if etcd_image is not None:
        overrides["etcd_image"] = etcd_image
    if k8s_timeout is not None:
        overrides["k8s_timeout"] = k8s_timeout
    if setup_dir is not None:
        overrides["setup_dir"] = setup_dir
    if overrides:
        settings = settings.model_copy(update=overrides)

    try:
        env = discover_environment(settings, namespace=namespace, ucp_host=ucp_host, ucp_token=ucp_bearer_token)
    except (InstallError, RuntimeError) as e:
        _fail(f"Install pre-checks failed; {e}")

    try:
        request = build_request(
            namespace=env.namespace,
            csi=csi,
            pvc_name=pvc,
            pv_name=pv,
            volume_name=volume_name,
            volume_size=settings.volume_size,
            trident_image=settings.trident_image,
            etcd_image=settings.etcd_image,
            use_kubernetes_rbac=env.ucp is None,
            k8s_timeout=settings.k8s_timeout,
            setup_dir=settings.setup_dir,
            dry_run=dry_run,
            use_custom_yaml=use_custom_yaml,
            generate_yaml=generate_custom_yaml,
            debug=debug,
            backoff_initial=settings.backoff_initial,
            backoff_max=settings.backoff_max,
        )
    except InstallError as e:
        _fail(f"Invalid arguments; {e}")
    check_images(request.trident_image, request.etcd_image)

    if request.generate_yaml:
        try:
            generate_manifests(request, env.facts)
        except InstallError as e:
            _fail(f"YAML generation failed; {e}")
        return

    if request.csi:
        console.print(
            "[yellow]\u26a0\ufe0f  CSI Trident for Kubernetes is a technology preview "
            "and should not be installed in production environments![/yellow]"
        )
    try:
        rbac = select_rbac_manager(env.client, request, env.facts, env.ucp)
        run_install(request, env.client, env.facts, rbac)
    except InstallError as e:
        _fail(
            f"Install failed; {e}. Resolve the issue; use '{MANAGEMENT_CLI} uninstall' to clean up; and try again."
        )
