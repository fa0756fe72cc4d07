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

"""Environment discovery: cluster CLI, flavor, version, namespace and authorization client."""

from __future__ import annotations

from dataclasses import dataclass

from rich.panel import Panel

from install_manager import console, logger
from install_manager.config import ClusterFacts, Flavor, InstallerSettings
from install_manager.constants import CLI_OPENSHIFT, PREFERRED_NAMESPACE, QUALIFIED_ETCD_VERSION
from install_manager.errors import ClusterAPIError, ConfigurationError
from install_manager.kube import KubectlClient
from install_manager.ucp import UcpClient
from install_manager.utils import command_exists, require_command, run_kubectl


@dataclass(frozen=True)
class Environment:
    """Everything discovered about the target cluster before installing.

    Attributes:
        client: Cluster client bound to the installation namespace.
        facts: Flavor, version and current namespace.
        namespace: Installation namespace.
        ucp: External authorization client, when credentials were given.
    """

    client: KubectlClient
    facts: ClusterFacts
    namespace: str
    ucp: UcpClient | None = None


def detect_flavor(cli: str) -> tuple[str, Flavor]:
    """Decide whether the cluster is OpenShift and which CLI drives it.

    OpenShift is assumed when the ``oc`` binary is installed and the server
    serves security context constraints.

    Returns:
        Tuple of (cli, flavor).

    Raises:
        RuntimeError: If no usable cluster CLI is installed.
    """
    if command_exists(CLI_OPENSHIFT):
        ok, stdout, _ = run_kubectl(["api-resources", "-o", "name"], cli=CLI_OPENSHIFT)
        if ok and "securitycontextconstraints" in stdout:
            return CLI_OPENSHIFT, Flavor.OPENSHIFT
    require_command(cli)
    return cli, Flavor.KUBERNETES


def discover_environment(
    settings: InstallerSettings,
    namespace: str | None = None,
    ucp_host: str | None = None,
    ucp_token: str | None = None,
) -> Environment:
    """Probe the cluster once and build the clients used by the installer.

    Args:
        settings: Installer settings (CLI binary, default namespace).
        namespace: Namespace given on the command line, if any.
        ucp_host: External authorization host, if any.
        ucp_token: External authorization bearer token, if any.

    Returns:
        The discovered environment.

    Raises:
        ConfigurationError: If only one of the UCP options is supplied.
        ClusterAPIError: If the cluster cannot be reached.
        RuntimeError: If no cluster CLI is installed.
    """
    console.print(Panel.fit("Discovering installation environment", style="bold blue"))

    cli, flavor = detect_flavor(settings.cli)
    client = KubectlClient(cli=cli, flavor=flavor)
    try:
        version = client.server_version()
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not communicate with the cluster; {err}") from err
    facts = ClusterFacts(flavor=flavor, version=version, namespace=client.namespace, cli=cli)
    console.print(f"[green]\u2705 Connected to {flavor.value} {facts.version_string} using {cli}[/green]")

    target = namespace or settings.namespace or client.namespace
    if target != PREFERRED_NAMESPACE:
        console.print(
            f"[yellow]\u26a0\ufe0f  For maximum security, we recommend running Trident in its own "
            f"'{PREFERRED_NAMESPACE}' namespace (installing into '{target}').[/yellow]"
        )
    client.set_namespace(target)

    ucp = None
    if ucp_host or ucp_token:
        if not (ucp_host and ucp_token):
            raise ConfigurationError("--ucp-host and --ucp-bearer-token must be used together")
        ucp = UcpClient(ucp_host, ucp_token)
        logger.info("Using UCP at %s for authorization.", ucp.base_url)

    return Environment(client=client, facts=facts, namespace=target, ucp=ucp)


def check_images(trident_image: str, etcd_image: str) -> None:
    """Warn about images that have not been qualified together."""
    logger.debug("Trident image %s, etcd image %s.", trident_image, etcd_image)
    if not etcd_image.endswith(f":{QUALIFIED_ETCD_VERSION}"):
        console.print(
            f"[yellow]\u26a0\ufe0f  Trident was qualified with etcd {QUALIFIED_ETCD_VERSION}; "
            f"you appear to be using a different version ({etcd_image}).[/yellow]"
        )
