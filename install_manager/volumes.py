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

"""Control-plane volume bootstrap: backend load, allocation and PV creation."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from install_manager import console, logger
from install_manager.config import ClusterFacts, InstallationRequest
from install_manager.constants import BACKEND_CONFIG_FILENAME, CHAP_MIN_VERSION, CHAP_SECRET_PREFIX
from install_manager.errors import ClusterAPIError, ConfigurationError, InstallError
from install_manager.kube import ClusterClient
from install_manager.manifests import (
    chap_iscsi_pv_manifest,
    chap_secret_manifest,
    iscsi_pv_manifest,
    nfs_pv_manifest,
)
from install_manager.storage import (
    StorageBackend,
    StoragePool,
    Volume,
    VolumeAccessInfo,
    VolumeConfig,
    new_backend_for_config,
)
from install_manager.utils import dump_yaml


# ============================================================================
# Volume sources
# ============================================================================

@dataclass(frozen=True)
class NfsVolumeSource:
    server: str
    path: str


@dataclass(frozen=True)
class IscsiVolumeSource:
    portal: str
    iqn: str
    lun: int


@dataclass(frozen=True)
class ChapIscsiVolumeSource:
    portal: str
    iqn: str
    lun: int
    username: str
    initiator_secret: str
    target_secret: str


VolumeSource = NfsVolumeSource | IscsiVolumeSource | ChapIscsiVolumeSource


def classify_access(info: VolumeAccessInfo) -> VolumeSource:
    """Turn driver access details into exactly one volume source.

    Raises:
        ConfigurationError: If neither an NFS server nor an iSCSI portal is set.
    """
    if info.nfs_server_ip:
        return NfsVolumeSource(server=info.nfs_server_ip, path=info.nfs_path)
    if info.iscsi_target_portal:
        if info.iscsi_target_secret:
            return ChapIscsiVolumeSource(
                portal=info.iscsi_target_portal,
                iqn=info.iscsi_target_iqn,
                lun=info.iscsi_lun_number,
                username=info.iscsi_username,
                initiator_secret=info.iscsi_initiator_secret,
                target_secret=info.iscsi_target_secret,
            )
        return IscsiVolumeSource(
            portal=info.iscsi_target_portal, iqn=info.iscsi_target_iqn, lun=info.iscsi_lun_number
        )
    raise ConfigurationError("unrecognized volume type")


# ============================================================================
# Backend
# ============================================================================

def load_backend(setup_dir: Path) -> StorageBackend:
    """Read ``backend.json`` from *setup_dir* and start its driver.

    Args:
        setup_dir: Setup directory.

    Returns:
        Initialized storage backend.

    Raises:
        ConfigurationError: If the directory or file is missing or unreadable,
            or the driver fails to start.
    """
    if not setup_dir.is_dir():
        raise ConfigurationError(f"setup directory does not exist; {setup_dir}")
    config_path = setup_dir / BACKEND_CONFIG_FILENAME
    if not config_path.is_file():
        raise ConfigurationError(f"storage backend config file does not exist; {config_path}")

    logger.info("Starting storage driver from %s.", config_path)
    try:
        document = config_path.read_text()
    except OSError as err:
        raise ConfigurationError(f"could not read the storage backend config file; {err}") from err
    try:
        backend = new_backend_for_config(document)
    except ConfigurationError as err:
        raise ConfigurationError(f"could not start the storage backend driver; {err}") from err
    console.print(f"[green]\u2705 Storage driver loaded: {backend.driver_name}[/green]")
    return backend


def select_pool(backend: StorageBackend) -> StoragePool:
    """Return the first pool the backend offers.

    Raises:
        ConfigurationError: If the backend has no pools.
    """
    if not backend.storage:
        raise ConfigurationError(f"backend {backend.name} has no storage pools")
    return next(iter(backend.storage.values()))


def allocate_volume(backend: StorageBackend, request: InstallationRequest) -> Volume:
    """Create the backend volume with no attribute constraints.

    Raises:
        ConfigurationError: If no pool is available or the driver fails.
    """
    pool = select_pool(backend)
    config = VolumeConfig(name=request.volume_name, size=request.volume_size, protocol=backend.protocol)
    try:
        return backend.add_volume(config, pool)
    except InstallError as err:
        raise ConfigurationError(f"could not create a volume on the storage backend; {err}") from err


# ============================================================================
# CHAP session secret
# ============================================================================

def chap_secret_name(backend_name: str, username: str) -> str:
    """Derive a DNS-safe secret name from the backend and CHAP user."""
    name = f"{CHAP_SECRET_PREFIX}-{backend_name}-{username}".lower()
    return re.sub(r"[_.]", "-", name)


def ensure_chap_secret(
    client: ClusterClient, request: InstallationRequest, backend_name: str, source: ChapIscsiVolumeSource
) -> str:
    """Create the CHAP session secret unless it already exists.

    Returns:
        The secret name.

    Raises:
        ClusterAPIError: If the lookup or the creation fails.
    """
    name = chap_secret_name(backend_name, source.username)
    try:
        exists = client.secret_exists(name)
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not check for existing iSCSI CHAP secret; {err}") from err
    if exists:
        logger.debug("iSCSI CHAP secret %s already exists.", name)
        return name

    manifest = chap_secret_manifest(
        name, request.namespace, source.username, source.initiator_secret, source.target_secret
    )
    try:
        client.create_object_by_yaml(dump_yaml(manifest))
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not create CHAP secret; {err}") from err
    console.print(f"[green]\u2705 Created iSCSI CHAP secret {name}.[/green]")
    return name


# ============================================================================
# Persistent volume
# ============================================================================

def render_pv_manifest(request: InstallationRequest, source: VolumeSource, secret_name: str = "") -> dict:
    if isinstance(source, NfsVolumeSource):
        return nfs_pv_manifest(request, source.server, source.path)
    if isinstance(source, ChapIscsiVolumeSource):
        return chap_iscsi_pv_manifest(request, source.portal, source.iqn, source.lun, secret_name)
    if isinstance(source, IscsiVolumeSource):
        return iscsi_pv_manifest(request, source.portal, source.iqn, source.lun)
    raise ConfigurationError("unrecognized volume type")


def bootstrap_volume(
    client: ClusterClient, request: InstallationRequest, facts: ClusterFacts, backend: StorageBackend
) -> None:
    """Allocate the control-plane volume and create the PV bound to the claim.

    Raises:
        ConfigurationError: If allocation fails, the access type is unknown,
            or CHAP is needed on a cluster older than v1.7.0.
        ClusterAPIError: If the secret or the PV cannot be created.
    """
    volume = allocate_volume(backend, request)
    source = classify_access(volume.access_info)

    secret_name = ""
    if isinstance(source, ChapIscsiVolumeSource):
        if not facts.version_at_least(CHAP_MIN_VERSION):
            raise ConfigurationError(
                f"iSCSI CHAP requires Kubernetes 1.7.0 or later; cluster is {facts.version_string}"
            )
        secret_name = ensure_chap_secret(client, request, backend.name, source)

    manifest = render_pv_manifest(request, source, secret_name)
    try:
        client.create_object_by_yaml(dump_yaml(manifest))
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not create PV {request.pv_name}; {err}") from err
    console.print(f"[green]\u2705 Created PV {request.pv_name}.[/green]")
