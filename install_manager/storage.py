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

"""Storage backend abstraction used to allocate the control-plane volume.

Drivers register themselves by name with :func:`register_driver`; the
``storageDriverName`` field of ``backend.json`` picks one. The built-in
``static`` driver hands out a pre-provisioned NFS export or iSCSI LUN.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from install_manager import logger
from install_manager.errors import ConfigurationError
from install_manager.validation import quantity_bytes

PROTOCOL_FILE = "file"
PROTOCOL_BLOCK = "block"


# ============================================================================
# Data model
# ============================================================================

@dataclass(frozen=True)
class VolumeAccessInfo:
    """How a node reaches a volume, as reported by the driver.

    Exactly one of the NFS or iSCSI groups is filled in. A non-empty
    ``iscsi_target_secret`` means the session is CHAP-authenticated.
    """

    nfs_server_ip: str = ""
    nfs_path: str = ""
    iscsi_target_portal: str = ""
    iscsi_target_iqn: str = ""
    iscsi_lun_number: int = 0
    iscsi_username: str = ""
    iscsi_initiator_secret: str = ""
    iscsi_target_secret: str = ""


@dataclass(frozen=True)
class StoragePool:
    name: str
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VolumeConfig:
    name: str
    size: str
    protocol: str
    version: str = "1"


@dataclass(frozen=True)
class Volume:
    config: VolumeConfig
    backend: str
    pool: str
    access_info: VolumeAccessInfo


class StorageDriver(Protocol):
    """What a storage driver must provide to the installer."""

    name: str

    def initialize(self, config: dict[str, Any]) -> None: ...
    def default_backend_name(self) -> str: ...
    def protocol(self) -> str: ...
    def pools(self) -> list[StoragePool]: ...
    def create_volume(self, config: VolumeConfig, pool: StoragePool) -> VolumeAccessInfo: ...


@dataclass
class StorageBackend:
    """An initialized driver plus the pools it offers."""

    name: str
    driver: StorageDriver
    storage: dict[str, StoragePool] = field(default_factory=dict)

    @property
    def driver_name(self) -> str:
        return self.driver.name

    @property
    def protocol(self) -> str:
        return self.driver.protocol()

    def add_volume(self, config: VolumeConfig, pool: StoragePool) -> Volume:
        access_info = self.driver.create_volume(config, pool)
        logger.debug("Backend %s created volume %s in pool %s.", self.name, config.name, pool.name)
        return Volume(config=config, backend=self.name, pool=pool.name, access_info=access_info)


# ============================================================================
# Driver registry
# ============================================================================

_DRIVERS: dict[str, Callable[[], StorageDriver]] = {}


def register_driver(name: str):
    """Decorator to register a driver factory under *name*."""
    def _wrap(factory: Callable[[], StorageDriver]):
        _DRIVERS[name] = factory
        return factory
    return _wrap


def registered_drivers() -> list[str]:
    return sorted(_DRIVERS)


class CommonBackendConfig(BaseModel):
    """Fields every ``backend.json`` carries, regardless of driver."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    version: int = 1
    storage_driver_name: str = Field(alias="storageDriverName", min_length=1)
    backend_name: str | None = Field(default=None, alias="backendName")

    @model_validator(mode="after")
    def _check_version(self) -> CommonBackendConfig:
        if self.version != 1:
            raise ValueError(f"unsupported backend config version {self.version}")
        return self


def new_backend_for_config(document: str) -> StorageBackend:
    """Parse a backend config document and start its driver.

    Args:
        document: Contents of ``backend.json``.

    Returns:
        Initialized storage backend.

    Raises:
        ConfigurationError: If the document is malformed, names an unknown
            driver, or the driver rejects its configuration.
    """
    try:
        raw = json.loads(document)
    except json.JSONDecodeError as err:
        raise ConfigurationError(f"could not parse the storage backend config; {err}") from err
    if not isinstance(raw, dict):
        raise ConfigurationError("could not parse the storage backend config; expected a JSON object")
    try:
        common = CommonBackendConfig.model_validate(raw)
    except ValidationError as err:
        raise ConfigurationError(f"invalid storage backend config; {err}") from err

    factory = _DRIVERS.get(common.storage_driver_name)
    if factory is None:
        raise ConfigurationError(
            f"unknown storage driver '{common.storage_driver_name}'; "
            f"known drivers: {', '.join(registered_drivers())}"
        )
    driver = factory()
    driver.initialize(raw)

    name = common.backend_name or driver.default_backend_name()
    pools = {pool.name: pool for pool in driver.pools()}
    return StorageBackend(name=name, driver=driver, storage=pools)


# ============================================================================
# Static driver
# ============================================================================

class StaticDriverConfig(BaseModel):
    """Configuration of a pre-provisioned NFS export or iSCSI LUN."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    protocol: Literal["nfs", "iscsi"]
    nfs_server_ip: str = Field(default="", alias="nfsServerIP")
    nfs_path: str = Field(default="", alias="nfsPath")
    iscsi_target_portal: str = Field(default="", alias="iscsiTargetPortal")
    iscsi_target_iqn: str = Field(default="", alias="iscsiTargetIQN")
    iscsi_lun_number: int = Field(default=0, alias="iscsiLunNumber", ge=0)
    use_chap: bool = Field(default=False, alias="useCHAP")
    chap_username: str = Field(default="", alias="chapUsername")
    chap_initiator_secret: str = Field(default="", alias="chapInitiatorSecret")
    chap_target_secret: str = Field(default="", alias="chapTargetSecret")
    size: str | None = None
    pools: list[str] = Field(default_factory=lambda: ["default"])

    @model_validator(mode="after")
    def _check_protocol_fields(self) -> StaticDriverConfig:
        if self.protocol == "nfs" and not (self.nfs_server_ip and self.nfs_path):
            raise ValueError("nfs requires nfsServerIP and nfsPath")
        if self.protocol == "iscsi" and not (self.iscsi_target_portal and self.iscsi_target_iqn):
            raise ValueError("iscsi requires iscsiTargetPortal and iscsiTargetIQN")
        if self.use_chap and not (self.chap_username and self.chap_initiator_secret and self.chap_target_secret):
            raise ValueError("useCHAP requires chapUsername, chapInitiatorSecret and chapTargetSecret")
        return self


@register_driver("static")
class StaticDriver:
    """Hands out one volume that already exists on the storage system."""

    name = "static"

    def __init__(self) -> None:
        self.config: StaticDriverConfig | None = None

    def _cfg(self) -> StaticDriverConfig:
        if self.config is None:
            raise ConfigurationError("static driver is not initialized")
        return self.config

    def initialize(self, config: dict[str, Any]) -> None:
        try:
            self.config = StaticDriverConfig.model_validate(config)
        except ValidationError as err:
            raise ConfigurationError(f"invalid static driver config; {err}") from err
        if self.config.size is not None:
            try:
                quantity_bytes(self.config.size)
            except ValueError as err:
                raise ConfigurationError(f"invalid static driver config; size {err}") from err

    def default_backend_name(self) -> str:
        cfg = self._cfg()
        if cfg.protocol == "nfs":
            return f"static_{cfg.nfs_server_ip}"
        return f"static_{cfg.iscsi_target_portal}"

    def protocol(self) -> str:
        return PROTOCOL_FILE if self._cfg().protocol == "nfs" else PROTOCOL_BLOCK

    def pools(self) -> list[StoragePool]:
        return [StoragePool(name=name, attributes={"protocol": self.protocol()}) for name in self._cfg().pools]

    def create_volume(self, config: VolumeConfig, pool: StoragePool) -> VolumeAccessInfo:
        """Return access details of the pre-provisioned volume.

        Raises:
            ConfigurationError: If the declared size is smaller than requested.
        """
        cfg = self._cfg()
        if cfg.size is not None and quantity_bytes(cfg.size) < quantity_bytes(config.size):
            raise ConfigurationError(
                f"static volume size {cfg.size} is smaller than the requested {config.size}"
            )
        if cfg.protocol == "nfs":
            return VolumeAccessInfo(nfs_server_ip=cfg.nfs_server_ip, nfs_path=cfg.nfs_path)
        chap: dict[str, str] = {}
        if cfg.use_chap:
            chap = {
                "iscsi_username": cfg.chap_username,
                "iscsi_initiator_secret": cfg.chap_initiator_secret,
                "iscsi_target_secret": cfg.chap_target_secret,
            }
        return VolumeAccessInfo(
            iscsi_target_portal=cfg.iscsi_target_portal,
            iscsi_target_iqn=cfg.iscsi_target_iqn,
            iscsi_lun_number=cfg.iscsi_lun_number,
            **chap,
        )
