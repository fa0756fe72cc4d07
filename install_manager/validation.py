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

"""Argument normalization and validation against DNS-1123 naming rules."""

from __future__ import annotations

import math
import re
from decimal import Decimal
from pathlib import Path

from install_manager.config import InstallationRequest, RBACMode, Topology, default_name
from install_manager.constants import (
    DNS1123_LABEL_FORMAT,
    DNS1123_LABEL_MAX_LENGTH,
    DNS1123_LABEL_REGEX,
    DNS1123_SUBDOMAIN_FORMAT,
    DNS1123_SUBDOMAIN_MAX_LENGTH,
    DNS1123_SUBDOMAIN_REGEX,
)
from install_manager.errors import ConfigurationError

_QUANTITY_RE = re.compile(r"([+-]?(?:\d+\.?\d*|\.\d+))([eE][+-]?\d+|[KMGTPE]i|[kmMGTPE])?")

_QUANTITY_SUFFIXES: dict[str, Decimal] = {
    "Ki": Decimal(1024) ** 1,
    "Mi": Decimal(1024) ** 2,
    "Gi": Decimal(1024) ** 3,
    "Ti": Decimal(1024) ** 4,
    "Pi": Decimal(1024) ** 5,
    "Ei": Decimal(1024) ** 6,
    "k": Decimal(10) ** 3,
    "M": Decimal(10) ** 6,
    "G": Decimal(10) ** 9,
    "T": Decimal(10) ** 12,
    "P": Decimal(10) ** 15,
    "E": Decimal(10) ** 18,
    "m": Decimal(10) ** -3,
}


def parse_quantity(value: str) -> Decimal:
    """Parse a Kubernetes resource quantity such as ``2Gi``, ``500M`` or ``1e9``.

    Args:
        value: Quantity string.

    Returns:
        The quantity in base units.

    Raises:
        ValueError: If the string is not a valid quantity.
    """
    if not value:
        raise ValueError("quantity is empty")
    m = _QUANTITY_RE.fullmatch(value)
    if not m:
        raise ValueError(f"'{value}' is not a valid quantity")
    number = Decimal(m.group(1))
    suffix = m.group(2) or ""
    if not suffix:
        return number
    if suffix[0] in "eE" and len(suffix) > 1:
        try:
            return number * Decimal(10) ** int(suffix[1:])
        except ArithmeticError as err:
            raise ValueError(f"'{value}' is out of range") from err
    return number * _QUANTITY_SUFFIXES[suffix]


def quantity_bytes(value: str) -> int:
    """Parse *value* and round up to whole bytes, as the API server does for storage."""
    return math.ceil(parse_quantity(value))


def is_dns1123_label(name: str) -> bool:
    return len(name) <= DNS1123_LABEL_MAX_LENGTH and bool(DNS1123_LABEL_REGEX.fullmatch(name))


def is_dns1123_subdomain(name: str) -> bool:
    return len(name) <= DNS1123_SUBDOMAIN_MAX_LENGTH and bool(DNS1123_SUBDOMAIN_REGEX.fullmatch(name))


def validate_volume_size(size: str) -> int:
    """Validate the requested volume size.

    Args:
        size: Quantity string given by the user.

    Returns:
        Requested size in bytes.

    Raises:
        ConfigurationError: If the size does not parse or is not positive.
    """
    try:
        size_bytes = quantity_bytes(size)
    except ValueError as err:
        raise ConfigurationError(f"volume-size '{size}' is invalid; {err}") from err
    if size_bytes <= 0:
        raise ConfigurationError(f"volume-size '{size}' is invalid; size must be greater than zero")
    return size_bytes


def validate_names(namespace: str, pvc_name: str, pv_name: str) -> None:
    """Check object names against the DNS-1123 rules the API server enforces.

    Raises:
        ConfigurationError: Naming the first invalid value and the rule it breaks.
    """
    if not is_dns1123_label(namespace):
        raise ConfigurationError(f"'{namespace}' is not a valid namespace name; {DNS1123_LABEL_FORMAT}")
    if not is_dns1123_subdomain(pvc_name):
        raise ConfigurationError(f"'{pvc_name}' is not a valid PVC name; {DNS1123_SUBDOMAIN_FORMAT}")
    if not is_dns1123_subdomain(pv_name):
        raise ConfigurationError(f"'{pv_name}' is not a valid PV name; {DNS1123_SUBDOMAIN_FORMAT}")


def build_request(
    *,
    namespace: str,
    csi: bool = False,
    pvc_name: str | None = None,
    pv_name: str | None = None,
    volume_name: str | None = None,
    volume_size: str,
    trident_image: str,
    etcd_image: str,
    use_kubernetes_rbac: bool = True,
    k8s_timeout: float,
    setup_dir: Path,
    dry_run: bool = False,
    use_custom_yaml: bool = False,
    generate_yaml: bool = False,
    debug: bool = False,
    backoff_initial: float | None = None,
    backoff_max: float | None = None,
) -> InstallationRequest:
    """Fill in topology defaults, validate and freeze the installation parameters.

    Empty claim, volume and backend-volume names default to the orchestrator
    name, with a ``-csi`` suffix for the distributed topology.

    Raises:
        ConfigurationError: If a name or the volume size is invalid.
    """
    topology = Topology.DISTRIBUTED if csi else Topology.SINGLE
    pvc_name = pvc_name or default_name(topology)
    pv_name = pv_name or default_name(topology)
    volume_name = volume_name or default_name(topology)

    validate_names(namespace, pvc_name, pv_name)
    volume_bytes = validate_volume_size(volume_size)

    extra: dict = {}
    if backoff_initial is not None:
        extra["backoff_initial"] = backoff_initial
    if backoff_max is not None:
        extra["backoff_max"] = backoff_max

    return InstallationRequest(
        topology=topology,
        namespace=namespace,
        pvc_name=pvc_name,
        pv_name=pv_name,
        volume_name=volume_name,
        volume_size=volume_size,
        volume_bytes=volume_bytes,
        trident_image=trident_image,
        etcd_image=etcd_image,
        rbac_mode=RBACMode.NATIVE if use_kubernetes_rbac else RBACMode.EXTERNAL,
        k8s_timeout=k8s_timeout,
        setup_dir=setup_dir,
        dry_run=dry_run,
        use_custom_yaml=use_custom_yaml,
        generate_yaml=generate_yaml,
        debug=debug,
        **extra,
    )
