"""
Provisioning configuration for the metal3 deployment.

Turns the Provisioning custom resource spec into the flat set of environment
parameters the metal3 containers consume. Every parameter is optional: when a
source field is missing the parameter is absent (None), never an empty string.
"""

import ipaddress
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

BAREMETAL_PROVISIONING_CR = "provisioning-configuration"
BAREMETAL_HTTP_PORT = "6180"
BAREMETAL_IRONIC_PORT = "6385"
BAREMETAL_IRONIC_INSPECTOR_PORT = "5050"
BAREMETAL_KERNEL_URL_SUBPATH = "images/ironic-python-agent.kernel"
BAREMETAL_RAMDISK_URL_SUBPATH = "images/ironic-python-agent.initramfs"
BAREMETAL_IRONIC_ENDPOINT_SUBPATH = "v1/"


class ProvisioningSpec(BaseModel):
    """Spec of the Provisioning (metal3.io/v1alpha1) custom resource"""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    provisioning_interface: str = Field(default="", alias="provisioningInterface")
    provisioning_ip: str = Field(default="", alias="provisioningIP")
    provisioning_network_cidr: str = Field(default="", alias="provisioningNetworkCIDR")
    provisioning_dhcp_external: bool = Field(default=False, alias="provisioningDHCPExternal")
    provisioning_dhcp_range: str = Field(default="", alias="provisioningDHCPRange")
    provisioning_os_download_url: str = Field(default="", alias="provisioningOSDownloadURL")


class ParameterName(str, Enum):
    """Environment parameters derived from the provisioning spec"""

    PROVISIONING_IP = "PROVISIONING_IP"
    PROVISIONING_INTERFACE = "PROVISIONING_INTERFACE"
    DEPLOY_KERNEL_URL = "DEPLOY_KERNEL_URL"
    DEPLOY_RAMDISK_URL = "DEPLOY_RAMDISK_URL"
    IRONIC_ENDPOINT = "IRONIC_ENDPOINT"
    IRONIC_INSPECTOR_ENDPOINT = "IRONIC_INSPECTOR_ENDPOINT"
    HTTP_PORT = "HTTP_PORT"
    DHCP_RANGE = "DHCP_RANGE"
    RHCOS_IMAGE_URL = "RHCOS_IMAGE_URL"


def get_provisioning_config(spec: Mapping[str, Any] | None) -> ProvisioningSpec:
    """Build a ProvisioningSpec from the raw custom resource spec."""
    return ProvisioningSpec.model_validate(dict(spec or {}))


def _join_host_port(host: str, port: str) -> str:
    # IPv6 literals must be bracketed in a URL authority
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _provisioning_url(spec: ProvisioningSpec, port: str, subpath: str) -> str | None:
    if not spec.provisioning_ip:
        return None
    return f"http://{_join_host_port(spec.provisioning_ip, port)}/{subpath}"


def _non_empty(value: str) -> str | None:
    return value if value else None


def get_provisioning_ip_cidr(spec: ProvisioningSpec) -> str | None:
    """Provisioning IP with the prefix length of the provisioning network."""
    cidr = spec.provisioning_network_cidr
    if not cidr or not spec.provisioning_ip or "/" not in cidr:
        return None
    # Prefix length only; netmask notation is not CIDR
    if not cidr.rpartition("/")[2].isdigit():
        return None
    try:
        network = ipaddress.ip_network(cidr, strict=False)
    except ValueError:
        return None
    return f"{spec.provisioning_ip}/{network.prefixlen}"


def get_deploy_kernel_url(spec: ProvisioningSpec) -> str | None:
    return _provisioning_url(spec, BAREMETAL_HTTP_PORT, BAREMETAL_KERNEL_URL_SUBPATH)


def get_deploy_ramdisk_url(spec: ProvisioningSpec) -> str | None:
    return _provisioning_url(spec, BAREMETAL_HTTP_PORT, BAREMETAL_RAMDISK_URL_SUBPATH)


def get_ironic_endpoint(spec: ProvisioningSpec) -> str | None:
    return _provisioning_url(spec, BAREMETAL_IRONIC_PORT, BAREMETAL_IRONIC_ENDPOINT_SUBPATH)


def get_ironic_inspector_endpoint(spec: ProvisioningSpec) -> str | None:
    return _provisioning_url(
        spec, BAREMETAL_IRONIC_INSPECTOR_PORT, BAREMETAL_IRONIC_ENDPOINT_SUBPATH
    )


def get_provisioning_interface(spec: ProvisioningSpec) -> str | None:
    return _non_empty(spec.provisioning_interface)


def get_provisioning_dhcp_range(spec: ProvisioningSpec) -> str | None:
    # provisioning_dhcp_external is deliberately not consulted here
    return _non_empty(spec.provisioning_dhcp_range)


def get_provisioning_os_download_url(spec: ProvisioningSpec) -> str | None:
    return _non_empty(spec.provisioning_os_download_url)


def get_http_port(_spec: ProvisioningSpec) -> str | None:
    return BAREMETAL_HTTP_PORT


_DERIVATIONS: dict[ParameterName, Callable[[ProvisioningSpec], str | None]] = {
    ParameterName.PROVISIONING_IP: get_provisioning_ip_cidr,
    ParameterName.PROVISIONING_INTERFACE: get_provisioning_interface,
    ParameterName.DEPLOY_KERNEL_URL: get_deploy_kernel_url,
    ParameterName.DEPLOY_RAMDISK_URL: get_deploy_ramdisk_url,
    ParameterName.IRONIC_ENDPOINT: get_ironic_endpoint,
    ParameterName.IRONIC_INSPECTOR_ENDPOINT: get_ironic_inspector_endpoint,
    ParameterName.HTTP_PORT: get_http_port,
    ParameterName.DHCP_RANGE: get_provisioning_dhcp_range,
    ParameterName.RHCOS_IMAGE_URL: get_provisioning_os_download_url,
}

_missing = set(ParameterName) - set(_DERIVATIONS)
if _missing:
    raise RuntimeError(f"No derivation registered for: {sorted(p.value for p in _missing)}")


def get_metal3_deployment_config(
    name: ParameterName | str, spec: ProvisioningSpec
) -> str | None:
    """
    Look up a single derived parameter.

    Args:
        name: Parameter, either as a ParameterName or its string value
        spec: Provisioning spec to derive from

    Returns:
        The derived value, or None when the parameter is absent or the name
        is not a known parameter
    """
    try:
        parameter = ParameterName(name)
    except ValueError:
        return None
    return _DERIVATIONS[parameter](spec)


def derive_config(spec: ProvisioningSpec) -> dict[ParameterName, str | None]:
    """Derive every parameter, absent ones included as None."""
    return {parameter: derive(spec) for parameter, derive in _DERIVATIONS.items()}
