"""
Operator configuration loaded from the process environment
"""

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "openshift-machine-api"
SERVICE_ACCOUNT_NAMESPACE_PATH = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")

# Environment variable -> (BaremetalImages field, key in the images file)
IMAGE_ENV_VARS = {
    "BAREMETAL_IMAGE": ("baremetal_operator", "baremetalOperator"),
    "IRONIC_IMAGE": ("ironic", "ironic"),
    "IRONIC_INSPECTOR_IMAGE": ("ironic_inspector", "ironicInspector"),
    "IRONIC_IPA_DOWNLOADER_IMAGE": ("ironic_ipa_downloader", "ironicIpaDownloader"),
    "IRONIC_MACHINE_OS_DOWNLOADER_IMAGE": (
        "ironic_machine_os_downloader",
        "ironicMachineOsDownloader",
    ),
    "IRONIC_STATIC_IP_MANAGER_IMAGE": ("ironic_static_ip_manager", "ironicStaticIpManager"),
}


class BaremetalImages(BaseModel):
    """Container images of the metal3 deployment, keyed by role"""

    baremetal_operator: str = Field(default="", description="baremetal-operator image")
    ironic: str = Field(default="", description="Ironic conductor/API/httpd/mariadb image")
    ironic_inspector: str = Field(default="", description="Ironic inspector image")
    ironic_ipa_downloader: str = Field(default="", description="IPA downloader image")
    ironic_machine_os_downloader: str = Field(
        default="", description="Machine OS downloader image"
    )
    ironic_static_ip_manager: str = Field(default="", description="Static IP manager image")


class OperatorConfig(BaseModel):
    """Runtime configuration of the operator"""

    target_namespace: str = Field(default=DEFAULT_NAMESPACE)
    images: BaremetalImages = Field(default_factory=BaremetalImages)
    operator_version: str = Field(default="", description="Desired operand version")
    retry_delay: int = Field(default=30, ge=1, description="Seconds before a failed sync retries")
    log_level: str = Field(default="INFO")


def get_target_namespace() -> str:
    """
    Get the namespace the metal3 resources live in.

    When running in-cluster, reads from the service account namespace file.
    Falls back to environment variable or default for local development.
    """
    try:
        with SERVICE_ACCOUNT_NAMESPACE_PATH.open() as f:
            namespace = f.read().strip()
            logger.info("Detected operator namespace from service account: %s", namespace)
            return namespace
    except FileNotFoundError:
        namespace = os.getenv("COMPONENT_NAMESPACE", DEFAULT_NAMESPACE)
        logger.info("Using namespace from environment/default: %s", namespace)
        return namespace


def load_images_file(path: str) -> dict[str, Any]:
    """Load image references from a YAML (or JSON) images file"""
    with Path(path).open() as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Images file {path} must contain a mapping, got {type(data).__name__}")
    return data


def load_images() -> BaremetalImages:
    """Resolve images from the environment, filling gaps from IMAGES_FILE"""
    file_images: dict[str, Any] = {}
    images_file = os.getenv("IMAGES_FILE")
    if images_file:
        file_images = load_images_file(images_file)
        logger.info("Loaded %d image references from %s", len(file_images), images_file)

    resolved = {}
    for env_var, (field, file_key) in IMAGE_ENV_VARS.items():
        value = os.getenv(env_var) or file_images.get(file_key) or ""
        if not value:
            logger.warning("No image configured for %s", env_var)
        resolved[field] = str(value)
    return BaremetalImages(**resolved)


def load_operator_config() -> OperatorConfig:
    """Build the operator configuration from the process environment"""
    return OperatorConfig(
        target_namespace=get_target_namespace(),
        images=load_images(),
        operator_version=os.getenv("OPERATOR_VERSION") or os.getenv("RELEASE_VERSION", ""),
        retry_delay=int(os.getenv("RECONCILE_RETRY_DELAY", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
