"""Pytest configuration and shared fixtures."""

from collections.abc import Generator
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from cluster_baremetal_operator.config import BaremetalImages, OperatorConfig

_PROVISIONING_SPEC = {
    "provisioningInterface": "ensp0",
    "provisioningIP": "172.30.20.3",
    "provisioningNetworkCIDR": "172.30.20.0/24",
    "provisioningDHCPExternal": False,
    "provisioningDHCPRange": "172.30.20.11, 172.30.20.101",
    "provisioningOSDownloadURL": "http://172.22.0.1/images/rhcos.qcow2",
}


@pytest.fixture
def mock_k8s_config() -> Generator[None, None, None]:
    """Mock Kubernetes configuration loading."""
    with (
        patch("cluster_baremetal_operator.main.config.load_incluster_config"),
        patch("cluster_baremetal_operator.main.config.load_kube_config"),
    ):
        yield


@pytest.fixture
def operator_config() -> OperatorConfig:
    """Operator configuration with every image set."""
    return OperatorConfig(
        target_namespace="test-namespace",
        images=BaremetalImages(
            baremetal_operator="quay.io/metal3/baremetal-operator:4.5",
            ironic="quay.io/metal3/ironic:4.5",
            ironic_inspector="quay.io/metal3/ironic-inspector:4.5",
            ironic_ipa_downloader="quay.io/metal3/ipa-downloader:4.5",
            ironic_machine_os_downloader="quay.io/metal3/machine-os-downloader:4.5",
            ironic_static_ip_manager="quay.io/metal3/static-ip-manager:4.5",
        ),
        operator_version="4.5.0",
        retry_delay=10,
    )


@pytest.fixture
def provisioning_cr() -> dict[str, Any]:
    """The Provisioning singleton as returned by the custom objects API."""
    return {
        "apiVersion": "metal3.io/v1alpha1",
        "kind": "Provisioning",
        "metadata": {
            "name": "provisioning-configuration",
            "namespace": "test-namespace",
            "uid": "2f4c1c5e-0000-4000-8000-000000000001",
        },
        "spec": dict(_PROVISIONING_SPEC),
    }


@pytest.fixture
def mock_k8s_clients() -> dict[str, MagicMock]:
    """Mock Kubernetes API clients; nothing exists in the store by default."""
    mock_core = MagicMock(spec=client.CoreV1Api)
    mock_apps = MagicMock(spec=client.AppsV1Api)
    mock_custom = MagicMock(spec=client.CustomObjectsApi)

    mock_core.read_namespaced_secret.side_effect = ApiException(status=404)
    mock_apps.read_namespaced_deployment.side_effect = ApiException(status=404)

    return {"core": mock_core, "apps": mock_apps, "custom": mock_custom}


@pytest.fixture
def provisioning_spec() -> dict[str, Any]:
    """Raw spec of the example Provisioning resource."""
    return dict(_PROVISIONING_SPEC)
