"""Tests for provisioning configuration derivation."""

import pytest

from cluster_baremetal_operator.baremetal_config import (
    BAREMETAL_HTTP_PORT,
    ParameterName,
    ProvisioningSpec,
    derive_config,
    get_metal3_deployment_config,
    get_provisioning_config,
)

URL_PARAMETERS = [
    ParameterName.DEPLOY_KERNEL_URL,
    ParameterName.DEPLOY_RAMDISK_URL,
    ParameterName.IRONIC_ENDPOINT,
    ParameterName.IRONIC_INSPECTOR_ENDPOINT,
]


@pytest.fixture
def provisioning(provisioning_spec: dict) -> ProvisioningSpec:
    return get_provisioning_config(provisioning_spec)


class TestGetProvisioningConfig:
    """Test building ProvisioningSpec from the custom resource spec."""

    def test_reads_camel_case_fields(self, provisioning: ProvisioningSpec) -> None:
        assert provisioning.provisioning_interface == "ensp0"
        assert provisioning.provisioning_ip == "172.30.20.3"
        assert provisioning.provisioning_network_cidr == "172.30.20.0/24"
        assert provisioning.provisioning_dhcp_external is False
        assert provisioning.provisioning_dhcp_range == "172.30.20.11, 172.30.20.101"
        assert provisioning.provisioning_os_download_url == "http://172.22.0.1/images/rhcos.qcow2"

    def test_missing_spec_yields_empty_fields(self) -> None:
        provisioning = get_provisioning_config(None)
        assert provisioning.provisioning_ip == ""
        assert provisioning.provisioning_dhcp_external is False

    def test_unknown_fields_are_ignored(self) -> None:
        provisioning = get_provisioning_config({"provisioningIP": "10.0.0.3", "other": "x"})
        assert provisioning.provisioning_ip == "10.0.0.3"

    def test_spec_is_immutable(self, provisioning: ProvisioningSpec) -> None:
        with pytest.raises(ValueError):
            provisioning.provisioning_ip = "10.0.0.1"  # type: ignore[misc]


class TestDeploymentConfig:
    """Test the derived metal3 deployment parameters."""

    def test_full_spec_derivation(self, provisioning: ProvisioningSpec) -> None:
        derived = derive_config(provisioning)

        assert derived[ParameterName.PROVISIONING_IP] == "172.30.20.3/24"
        assert derived[ParameterName.PROVISIONING_INTERFACE] == "ensp0"
        assert (
            derived[ParameterName.DEPLOY_KERNEL_URL]
            == "http://172.30.20.3:6180/images/ironic-python-agent.kernel"
        )
        assert (
            derived[ParameterName.DEPLOY_RAMDISK_URL]
            == "http://172.30.20.3:6180/images/ironic-python-agent.initramfs"
        )
        assert derived[ParameterName.IRONIC_ENDPOINT] == "http://172.30.20.3:6385/v1/"
        assert derived[ParameterName.IRONIC_INSPECTOR_ENDPOINT] == "http://172.30.20.3:5050/v1/"
        assert derived[ParameterName.DHCP_RANGE] == "172.30.20.11, 172.30.20.101"
        assert derived[ParameterName.HTTP_PORT] == "6180"
        assert derived[ParameterName.RHCOS_IMAGE_URL] == "http://172.22.0.1/images/rhcos.qcow2"

    def test_every_parameter_is_derived(self, provisioning: ProvisioningSpec) -> None:
        assert set(derive_config(provisioning)) == set(ParameterName)

    def test_lookup_by_string_name(self, provisioning: ProvisioningSpec) -> None:
        assert get_metal3_deployment_config("PROVISIONING_IP", provisioning) == "172.30.20.3/24"
        assert get_metal3_deployment_config(ParameterName.HTTP_PORT, provisioning) == "6180"

    def test_unknown_name_is_absent(self, provisioning: ProvisioningSpec) -> None:
        assert get_metal3_deployment_config("CACHEURL", provisioning) is None
        assert get_metal3_deployment_config("", provisioning) is None

    def test_only_os_image_url_set(self) -> None:
        provisioning = get_provisioning_config(
            {"provisioningOSDownloadURL": "http://172.22.0.1/images/rhcos.qcow2"}
        )
        present = {name: value for name, value in derive_config(provisioning).items() if value}

        assert present == {
            ParameterName.RHCOS_IMAGE_URL: "http://172.22.0.1/images/rhcos.qcow2",
            ParameterName.HTTP_PORT: BAREMETAL_HTTP_PORT,
        }

    def test_absent_values_are_none_not_empty(self) -> None:
        derived = derive_config(get_provisioning_config({}))
        for name, value in derived.items():
            if name is ParameterName.HTTP_PORT:
                continue
            assert value is None, name

    def test_urls_absent_without_ip(self, provisioning_spec: dict) -> None:
        spec = dict(provisioning_spec, provisioningIP="")
        provisioning = get_provisioning_config(spec)

        for name in URL_PARAMETERS:
            assert get_metal3_deployment_config(name, provisioning) is None
        assert get_metal3_deployment_config("PROVISIONING_IP", provisioning) is None

    @pytest.mark.parametrize(
        "spec",
        [{}, {"provisioningIP": "172.30.20.3"}, {"provisioningIP": "fd00::3"}],
    )
    def test_http_port_always_present(self, spec: dict) -> None:
        provisioning = get_provisioning_config(spec)
        assert get_metal3_deployment_config("HTTP_PORT", provisioning) == "6180"

    @pytest.mark.parametrize(
        ("ip", "cidr", "expected"),
        [
            ("172.30.20.3", "172.30.20.0/24", "172.30.20.3/24"),
            ("10.1.2.3", "10.0.0.0/8", "10.1.2.3/8"),
            ("172.30.20.3", "172.30.20.3/24", "172.30.20.3/24"),
            ("fd00:1101::3", "fd00:1101::/64", "fd00:1101::3/64"),
            ("172.30.20.3", "", None),
            ("", "172.30.20.0/24", None),
            ("172.30.20.3", "not-a-cidr", None),
            ("172.30.20.3", "172.30.20.0", None),
            ("172.30.20.3", "172.30.20.0/33", None),
            ("10.0.0.3", "10.0.0.0/255.255.255.0", None),
            ("10.0.0.3", "10.0.0.0/0.0.0.255", None),
            ("10.0.0.3", "10.0.0.0/", None),
        ],
    )
    def test_provisioning_ip_cidr(self, ip: str, cidr: str, expected: str | None) -> None:
        provisioning = get_provisioning_config(
            {"provisioningIP": ip, "provisioningNetworkCIDR": cidr}
        )
        assert get_metal3_deployment_config("PROVISIONING_IP", provisioning) == expected

    def test_ipv6_urls_are_bracketed(self) -> None:
        provisioning = get_provisioning_config({"provisioningIP": "fd00:1101::3"})

        assert (
            get_metal3_deployment_config("IRONIC_ENDPOINT", provisioning)
            == "http://[fd00:1101::3]:6385/v1/"
        )

    def test_dhcp_range_ignores_external_flag(self, provisioning_spec: dict) -> None:
        spec = dict(provisioning_spec, provisioningDHCPExternal=True)
        provisioning = get_provisioning_config(spec)

        assert (
            get_metal3_deployment_config("DHCP_RANGE", provisioning)
            == "172.30.20.11, 172.30.20.101"
        )

    def test_derivation_is_deterministic(
        self, provisioning: ProvisioningSpec, provisioning_spec: dict
    ) -> None:
        assert derive_config(provisioning) == derive_config(provisioning)
        assert derive_config(provisioning) == derive_config(
            get_provisioning_config(provisioning_spec)
        )
