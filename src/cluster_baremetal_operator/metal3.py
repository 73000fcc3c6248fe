"""
Manifests for the metal3 deployment and the secrets it depends on
"""

import secrets
from collections.abc import Iterable, Mapping
from typing import Any

from kubernetes.client.models import (
    V1Container,
    V1ContainerPort,
    V1Deployment,
    V1DeploymentSpec,
    V1DeploymentStrategy,
    V1EmptyDirVolumeSource,
    V1EnvVar,
    V1EnvVarSource,
    V1LabelSelector,
    V1ObjectFieldSelector,
    V1ObjectMeta,
    V1OwnerReference,
    V1PodSpec,
    V1PodTemplateSpec,
    V1Secret,
    V1SecretKeySelector,
    V1SecurityContext,
    V1Volume,
    V1VolumeMount,
)

from cluster_baremetal_operator.baremetal_config import (
    ParameterName,
    ProvisioningSpec,
    derive_config,
)
from cluster_baremetal_operator.config import OperatorConfig
from cluster_baremetal_operator.exceptions import OwnerReferenceError

METAL3_DEPLOYMENT_NAME = "metal3"
BAREMETAL_SECRET_NAME = "metal3-mariadb-password"
BAREMETAL_SECRET_KEY = "password"
PASSWORD_ENTROPY_BYTES = 16

SHARED_VOLUME = "metal3-shared"
SHARED_MOUNT_PATH = "/shared"

METAL3_LABELS = {
    "app": "metal3",
    "metal3.io/managed-by": "cluster-baremetal-operator",
}


def generate_random_password() -> str:
    """Generate a URL-safe random credential"""
    return secrets.token_urlsafe(PASSWORD_ENTROPY_BYTES)


def create_mariadb_password_secret(config: OperatorConfig) -> V1Secret:
    """Create the Secret holding a freshly generated mariadb password"""
    return V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=V1ObjectMeta(
            name=BAREMETAL_SECRET_NAME,
            namespace=config.target_namespace,
            labels=dict(METAL3_LABELS),
        ),
        type="Opaque",
        string_data={BAREMETAL_SECRET_KEY: generate_random_password()},
    )


def set_owner_reference(owner: Mapping[str, Any], obj: V1Secret | V1Deployment) -> None:
    """
    Record `owner` as the controlling owner of `obj`.

    Garbage collection of the owner then cascades to `obj`. Only the relation
    is recorded here; deletion is left to the cluster.

    Raises:
        OwnerReferenceError: When a namespaced owner lives in another namespace
            than `obj`, or `obj` already has a different controller
    """
    owner_meta = owner.get("metadata", {})
    owner_namespace = owner_meta.get("namespace")
    if owner_namespace and owner_namespace != obj.metadata.namespace:
        # The garbage collector treats such an owner as missing
        raise OwnerReferenceError(
            f"cross-namespace owner references are disallowed: owner "
            f"{owner['kind']} {owner_namespace}/{owner_meta.get('name')}, "
            f"object {obj.metadata.namespace}/{obj.metadata.name}",
            "set owner reference",
            obj.metadata.name,
        )

    reference = V1OwnerReference(
        api_version=owner["apiVersion"],
        kind=owner["kind"],
        name=owner_meta["name"],
        uid=owner_meta["uid"],
        controller=True,
        block_owner_deletion=True,
    )

    existing = obj.metadata.owner_references or []
    for ref in existing:
        if ref.controller and ref.uid != reference.uid:
            raise OwnerReferenceError(
                f"{obj.metadata.name} is already controlled by {ref.kind} {ref.name}",
                "set owner reference",
                obj.metadata.name,
            )
    obj.metadata.owner_references = [ref for ref in existing if ref.uid != reference.uid] + [
        reference
    ]


def _derived_env(
    derived: Mapping[ParameterName, str | None], names: Iterable[ParameterName]
) -> list[V1EnvVar]:
    """Environment variables for the derived parameters that are present"""
    return [
        V1EnvVar(name=name.value, value=derived[name])
        for name in names
        if derived.get(name) is not None
    ]


def _mariadb_password_env() -> V1EnvVar:
    return V1EnvVar(
        name="MARIADB_PASSWORD",
        value_from=V1EnvVarSource(
            secret_key_ref=V1SecretKeySelector(
                name=BAREMETAL_SECRET_NAME,
                key=BAREMETAL_SECRET_KEY,
            )
        ),
    )


def _shared_mount() -> list[V1VolumeMount]:
    return [V1VolumeMount(name=SHARED_VOLUME, mount_path=SHARED_MOUNT_PATH)]


def _privileged() -> V1SecurityContext:
    return V1SecurityContext(privileged=True)


def _init_containers(
    config: OperatorConfig, derived: Mapping[ParameterName, str | None]
) -> list[V1Container]:
    images = config.images
    return [
        V1Container(
            name="metal3-ipa-downloader",
            image=images.ironic_ipa_downloader,
            command=["/usr/local/bin/get-resource.sh"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
        ),
        V1Container(
            name="metal3-machine-os-downloader",
            image=images.ironic_machine_os_downloader,
            command=["/usr/local/bin/get-resource.sh"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=_derived_env(derived, [ParameterName.RHCOS_IMAGE_URL]),
        ),
        V1Container(
            name="metal3-static-ip-set",
            image=images.ironic_static_ip_manager,
            command=["/set-static-ip"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            env=_derived_env(
                derived, [ParameterName.PROVISIONING_IP, ParameterName.PROVISIONING_INTERFACE]
            ),
        ),
    ]


def _containers(
    config: OperatorConfig, derived: Mapping[ParameterName, str | None]
) -> list[V1Container]:
    images = config.images
    return [
        V1Container(
            name="metal3-baremetal-operator",
            image=images.baremetal_operator,
            command=["/baremetal-operator"],
            image_pull_policy="IfNotPresent",
            ports=[V1ContainerPort(name="metrics", container_port=60000)],
            env=[
                V1EnvVar(
                    name="WATCH_NAMESPACE",
                    value_from=V1EnvVarSource(
                        field_ref=V1ObjectFieldSelector(field_path="metadata.namespace")
                    ),
                ),
                V1EnvVar(
                    name="POD_NAME",
                    value_from=V1EnvVarSource(
                        field_ref=V1ObjectFieldSelector(field_path="metadata.name")
                    ),
                ),
                V1EnvVar(name="OPERATOR_NAME", value="baremetal-operator"),
                *_derived_env(
                    derived,
                    [
                        ParameterName.DEPLOY_KERNEL_URL,
                        ParameterName.DEPLOY_RAMDISK_URL,
                        ParameterName.IRONIC_ENDPOINT,
                        ParameterName.IRONIC_INSPECTOR_ENDPOINT,
                    ],
                ),
            ],
        ),
        V1Container(
            name="metal3-dnsmasq",
            image=images.ironic,
            command=["/bin/rundnsmasq"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=_derived_env(
                derived,
                [
                    ParameterName.HTTP_PORT,
                    ParameterName.PROVISIONING_INTERFACE,
                    ParameterName.DHCP_RANGE,
                ],
            ),
        ),
        V1Container(
            name="metal3-mariadb",
            image=images.ironic,
            command=["/bin/runmariadb"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=[_mariadb_password_env()],
        ),
        V1Container(
            name="metal3-httpd",
            image=images.ironic,
            command=["/bin/runhttpd"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=_derived_env(
                derived, [ParameterName.HTTP_PORT, ParameterName.PROVISIONING_INTERFACE]
            ),
        ),
        V1Container(
            name="metal3-ironic-conductor",
            image=images.ironic,
            command=["/bin/runironic-conductor"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=[
                _mariadb_password_env(),
                *_derived_env(
                    derived, [ParameterName.HTTP_PORT, ParameterName.PROVISIONING_INTERFACE]
                ),
            ],
        ),
        V1Container(
            name="metal3-ironic-api",
            image=images.ironic,
            command=["/bin/runironic-api"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=[
                _mariadb_password_env(),
                *_derived_env(
                    derived, [ParameterName.HTTP_PORT, ParameterName.PROVISIONING_INTERFACE]
                ),
            ],
        ),
        V1Container(
            name="metal3-ironic-inspector",
            image=images.ironic_inspector,
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            volume_mounts=_shared_mount(),
            env=_derived_env(derived, [ParameterName.PROVISIONING_INTERFACE]),
        ),
        V1Container(
            name="metal3-static-ip-manager",
            image=images.ironic_static_ip_manager,
            command=["/refresh-static-ip"],
            image_pull_policy="IfNotPresent",
            security_context=_privileged(),
            env=_derived_env(
                derived, [ParameterName.PROVISIONING_IP, ParameterName.PROVISIONING_INTERFACE]
            ),
        ),
    ]


def new_metal3_deployment(config: OperatorConfig, provisioning: ProvisioningSpec) -> V1Deployment:
    """Create the metal3 Deployment for the given provisioning configuration"""
    derived = derive_config(provisioning)

    return V1Deployment(
        api_version="apps/v1",
        kind="Deployment",
        metadata=V1ObjectMeta(
            name=METAL3_DEPLOYMENT_NAME,
            namespace=config.target_namespace,
            labels=dict(METAL3_LABELS),
        ),
        spec=V1DeploymentSpec(
            replicas=1,
            strategy=V1DeploymentStrategy(type="Recreate"),
            selector=V1LabelSelector(match_labels={"app": "metal3"}),
            template=V1PodTemplateSpec(
                metadata=V1ObjectMeta(labels=dict(METAL3_LABELS)),
                spec=V1PodSpec(
                    host_network=True,
                    dns_policy="ClusterFirstWithHostNet",
                    node_selector={"node-role.kubernetes.io/master": ""},
                    init_containers=_init_containers(config, derived),
                    containers=_containers(config, derived),
                    volumes=[V1Volume(name=SHARED_VOLUME, empty_dir=V1EmptyDirVolumeSource())],
                ),
            ),
        ),
    )
