"""
Reconciliation of the Provisioning singleton into the metal3 Secret and Deployment
"""

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from kubernetes import client
from kubernetes.client.models import V1Deployment, V1Secret
from kubernetes.client.rest import ApiException

from cluster_baremetal_operator.baremetal_config import (
    BAREMETAL_PROVISIONING_CR,
    get_provisioning_config,
)
from cluster_baremetal_operator.config import OperatorConfig
from cluster_baremetal_operator.exceptions import is_already_exists, is_not_found
from cluster_baremetal_operator.metal3 import (
    create_mariadb_password_secret,
    new_metal3_deployment,
    set_owner_reference,
)

logger = logging.getLogger(__name__)

PROVISIONING_GROUP = "metal3.io"
PROVISIONING_VERSION = "v1alpha1"
PROVISIONING_PLURAL = "provisionings"


class ReconcileResult(str, Enum):
    """Outcome of a single reconcile pass"""

    IGNORED = "Ignored"
    NOT_FOUND = "NotFound"
    CREATED = "Created"
    UNCHANGED = "Unchanged"


def provisioning_owner_name(meta: Mapping[str, Any]) -> str | None:
    """Name of the Provisioning resource controlling an object, if any"""
    api_version = f"{PROVISIONING_GROUP}/{PROVISIONING_VERSION}"
    for ref in meta.get("ownerReferences") or []:
        if (
            ref.get("controller")
            and ref.get("kind") == "Provisioning"
            and ref.get("apiVersion") == api_version
        ):
            name: str = ref["name"]
            return name
    return None


class ProvisioningReconciler:
    """Brings the metal3 Secret and Deployment in line with the Provisioning resource"""

    def __init__(
        self,
        config: OperatorConfig,
        core_api: client.CoreV1Api | None = None,
        apps_api: client.AppsV1Api | None = None,
        custom_api: client.CustomObjectsApi | None = None,
    ) -> None:
        self.config = config
        self.core_api = core_api or client.CoreV1Api()
        self.apps_api = apps_api or client.AppsV1Api()
        self.custom_api = custom_api or client.CustomObjectsApi()

    def reconcile(self, name: str, namespace: str) -> ReconcileResult:
        """
        Run one reconcile pass for the Provisioning resource `namespace/name`.

        Secrets and Deployments are created once and never updated afterwards.

        Returns:
            The outcome of the pass

        Raises:
            ApiException: For any API failure other than NotFound/AlreadyExists;
                the caller is expected to retry the pass
            OwnerReferenceError: When the Provisioning resource cannot own objects
                in the target namespace
        """
        # Provisioning is a singleton
        if name != BAREMETAL_PROVISIONING_CR:
            logger.info("Ignoring Provisioning %s/%s without default name", namespace, name)
            return ReconcileResult.IGNORED

        logger.info("Reconciling Provisioning %s/%s", namespace, name)

        instance = self._get_provisioning(name, namespace)
        if instance is None:
            # Owned objects are garbage collected by the cluster
            logger.info("Provisioning %s/%s not found, nothing to do", namespace, name)
            return ReconcileResult.NOT_FOUND
        if instance.get("metadata", {}).get("deletionTimestamp"):
            logger.info("Provisioning %s/%s is being deleted, nothing to do", namespace, name)
            return ReconcileResult.NOT_FOUND

        self.ensure_secret(instance)
        return self.ensure_deployment(instance)

    def _get_provisioning(self, name: str, namespace: str) -> dict[str, Any] | None:
        try:
            instance: dict[str, Any] = self.custom_api.get_namespaced_custom_object(
                group=PROVISIONING_GROUP,
                version=PROVISIONING_VERSION,
                namespace=namespace,
                plural=PROVISIONING_PLURAL,
                name=name,
            )
            return instance
        except ApiException as e:
            if is_not_found(e):
                return None
            raise

    def ensure_secret(self, instance: dict[str, Any]) -> bool:
        """Create the mariadb password Secret unless it already exists.

        Returns True when a Secret was created.
        """
        secret = create_mariadb_password_secret(self.config)
        set_owner_reference(instance, secret)

        if self._secret_exists(secret):
            logger.debug("Secret %s already exists", secret.metadata.name)
            return False

        logger.info(
            "Creating a new mariadb password secret %s/%s",
            secret.metadata.namespace,
            secret.metadata.name,
        )
        try:
            self.core_api.create_namespaced_secret(
                namespace=secret.metadata.namespace, body=secret
            )
        except ApiException as e:
            if is_already_exists(e):
                logger.info("Secret %s was created concurrently", secret.metadata.name)
                return False
            raise
        return True

    def _secret_exists(self, secret: V1Secret) -> bool:
        try:
            self.core_api.read_namespaced_secret(
                name=secret.metadata.name, namespace=secret.metadata.namespace
            )
            return True
        except ApiException as e:
            if is_not_found(e):
                return False
            raise

    def ensure_deployment(self, instance: dict[str, Any]) -> ReconcileResult:
        """Create the metal3 Deployment unless it already exists"""
        provisioning = get_provisioning_config(instance.get("spec"))
        deployment = new_metal3_deployment(self.config, provisioning)
        set_owner_reference(instance, deployment)

        if self._deployment_exists(deployment):
            logger.info(
                "Skip reconcile: Deployment %s/%s already exists",
                deployment.metadata.namespace,
                deployment.metadata.name,
            )
            return ReconcileResult.UNCHANGED

        logger.info(
            "Creating a new Deployment %s/%s",
            deployment.metadata.namespace,
            deployment.metadata.name,
        )
        try:
            self.apps_api.create_namespaced_deployment(
                namespace=deployment.metadata.namespace, body=deployment
            )
        except ApiException as e:
            if is_already_exists(e):
                logger.info("Deployment %s was created concurrently", deployment.metadata.name)
                return ReconcileResult.UNCHANGED
            raise
        return ReconcileResult.CREATED

    def _deployment_exists(self, deployment: V1Deployment) -> bool:
        try:
            self.apps_api.read_namespaced_deployment(
                name=deployment.metadata.name, namespace=deployment.metadata.namespace
            )
            return True
        except ApiException as e:
            if is_not_found(e):
                return False
            raise
