#!/usr/bin/env python3
"""
Cluster Baremetal Operator for Kubernetes

Watches the Provisioning singleton, keeps the metal3 Secret and Deployment in
place, and reports health on the baremetal ClusterOperator.
"""

import logging
import sys
from typing import Any

import kopf
from kubernetes import client, config
from kubernetes.client.rest import ApiException

from cluster_baremetal_operator._version import __version__
from cluster_baremetal_operator.baremetal_config import BAREMETAL_PROVISIONING_CR
from cluster_baremetal_operator.clusteroperator import ClusterOperatorStatusTracker
from cluster_baremetal_operator.config import OperatorConfig, load_operator_config
from cluster_baremetal_operator.exceptions import BaremetalOperatorError, ClusterOperatorError
from cluster_baremetal_operator.metal3 import METAL3_LABELS
from cluster_baremetal_operator.provisioning_controller import (
    PROVISIONING_GROUP,
    PROVISIONING_PLURAL,
    PROVISIONING_VERSION,
    ProvisioningReconciler,
    ReconcileResult,
    provisioning_owner_name,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialized in _initialize_operator()
operator_config: OperatorConfig | None = None
reconciler: ProvisioningReconciler | None = None
status_tracker: ClusterOperatorStatusTracker | None = None


def _load_kubernetes_config() -> None:
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes config")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded local Kubernetes config")


def _initialize_operator() -> None:
    """Load configuration and create the reconciler and status tracker"""
    global operator_config, reconciler, status_tracker

    _load_kubernetes_config()

    operator_config = load_operator_config()
    logging.getLogger().setLevel(operator_config.log_level)

    custom_api = client.CustomObjectsApi()
    reconciler = ProvisioningReconciler(
        operator_config,
        core_api=client.CoreV1Api(),
        apps_api=client.AppsV1Api(),
        custom_api=custom_api,
    )
    status_tracker = ClusterOperatorStatusTracker(operator_config, custom_api=custom_api)


def sync_provisioning(
    name: str,
    namespace: str,
    provisioning_reconciler: ProvisioningReconciler,
    tracker: ClusterOperatorStatusTracker,
    retry_delay: int = 30,
) -> ReconcileResult:
    """
    Run a reconcile pass and report its outcome on the ClusterOperator.

    Raises:
        kopf.TemporaryError: When the pass or the status update failed, so the
            framework retries the same resource after `retry_delay` seconds
    """
    if name != BAREMETAL_PROVISIONING_CR:
        return provisioning_reconciler.reconcile(name, namespace)

    try:
        tracker.status_progressing()
        result = provisioning_reconciler.reconcile(name, namespace)
        if result in (ReconcileResult.CREATED, ReconcileResult.UNCHANGED):
            tracker.status_available()
        return result

    except ClusterOperatorError as e:
        logger.error("Failed to update ClusterOperator status: %s", e.message)
        raise kopf.TemporaryError(e.message, delay=retry_delay) from e

    except ApiException as e:
        message = f"Failed to reconcile Provisioning {namespace}/{name}: {e.status} {e.reason}"
        _report_degraded(tracker, message)
        raise kopf.TemporaryError(message, delay=retry_delay) from e

    except BaremetalOperatorError as e:
        message = f"Failed to reconcile Provisioning {namespace}/{name}: {e.message}"
        _report_degraded(tracker, message)
        raise kopf.TemporaryError(message, delay=retry_delay) from e


def _report_degraded(tracker: ClusterOperatorStatusTracker, message: str) -> None:
    logger.error(message)
    try:
        tracker.status_degraded(message)
    except ClusterOperatorError as status_error:
        logger.error("Failed to report degraded status: %s", status_error.message)


@kopf.on.startup()
def startup_handler(settings: kopf.OperatorSettings, **_kwargs: Any) -> None:
    """Configure kopf and make sure the ClusterOperator exists"""
    logger.info("Starting Cluster Baremetal Operator %s", __version__)

    settings.posting.level = logging.WARNING

    if status_tracker is None:
        _initialize_operator()
    if status_tracker is None:
        raise RuntimeError("Kubernetes clients not initialized")

    try:
        status_tracker.get_or_create_cluster_operator()
    except ClusterOperatorError as e:
        raise kopf.TemporaryError(e.message, delay=30) from e


@kopf.on.resume(PROVISIONING_GROUP, PROVISIONING_VERSION, PROVISIONING_PLURAL)
@kopf.on.create(PROVISIONING_GROUP, PROVISIONING_VERSION, PROVISIONING_PLURAL)
@kopf.on.update(PROVISIONING_GROUP, PROVISIONING_VERSION, PROVISIONING_PLURAL)
def reconcile_provisioning(name, namespace, logger, **_kwargs):  # type: ignore
    """Handle Provisioning creation, updates and operator restarts"""
    if reconciler is None or status_tracker is None or operator_config is None:
        raise kopf.TemporaryError("Operator not initialized", delay=5)

    result = sync_provisioning(
        name,
        namespace,
        reconciler,
        status_tracker,
        retry_delay=operator_config.retry_delay,
    )
    logger.info(f"Reconciled Provisioning {namespace}/{name}: {result.value}")


@kopf.on.delete("apps", "v1", "deployments", labels=METAL3_LABELS, optional=True)
@kopf.on.delete("v1", "secrets", labels=METAL3_LABELS, optional=True)
def resync_owned_object(name, namespace, meta, logger, **_kwargs):  # type: ignore
    """Recreate a metal3 Secret or Deployment removed while its Provisioning remains"""
    owner = provisioning_owner_name(meta)
    if owner is None:
        return
    if reconciler is None or status_tracker is None or operator_config is None:
        raise kopf.TemporaryError("Operator not initialized", delay=5)

    logger.info(f"Owned object {namespace}/{name} deleted, resyncing Provisioning {owner}")
    sync_provisioning(
        owner,
        namespace,
        reconciler,
        status_tracker,
        retry_delay=operator_config.retry_delay,
    )


def main() -> None:
    """Main entry point for the operator."""
    logger.info("Starting Cluster Baremetal Operator...")

    try:
        _initialize_operator()
        kopf.run(
            clusterwide=True,
            liveness_endpoint="http://0.0.0.0:8080/healthz",
        )
    except Exception as e:
        logger.error("Failed to start operator: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
