"""
ClusterOperator status reporting for the Cluster Baremetal Operator

The operator reports its health on the cluster-scoped ClusterOperator object
(config.openshift.io/v1). Conditions are merged into the existing list one
type at a time and every update is written, even when nothing changed.
"""

import copy
import logging
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

from cluster_baremetal_operator.config import OperatorConfig
from cluster_baremetal_operator.exceptions import (
    ClusterOperatorError,
    is_already_exists,
    is_not_found,
)

logger = logging.getLogger(__name__)

CLUSTER_OPERATOR_GROUP = "config.openshift.io"
CLUSTER_OPERATOR_VERSION = "v1"
CLUSTER_OPERATOR_PLURAL = "clusteroperators"
CLUSTER_OPERATOR_NAME = "baremetal"
OPERATOR_OPERAND = "operator"


class ConditionType(str, Enum):
    """ClusterOperator condition types"""

    AVAILABLE = "Available"
    PROGRESSING = "Progressing"
    DEGRADED = "Degraded"
    UPGRADEABLE = "Upgradeable"
    # Reports when the primary function of the operator has been disabled
    DISABLED = "Disabled"


class ConditionStatus(str, Enum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class StatusReason(str, Enum):
    """Reasons for a status change, always MixedCaps"""

    EMPTY = ""
    SYNCING = "SyncingResources"
    SYNC_FAILED = "SyncingFailed"


def _now() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def new_cluster_operator_status_condition(
    condition_type: ConditionType,
    status: ConditionStatus,
    reason: str = "",
    message: str = "",
) -> dict[str, str]:
    """Build a ClusterOperator condition stamped with the current time"""
    return {
        "type": condition_type.value,
        "status": status.value,
        "lastTransitionTime": _now(),
        "reason": reason,
        "message": message,
    }


def operator_upgradeable() -> dict[str, str]:
    # No hazardous upgrade states are known yet; when one is, report
    # Upgradeable=False with a message telling admins how to resolve it.
    return new_cluster_operator_status_condition(
        ConditionType.UPGRADEABLE, ConditionStatus.TRUE
    )


def set_status_condition(conditions: list[dict[str, Any]], new: dict[str, Any]) -> None:
    """Merge `new` into `conditions` by type, leaving other types untouched"""
    for existing in conditions:
        if existing.get("type") == new["type"]:
            existing["status"] = new["status"]
            existing["reason"] = new.get("reason", "")
            existing["message"] = new.get("message", "")
            existing["lastTransitionTime"] = new.get("lastTransitionTime") or _now()
            return
    conditions.append(dict(new))


def find_status_condition(
    conditions: list[dict[str, Any]], condition_type: ConditionType
) -> dict[str, Any] | None:
    for condition in conditions:
        if condition.get("type") == condition_type.value:
            return condition
    return None


def set_operand_version(versions: list[dict[str, str]], name: str, version: str) -> None:
    """Upsert the version of operand `name`"""
    for operand in versions:
        if operand.get("name") == name:
            operand["version"] = version
            return
    versions.append({"name": name, "version": version})


def get_operand_version(versions: list[dict[str, str]], name: str) -> str | None:
    for operand in versions:
        if operand.get("name") == name:
            return operand.get("version")
    return None


class ClusterOperatorStatusTracker:
    """Reads and writes the baremetal ClusterOperator"""

    def __init__(
        self,
        config: OperatorConfig,
        custom_api: client.CustomObjectsApi | None = None,
    ) -> None:
        self.config = config
        self.custom_api = custom_api or client.CustomObjectsApi()

    def default_status_conditions(self) -> list[dict[str, str]]:
        """All conditions default to False with no reason or message"""
        return [
            new_cluster_operator_status_condition(condition_type, ConditionStatus.FALSE)
            for condition_type in ConditionType
        ]

    def default_cluster_operator(self) -> dict[str, Any]:
        """ClusterOperator with default conditions and related objects"""
        return {
            "apiVersion": f"{CLUSTER_OPERATOR_GROUP}/{CLUSTER_OPERATOR_VERSION}",
            "kind": "ClusterOperator",
            "metadata": {"name": CLUSTER_OPERATOR_NAME},
            "status": {
                "conditions": self.default_status_conditions(),
                "versions": [],
                "relatedObjects": [
                    {
                        "group": "",
                        "resource": "namespaces",
                        "name": self.config.target_namespace,
                    }
                ],
            },
        }

    def get_cluster_operator(self) -> dict[str, Any]:
        co: dict[str, Any] = self.custom_api.get_cluster_custom_object(
            group=CLUSTER_OPERATOR_GROUP,
            version=CLUSTER_OPERATOR_VERSION,
            plural=CLUSTER_OPERATOR_PLURAL,
            name=CLUSTER_OPERATOR_NAME,
        )
        return co

    def create_cluster_operator(self) -> dict[str, Any]:
        """Create the default ClusterOperator and push its status"""
        default_co = self.default_cluster_operator()
        try:
            co: dict[str, Any] = self.custom_api.create_cluster_custom_object(
                group=CLUSTER_OPERATOR_GROUP,
                version=CLUSTER_OPERATOR_VERSION,
                plural=CLUSTER_OPERATOR_PLURAL,
                body=default_co,
            )
        except ApiException as e:
            if is_already_exists(e):
                logger.info("ClusterOperator %s was created concurrently", CLUSTER_OPERATOR_NAME)
                return self._read_cluster_operator()
            raise ClusterOperatorError(
                f"failed to create clusterOperator {CLUSTER_OPERATOR_NAME!r}: {e.reason}",
                "create",
                CLUSTER_OPERATOR_NAME,
                e,
            ) from e

        # The status subresource is ignored on create
        co["status"] = copy.deepcopy(default_co["status"])
        return self._write_status(co)

    def _read_cluster_operator(self) -> dict[str, Any]:
        try:
            return self.get_cluster_operator()
        except ApiException as e:
            raise ClusterOperatorError(
                f"failed to get clusterOperator {CLUSTER_OPERATOR_NAME!r}: {e.reason}",
                "get",
                CLUSTER_OPERATOR_NAME,
                e,
            ) from e

    def get_or_create_cluster_operator(self) -> dict[str, Any]:
        """Fetch the ClusterOperator, creating a default one if not found"""
        try:
            return self.get_cluster_operator()
        except ApiException as e:
            if not is_not_found(e):
                raise ClusterOperatorError(
                    f"failed to get clusterOperator {CLUSTER_OPERATOR_NAME!r}: {e.reason}",
                    "get",
                    CLUSTER_OPERATOR_NAME,
                    e,
                ) from e

        logger.info("ClusterOperator does not exist, creating a new one.")
        return self.create_cluster_operator()

    def get_current_versions(self) -> list[dict[str, str]]:
        co = self.get_or_create_cluster_operator()
        versions: list[dict[str, str]] = co.get("status", {}).get("versions") or []
        return versions

    def update_status(
        self, co: dict[str, Any], conditions: list[dict[str, Any]]
    ) -> dict[str, Any]:
        """Apply each condition to the ClusterOperator and write its status.

        The write always happens; equal conditions still refresh timestamps.
        """
        status = co.setdefault("status", {})
        existing = status.get("conditions")
        if existing is None:
            existing = status["conditions"] = []
        for condition in conditions:
            set_status_condition(existing, condition)
        return self._write_status(co)

    def _write_status(self, co: dict[str, Any]) -> dict[str, Any]:
        try:
            updated: dict[str, Any] = self.custom_api.replace_cluster_custom_object_status(
                group=CLUSTER_OPERATOR_GROUP,
                version=CLUSTER_OPERATOR_VERSION,
                plural=CLUSTER_OPERATOR_PLURAL,
                name=CLUSTER_OPERATOR_NAME,
                body=co,
            )
        except ApiException as e:
            raise ClusterOperatorError(
                f"failed to update clusterOperator {CLUSTER_OPERATOR_NAME!r} status: {e.reason}",
                "update status",
                CLUSTER_OPERATOR_NAME,
                e,
            ) from e
        return updated

    def status_progressing(self) -> dict[str, Any]:
        """
        Set Progressing according to the desired operator version.

        Progressing is True while the recorded operator version differs from
        the desired one. Upgradeable is always reasserted as True. Available
        and Degraded are left as they are.
        """
        desired_version = self.config.operator_version
        co = self.get_or_create_cluster_operator()
        current_version = get_operand_version(
            co.get("status", {}).get("versions") or [], OPERATOR_OPERAND
        )

        if desired_version != (current_version or ""):
            logger.info(
                "Syncing status: progressing (%s -> %s)", current_version, desired_version
            )
            is_progressing = ConditionStatus.TRUE
        else:
            logger.info("Syncing status: re-syncing")
            is_progressing = ConditionStatus.FALSE

        conditions = [
            new_cluster_operator_status_condition(
                ConditionType.PROGRESSING, is_progressing, StatusReason.SYNCING.value
            ),
            operator_upgradeable(),
        ]
        return self.update_status(co, conditions)

    def status_available(self) -> dict[str, Any]:
        """Report a completed sync and record the operator version"""
        co = self.get_or_create_cluster_operator()

        message = "Cluster Baremetal Operator is available"
        if self.config.operator_version:
            status = co.setdefault("status", {})
            versions = status.get("versions") or []
            set_operand_version(versions, OPERATOR_OPERAND, self.config.operator_version)
            status["versions"] = versions
            message = f"{message} at {self.config.operator_version}"

        conditions = [
            new_cluster_operator_status_condition(
                ConditionType.AVAILABLE, ConditionStatus.TRUE, "", message
            ),
            new_cluster_operator_status_condition(
                ConditionType.PROGRESSING, ConditionStatus.FALSE
            ),
            new_cluster_operator_status_condition(ConditionType.DEGRADED, ConditionStatus.FALSE),
            operator_upgradeable(),
        ]
        return self.update_status(co, conditions)

    def status_degraded(
        self, message: str, reason: str = StatusReason.SYNC_FAILED.value
    ) -> dict[str, Any]:
        """Report a failed sync; Available is left as it is"""
        co = self.get_or_create_cluster_operator()
        conditions = [
            new_cluster_operator_status_condition(
                ConditionType.DEGRADED, ConditionStatus.TRUE, reason, message
            ),
        ]
        return self.update_status(co, conditions)

    def status_disabled(self, disabled: bool) -> dict[str, Any]:
        co = self.get_or_create_cluster_operator()
        status = ConditionStatus.TRUE if disabled else ConditionStatus.FALSE
        conditions = [new_cluster_operator_status_condition(ConditionType.DISABLED, status)]
        return self.update_status(co, conditions)
