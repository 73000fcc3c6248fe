"""
Exceptions and Kubernetes API error helpers for the Cluster Baremetal Operator
"""

from kubernetes.client.rest import ApiException

HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


class BaremetalOperatorError(Exception):
    """Base exception for operator operations"""

    def __init__(self, message: str, operation: str, resource: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.resource = resource


class KubernetesOperationError(BaremetalOperatorError):
    """Exception for Kubernetes API operation failures"""

    def __init__(
        self,
        message: str,
        operation: str,
        resource: str,
        api_exception: ApiException | None = None,
    ):
        super().__init__(message, operation, resource)
        self.api_exception = api_exception
        self.status_code = api_exception.status if api_exception else None


class ClusterOperatorError(KubernetesOperationError):
    """Failure reading or writing the ClusterOperator status object"""


class OwnerReferenceError(BaremetalOperatorError):
    """An owner reference that the cluster would not honour"""


def is_not_found(exc: ApiException) -> bool:
    return exc.status == HTTP_NOT_FOUND


def is_already_exists(exc: ApiException) -> bool:
    return exc.status == HTTP_CONFLICT
