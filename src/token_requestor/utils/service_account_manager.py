"""
ServiceAccount management in the target cluster.

The only field owned by the token requestor is
``automountServiceAccountToken``, which must be false. Corrections are sent
as a merge patch of that single field so labels, annotations and image pull
secrets set by other actors stay untouched.
"""

import asyncio
import logging

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..errors import KubernetesAPIError
from ..models import ObjectKey
from ..observability.metrics import metrics_collector

logger = logging.getLogger(__name__)


class ServiceAccountManager:
    """Creates, hardens and deletes target ServiceAccounts."""

    def __init__(
        self, k8s_client: client.ApiClient | None = None, request_timeout: float = 30.0
    ):
        self.k8s_client = k8s_client
        self.request_timeout = request_timeout
        self._v1: client.CoreV1Api | None = None

    @property
    def v1(self) -> client.CoreV1Api:
        """Get CoreV1Api client."""
        if self._v1 is None:
            if self.k8s_client:
                self._v1 = client.CoreV1Api(self.k8s_client)
            else:
                self._v1 = client.CoreV1Api()
        return self._v1

    async def ensure_exists(self, key: ObjectKey) -> str:
        """
        Make sure the ServiceAccount exists with token automount disabled.

        Args:
            key: Namespace and name of the ServiceAccount

        Returns:
            The action taken: "created", "patched" or "unchanged"

        Raises:
            KubernetesAPIError: If any API call fails
        """
        try:
            service_account = await asyncio.to_thread(
                self.v1.read_namespaced_service_account,
                name=key.name,
                namespace=key.namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status != 404:
                raise KubernetesAPIError.from_api_exception(
                    e, f"read service account {key}"
                ) from e
            service_account = None

        if service_account is None:
            await self._create(key)
            return "created"

        if service_account.automount_service_account_token is False:
            return "unchanged"

        try:
            await asyncio.to_thread(
                self.v1.patch_namespaced_service_account,
                name=key.name,
                namespace=key.namespace,
                body={"automountServiceAccountToken": False},
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise KubernetesAPIError.from_api_exception(
                e, f"patch service account {key}"
            ) from e

        metrics_collector.record_service_account_operation("patch")
        logger.info(f"Disabled token automount of service account {key}")
        return "patched"

    async def _create(self, key: ObjectKey) -> None:
        body = client.V1ServiceAccount(
            metadata=client.V1ObjectMeta(name=key.name, namespace=key.namespace),
            automount_service_account_token=False,
        )
        try:
            await asyncio.to_thread(
                self.v1.create_namespaced_service_account,
                namespace=key.namespace,
                body=body,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            # A 409 means another actor created it first; the next run patches it
            raise KubernetesAPIError.from_api_exception(
                e, f"create service account {key}"
            ) from e

        metrics_collector.record_service_account_operation("create")
        logger.info(f"Created service account {key}")

    async def delete(self, key: ObjectKey) -> bool:
        """
        Delete the ServiceAccount if it exists.

        Returns:
            True if it was deleted, False if it was already absent
        """
        try:
            await asyncio.to_thread(
                self.v1.delete_namespaced_service_account,
                name=key.name,
                namespace=key.namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return False
            raise KubernetesAPIError.from_api_exception(
                e, f"delete service account {key}"
            ) from e

        metrics_collector.record_service_account_operation("delete")
        logger.info(f"Deleted service account {key}")
        return True
