"""
Carrier Secret access in the source cluster.

Reads return None for absent Secrets. Writes are full replaces that carry
the resourceVersion of the object that was read, so a concurrent change to
the same Secret surfaces as a 409 conflict instead of being overwritten.
"""

import asyncio
import base64
import logging

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..errors import KubernetesAPIError
from ..models import ObjectKey

logger = logging.getLogger(__name__)


def decode_secret_data(secret: client.V1Secret) -> dict[str, bytes]:
    """Return the payload of a Secret as raw bytes per key."""
    return {
        key: base64.b64decode(value) for key, value in (secret.data or {}).items()
    }


def encode_secret_data(data: dict[str, bytes]) -> dict[str, str]:
    return {key: base64.b64encode(value).decode("ascii") for key, value in data.items()}


class SecretManager:
    """Reads and writes carrier Secrets."""

    def __init__(
        self, k8s_client: client.ApiClient | None = None, request_timeout: float = 30.0
    ):
        """
        Initialize secret manager.

        Args:
            k8s_client: API client of the source cluster
            request_timeout: Timeout in seconds for each API request
        """
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

    async def get_secret(self, key: ObjectKey) -> client.V1Secret | None:
        """
        Retrieve a secret.

        Returns:
            Secret object if found, None if not found

        Raises:
            KubernetesAPIError: If read fails for reasons other than 404
        """
        try:
            return await asyncio.to_thread(
                self.v1.read_namespaced_secret,
                name=key.name,
                namespace=key.namespace,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise KubernetesAPIError.from_api_exception(e, f"read secret {key}") from e

    async def replace_secret(self, secret: client.V1Secret) -> client.V1Secret:
        """
        Write a secret back, guarded by its resourceVersion.

        Returns:
            The stored secret with its new resourceVersion

        Raises:
            KubernetesAPIError: On conflicts and any other API failure
        """
        key = ObjectKey(secret.metadata.namespace, secret.metadata.name)
        try:
            return await asyncio.to_thread(
                self.v1.replace_namespaced_secret,
                name=key.name,
                namespace=key.namespace,
                body=secret,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            if e.status == 409:
                logger.debug(f"Secret {key} was modified concurrently")
            raise KubernetesAPIError.from_api_exception(e, f"update secret {key}") from e
