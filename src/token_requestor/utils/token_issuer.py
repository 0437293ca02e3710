"""Bearer token issuance through the TokenRequest API of the target cluster."""

import asyncio
import logging
from datetime import timedelta

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..errors import KubernetesAPIError
from ..models import IssuedToken, ObjectKey

logger = logging.getLogger(__name__)


class TokenIssuer:
    """Requests short-lived tokens for ServiceAccounts."""

    def __init__(
        self,
        k8s_client: client.ApiClient | None = None,
        audiences: list[str] | None = None,
        request_timeout: float = 30.0,
    ):
        """
        Initialize token issuer.

        Args:
            k8s_client: API client of the target cluster
            audiences: Audiences of issued tokens, empty for the API server default
            request_timeout: Timeout in seconds for each API request
        """
        self.k8s_client = k8s_client
        self.audiences = list(audiences or [])
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

    async def issue(self, service_account: ObjectKey, lifetime: timedelta) -> IssuedToken:
        """
        Issue a token for a ServiceAccount.

        Args:
            service_account: ServiceAccount the token authenticates as
            lifetime: Requested validity; the API server may shorten it

        Returns:
            The token and its absolute expiry

        Raises:
            KubernetesAPIError: If the ServiceAccount does not exist or the
                request is rejected
        """
        body = client.AuthenticationV1TokenRequest(
            spec=client.V1TokenRequestSpec(
                audiences=self.audiences,
                expiration_seconds=int(lifetime.total_seconds()),
            )
        )

        try:
            response = await asyncio.to_thread(
                self.v1.create_namespaced_service_account_token,
                name=service_account.name,
                namespace=service_account.namespace,
                body=body,
                _request_timeout=self.request_timeout,
            )
        except ApiException as e:
            raise KubernetesAPIError.from_api_exception(
                e, f"request token for service account {service_account}"
            ) from e

        status = response.status
        if status is None or not status.token:
            raise KubernetesAPIError(
                f"Token request for service account {service_account} returned no token"
            )

        logger.debug(
            f"Issued token for service account {service_account}, "
            f"expires at {status.expiration_timestamp}"
        )
        return IssuedToken(
            token=status.token, expiration_timestamp=status.expiration_timestamp
        )
