"""
Deletion-ordering guard for carrier Secrets.

The finalizer keeps a Secret from being removed until its ServiceAccount
has been cleaned up. It is added before any side effect in the target
cluster and removed only after cleanup, which makes every step safe to
re-run after a crash.
"""

import logging

from kubernetes import client

from ..constants import TOKEN_REQUESTOR_FINALIZER
from ..errors import KubernetesAPIError
from .secret_manager import SecretManager

logger = logging.getLogger(__name__)


def has_finalizer(secret: client.V1Secret, finalizer: str = TOKEN_REQUESTOR_FINALIZER) -> bool:
    return finalizer in (secret.metadata.finalizers or [])


class FinalizerCoordinator:
    """Adds and removes the token requestor finalizer."""

    def __init__(self, secrets: SecretManager, finalizer: str = TOKEN_REQUESTOR_FINALIZER):
        self.secrets = secrets
        self.finalizer = finalizer

    async def ensure(self, secret: client.V1Secret) -> client.V1Secret:
        """
        Add the finalizer if it is missing.

        Returns:
            The Secret as stored afterwards (unchanged if nothing was written)
        """
        if has_finalizer(secret, self.finalizer):
            return secret

        secret.metadata.finalizers = [*(secret.metadata.finalizers or []), self.finalizer]
        updated = await self.secrets.replace_secret(secret)
        logger.debug(
            f"Added finalizer to secret {secret.metadata.namespace}/{secret.metadata.name}"
        )
        return updated

    async def remove(self, secret: client.V1Secret) -> client.V1Secret | None:
        """
        Remove the finalizer if it is present.

        Returns:
            The Secret as stored afterwards, or None if it is gone
        """
        if not has_finalizer(secret, self.finalizer):
            return secret

        secret.metadata.finalizers = [
            f for f in secret.metadata.finalizers if f != self.finalizer
        ]
        try:
            updated = await self.secrets.replace_secret(secret)
        except KubernetesAPIError as e:
            if e.status == 404:
                return None
            raise

        logger.debug(
            f"Removed finalizer from secret {secret.metadata.namespace}/{secret.metadata.name}"
        )
        return updated
