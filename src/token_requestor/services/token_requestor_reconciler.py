"""
Token requestor reconciliation logic.

For every carrier Secret the reconciler decides between three outcomes:

- the Secret is gone: nothing to do
- the Secret is unmanaged (purpose label removed) or being deleted: delete
  the target ServiceAccount unless deletion is skipped, then release the
  finalizer
- the Secret is managed: guard it with the finalizer, make sure the target
  ServiceAccount exists without token automount, and issue a new token once
  the renewal timestamp has passed

The reconciler keeps no state between runs. Everything it decides on is
read from the Secret and the injected clock.
"""

from datetime import datetime, timedelta

from kubernetes import client

from ..constants import (
    PURPOSE_LABEL_KEY,
    PURPOSE_TOKEN_REQUESTOR,
    RENEW_FRACTION,
    RESOURCE_TYPE_SECRET,
    TOKEN_ISSUED_FOR_ANNOTATION,
    TOKEN_RENEW_TIMESTAMP_ANNOTATION,
)
from ..models import (
    IssuedToken,
    ObjectKey,
    ReconcileResult,
    TokenRequestorConfig,
    service_account_to_delete,
)
from ..observability.metrics import metrics_collector
from ..utils.clock import Clock, JitterFunc, RealClock, jitter
from ..utils.durations import format_rfc3339
from ..utils.finalizers import FinalizerCoordinator
from ..utils.kubeconfig import select_format
from ..utils.secret_manager import (
    SecretManager,
    decode_secret_data,
    encode_secret_data,
)
from ..utils.service_account_manager import ServiceAccountManager
from ..utils.token_issuer import TokenIssuer
from .base_reconciler import BaseReconciler


def is_managed(secret: client.V1Secret) -> bool:
    """Whether the Secret opted in through the purpose label."""
    labels = secret.metadata.labels or {}
    return labels.get(PURPOSE_LABEL_KEY) == PURPOSE_TOKEN_REQUESTOR


class TokenRequestorReconciler(BaseReconciler):
    """Keeps ServiceAccount tokens in carrier Secrets fresh."""

    resource_type = RESOURCE_TYPE_SECRET

    def __init__(
        self,
        secrets: SecretManager,
        service_accounts: ServiceAccountManager,
        token_issuer: TokenIssuer,
        clock: Clock | None = None,
        jitter_func: JitterFunc = jitter,
        jitter_factor: float = 0.0,
    ):
        """
        Initialize the reconciler.

        Args:
            secrets: Access to carrier Secrets in the source cluster
            service_accounts: ServiceAccount management in the target cluster
            token_issuer: Token issuance in the target cluster
            clock: Time source, the system clock by default
            jitter_func: Perturbs the renewal requeue interval
            jitter_factor: Maximum jitter factor handed to jitter_func
        """
        super().__init__()
        self.secrets = secrets
        self.service_accounts = service_accounts
        self.token_issuer = token_issuer
        self.finalizers = FinalizerCoordinator(secrets)
        self.clock = clock or RealClock()
        self.jitter_func = jitter_func
        self.jitter_factor = jitter_factor

    async def do_reconcile(self, key: ObjectKey) -> ReconcileResult:
        secret = await self.secrets.get_secret(key)
        if secret is None:
            self.logger.debug(f"Secret {key} not found, nothing to do")
            return ReconcileResult()

        if not is_managed(secret) or secret.metadata.deletion_timestamp is not None:
            await self._cleanup(key, secret)
            return ReconcileResult()

        return await self._reconcile_managed(key, secret)

    async def _cleanup(self, key: ObjectKey, secret: client.V1Secret) -> None:
        """Delete the ServiceAccount (unless skipped) and release the Secret."""
        service_account = service_account_to_delete(secret.metadata.annotations)
        if service_account is not None:
            await self.service_accounts.delete(service_account)
        else:
            self.logger.debug(
                f"Keeping service account of secret {key}",
                resource_name=key.name,
                namespace=key.namespace,
            )

        await self.finalizers.remove(secret)
        metrics_collector.forget_secret(key.namespace, key.name)

    async def _reconcile_managed(
        self, key: ObjectKey, secret: client.V1Secret
    ) -> ReconcileResult:
        # Parse and validate everything before touching either cluster
        config = TokenRequestorConfig.from_annotations(secret.metadata.annotations)
        data = decode_secret_data(secret)
        credential_format = select_format(data)

        secret = await self.finalizers.ensure(secret)
        await self.service_accounts.ensure_exists(config.service_account)

        now = self.clock.now()
        if config.renew_timestamp is not None and config.renew_timestamp > now:
            if config.token_matches_identity():
                return ReconcileResult(requeue_after=config.renew_timestamp - now)
            self.logger.info(
                f"Secret {key} now names service account {config.service_account}, "
                f"replacing the token issued for {config.issued_for}",
                resource_name=key.name,
                namespace=key.namespace,
                service_account=str(config.service_account),
            )

        issued = await self.token_issuer.issue(
            config.service_account, config.effective_lifetime
        )

        now = self.clock.now()
        renew_interval = self._renew_interval(config, issued, now)
        renew_at = now + renew_interval

        secret.data = encode_secret_data(credential_format.embed(data, issued.token))
        annotations = dict(secret.metadata.annotations or {})
        annotations[TOKEN_RENEW_TIMESTAMP_ANNOTATION] = format_rfc3339(renew_at)
        annotations[TOKEN_ISSUED_FOR_ANNOTATION] = str(config.service_account)
        secret.metadata.annotations = annotations
        await self.secrets.replace_secret(secret)

        metrics_collector.record_token_issued(
            key.namespace, key.name, credential_format.name, renew_at
        )
        self.logger.info(
            f"Issued new token for secret {key}",
            resource_name=key.name,
            namespace=key.namespace,
            service_account=str(config.service_account),
            renew_timestamp=annotations[TOKEN_RENEW_TIMESTAMP_ANNOTATION],
            credential_format=credential_format.name,
        )

        return ReconcileResult(
            requeue_after=self.jitter_func(renew_interval, self.jitter_factor)
        )

    def _renew_interval(
        self, config: TokenRequestorConfig, issued: IssuedToken, now: datetime
    ) -> timedelta:
        """
        Interval until the next renewal.

        The API server may grant a shorter lifetime than requested; the
        renewal then follows the granted expiry so it stays ahead of it.
        """
        interval = config.renew_interval
        expiry = issued.expiration_timestamp
        if expiry is not None and now + interval >= expiry:
            interval = max((expiry - now) * RENEW_FRACTION, timedelta(0))
        return interval
