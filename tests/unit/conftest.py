"""
Shared fixtures for token requestor unit tests.

Provides an in-memory stand-in for the parts of ``CoreV1Api`` the
controller uses, with the behaviours that matter to it: 404 for absent
objects, resourceVersion conflicts on replace, finalizer-aware deletion of
Secrets and the ServiceAccount token subresource.
"""

from datetime import UTC, datetime, timedelta

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from token_requestor.constants import (
    PURPOSE_LABEL_KEY,
    PURPOSE_TOKEN_REQUESTOR,
    SERVICE_ACCOUNT_NAME_ANNOTATION,
    SERVICE_ACCOUNT_NAMESPACE_ANNOTATION,
)
from token_requestor.services.token_requestor_reconciler import (
    TokenRequestorReconciler,
)
from token_requestor.utils.clock import FakeClock, no_jitter
from token_requestor.utils.secret_manager import SecretManager
from token_requestor.utils.service_account_manager import ServiceAccountManager
from token_requestor.utils.token_issuer import TokenIssuer

FAKE_NOW = datetime(2021, 10, 4, 10, 0, 0, tzinfo=UTC)
SECRET_NAME = "kube-scheduler"
SECRET_NAMESPACE = "default"
SERVICE_ACCOUNT_NAME = "kube-scheduler-serviceaccount"
SERVICE_ACCOUNT_NAMESPACE = "kube-system"
TOKEN = "foo"


def not_found() -> ApiException:
    return ApiException(status=404, reason="Not Found")


def _clone_secret(secret: client.V1Secret) -> client.V1Secret:
    meta = secret.metadata
    return client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=meta.name,
            namespace=meta.namespace,
            labels=dict(meta.labels) if meta.labels is not None else None,
            annotations=dict(meta.annotations) if meta.annotations is not None else None,
            finalizers=list(meta.finalizers) if meta.finalizers is not None else None,
            resource_version=meta.resource_version,
            deletion_timestamp=meta.deletion_timestamp,
        ),
        data=dict(secret.data) if secret.data is not None else None,
        type=secret.type,
    )


def _clone_service_account(sa: client.V1ServiceAccount) -> client.V1ServiceAccount:
    meta = sa.metadata
    return client.V1ServiceAccount(
        metadata=client.V1ObjectMeta(
            name=meta.name,
            namespace=meta.namespace,
            labels=dict(meta.labels) if meta.labels is not None else None,
            resource_version=meta.resource_version,
        ),
        automount_service_account_token=sa.automount_service_account_token,
    )


class FakeCoreV1Api:
    """In-memory CoreV1Api covering Secrets, ServiceAccounts and tokens."""

    def __init__(self, clock: FakeClock, token: str = TOKEN):
        self.clock = clock
        self.token = token
        self.secrets: dict[tuple[str, str], client.V1Secret] = {}
        self.service_accounts: dict[tuple[str, str], client.V1ServiceAccount] = {}
        self.token_requests: list[tuple[str, str, client.AuthenticationV1TokenRequest]] = []
        self.patches: list[tuple[str, str, dict]] = []
        self.request_timeouts: list[float | None] = []
        self._resource_version = 0

    def _next_resource_version(self) -> str:
        self._resource_version += 1
        return str(self._resource_version)

    # Secrets

    def add_secret(self, secret: client.V1Secret) -> None:
        stored = _clone_secret(secret)
        stored.metadata.resource_version = self._next_resource_version()
        self.secrets[(stored.metadata.namespace, stored.metadata.name)] = stored

    def get_stored_secret(self, namespace: str, name: str) -> client.V1Secret | None:
        return self.secrets.get((namespace, name))

    def delete_secret(self, namespace: str, name: str) -> None:
        """Delete like the API server: finalizers only mark the Secret."""
        stored = self.secrets[(namespace, name)]
        if stored.metadata.finalizers:
            stored.metadata.deletion_timestamp = self.clock.now()
            stored.metadata.resource_version = self._next_resource_version()
        else:
            del self.secrets[(namespace, name)]

    def read_namespaced_secret(self, name, namespace, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        stored = self.secrets.get((namespace, name))
        if stored is None:
            raise not_found()
        return _clone_secret(stored)

    def replace_namespaced_secret(self, name, namespace, body, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        stored = self.secrets.get((namespace, name))
        if stored is None:
            raise not_found()
        if body.metadata.resource_version != stored.metadata.resource_version:
            raise ApiException(status=409, reason="Conflict")

        updated = _clone_secret(body)
        updated.metadata.deletion_timestamp = stored.metadata.deletion_timestamp
        updated.metadata.resource_version = self._next_resource_version()
        if updated.metadata.deletion_timestamp is not None and not updated.metadata.finalizers:
            del self.secrets[(namespace, name)]
        else:
            self.secrets[(namespace, name)] = updated
        return _clone_secret(updated)

    # ServiceAccounts

    def add_service_account(self, sa: client.V1ServiceAccount) -> None:
        stored = _clone_service_account(sa)
        stored.metadata.resource_version = self._next_resource_version()
        self.service_accounts[(stored.metadata.namespace, stored.metadata.name)] = stored

    def get_stored_service_account(
        self, namespace: str, name: str
    ) -> client.V1ServiceAccount | None:
        return self.service_accounts.get((namespace, name))

    def read_namespaced_service_account(self, name, namespace, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        stored = self.service_accounts.get((namespace, name))
        if stored is None:
            raise not_found()
        return _clone_service_account(stored)

    def create_namespaced_service_account(self, namespace, body, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        key = (namespace, body.metadata.name)
        if key in self.service_accounts:
            raise ApiException(status=409, reason="AlreadyExists")
        self.add_service_account(body)
        return _clone_service_account(self.service_accounts[key])

    def patch_namespaced_service_account(self, name, namespace, body, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        stored = self.service_accounts.get((namespace, name))
        if stored is None:
            raise not_found()
        self.patches.append((namespace, name, body))
        if "automountServiceAccountToken" in body:
            stored.automount_service_account_token = body["automountServiceAccountToken"]
        stored.metadata.resource_version = self._next_resource_version()
        return _clone_service_account(stored)

    def delete_namespaced_service_account(self, name, namespace, _request_timeout=None):
        self.request_timeouts.append(_request_timeout)
        if self.service_accounts.pop((namespace, name), None) is None:
            raise not_found()
        return client.V1Status(status="Success")

    def create_namespaced_service_account_token(
        self, name, namespace, body, _request_timeout=None
    ):
        self.request_timeouts.append(_request_timeout)
        if (namespace, name) not in self.service_accounts:
            raise not_found()
        self.token_requests.append((namespace, name, body))
        expires = self.clock.now() + timedelta(seconds=body.spec.expiration_seconds)
        return client.AuthenticationV1TokenRequest(
            spec=body.spec,
            status=client.V1TokenRequestStatus(token=self.token, expiration_timestamp=expires),
        )


def make_secret(
    annotations: dict[str, str] | None = None,
    labels: dict[str, str] | None = None,
    data: dict[str, str] | None = None,
    finalizers: list[str] | None = None,
) -> client.V1Secret:
    """Build a managed carrier Secret, optionally with extra metadata."""
    base_annotations = {
        SERVICE_ACCOUNT_NAME_ANNOTATION: SERVICE_ACCOUNT_NAME,
        SERVICE_ACCOUNT_NAMESPACE_ANNOTATION: SERVICE_ACCOUNT_NAMESPACE,
    }
    base_annotations.update(annotations or {})
    return client.V1Secret(
        metadata=client.V1ObjectMeta(
            name=SECRET_NAME,
            namespace=SECRET_NAMESPACE,
            annotations=base_annotations,
            labels={PURPOSE_LABEL_KEY: PURPOSE_TOKEN_REQUESTOR} if labels is None else labels,
            finalizers=finalizers,
        ),
        data=data,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(FAKE_NOW)


@pytest.fixture
def source_api(clock) -> FakeCoreV1Api:
    """Source cluster, holding the carrier Secrets."""
    return FakeCoreV1Api(clock)


@pytest.fixture
def target_api(clock) -> FakeCoreV1Api:
    """Target cluster, holding ServiceAccounts and issuing tokens."""
    return FakeCoreV1Api(clock)


@pytest.fixture
def secret_manager(source_api) -> SecretManager:
    manager = SecretManager(request_timeout=5.0)
    manager._v1 = source_api
    return manager


@pytest.fixture
def service_account_manager(target_api) -> ServiceAccountManager:
    manager = ServiceAccountManager(request_timeout=5.0)
    manager._v1 = target_api
    return manager


@pytest.fixture
def token_issuer(target_api) -> TokenIssuer:
    issuer = TokenIssuer(request_timeout=5.0)
    issuer._v1 = target_api
    return issuer


@pytest.fixture
def reconciler(
    secret_manager, service_account_manager, token_issuer, clock
) -> TokenRequestorReconciler:
    return TokenRequestorReconciler(
        secrets=secret_manager,
        service_accounts=service_account_manager,
        token_issuer=token_issuer,
        clock=clock,
        jitter_func=no_jitter,
    )
