"""
Typed values exchanged by the token requestor components.

The annotations of a carrier Secret are parsed into a
``TokenRequestorConfig`` once at the start of a reconciliation. Every
recognised annotation is validated there, so the reconciler never sees a
half-parsed value.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..constants import (
    DEFAULT_TOKEN_EXPIRATION,
    ERROR_INVALID_DURATION,
    ERROR_INVALID_RENEW_TIMESTAMP,
    ERROR_MISSING_ANNOTATION,
    MAX_TOKEN_EXPIRATION,
    RENEW_FRACTION,
    SERVICE_ACCOUNT_NAME_ANNOTATION,
    SERVICE_ACCOUNT_NAMESPACE_ANNOTATION,
    SKIP_DELETION_ANNOTATION,
    TOKEN_EXPIRATION_DURATION_ANNOTATION,
    TOKEN_ISSUED_FOR_ANNOTATION,
    TOKEN_RENEW_TIMESTAMP_ANNOTATION,
)
from ..errors import ValidationError
from ..utils.durations import parse_duration, parse_rfc3339


@dataclass(frozen=True)
class ObjectKey:
    """Namespace and name of a Kubernetes object."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "ObjectKey":
        namespace, sep, name = value.partition("/")
        if not sep or not namespace or not name:
            raise ValueError(f"invalid object key {value!r}, expected <namespace>/<name>")
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True)
class IssuedToken:
    """A bearer token and the instant it stops being valid."""

    token: str
    expiration_timestamp: datetime

    def __repr__(self) -> str:
        return f"IssuedToken(token=<redacted>, expiration_timestamp={self.expiration_timestamp!r})"


@dataclass(frozen=True)
class ReconcileResult:
    """
    Outcome of a successful reconciliation.

    ``requeue_after`` asks the renewal daemon to reconcile the key again after
    the given duration; None means no time-based requeue.
    """

    requeue_after: timedelta | None = None


def _skip_deletion(annotations: dict[str, str]) -> bool:
    return annotations.get(SKIP_DELETION_ANNOTATION) == "true"


class TokenRequestorConfig(BaseModel):
    """Annotations of a managed carrier Secret."""

    model_config = {"frozen": True}

    service_account_name: str = Field(
        ..., alias=SERVICE_ACCOUNT_NAME_ANNOTATION, min_length=1
    )
    service_account_namespace: str = Field(
        ..., alias=SERVICE_ACCOUNT_NAMESPACE_ANNOTATION, min_length=1
    )
    renew_timestamp: datetime | None = Field(
        None, alias=TOKEN_RENEW_TIMESTAMP_ANNOTATION
    )
    expiration_duration: timedelta | None = Field(
        None, alias=TOKEN_EXPIRATION_DURATION_ANNOTATION
    )
    skip_deletion: bool = Field(False, alias=SKIP_DELETION_ANNOTATION)
    issued_for: str | None = Field(None, alias=TOKEN_ISSUED_FOR_ANNOTATION)

    @field_validator("renew_timestamp", mode="before")
    @classmethod
    def _parse_renew_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            try:
                return parse_rfc3339(value)
            except ValueError as e:
                raise ValueError(ERROR_INVALID_RENEW_TIMESTAMP.format(value)) from e
        return value

    @field_validator("expiration_duration", mode="before")
    @classmethod
    def _parse_expiration_duration(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        try:
            duration = parse_duration(value)
        except ValueError as e:
            raise ValueError(ERROR_INVALID_DURATION.format(value)) from e
        if duration <= timedelta(0):
            raise ValueError(ERROR_INVALID_DURATION.format(value) + ": must be positive")
        return duration

    @field_validator("skip_deletion", mode="before")
    @classmethod
    def _parse_skip_deletion(cls, value: Any) -> Any:
        # Only the literal "true" opts out of deletion
        if isinstance(value, str):
            return value == "true"
        return value

    @classmethod
    def from_annotations(cls, annotations: dict[str, str] | None) -> "TokenRequestorConfig":
        """
        Parse the annotations of a managed Secret.

        Raises:
            ValidationError: On the first missing or unparseable annotation
        """
        try:
            return cls.model_validate(dict(annotations or {}))
        except PydanticValidationError as e:
            error = e.errors()[0]
            field = str(error["loc"][0]) if error["loc"] else None
            if error["type"] in ("missing", "string_too_short"):
                message = ERROR_MISSING_ANNOTATION.format(field)
            else:
                cause = (error.get("ctx") or {}).get("error")
                message = str(cause) if cause is not None else error["msg"]
            raise ValidationError(message, field=field) from e

    @property
    def service_account(self) -> ObjectKey:
        return ObjectKey(
            namespace=self.service_account_namespace, name=self.service_account_name
        )

    @property
    def effective_lifetime(self) -> timedelta:
        """Requested lifetime (or the default), capped at the maximum."""
        return min(self.expiration_duration or DEFAULT_TOKEN_EXPIRATION, MAX_TOKEN_EXPIRATION)

    @property
    def renew_interval(self) -> timedelta:
        return self.effective_lifetime * RENEW_FRACTION

    def token_matches_identity(self) -> bool:
        """
        Whether the stored token was issued for the named ServiceAccount.

        Secrets written before the issued-for annotation existed carry no
        record and are trusted.
        """
        return self.issued_for is None or self.issued_for == str(self.service_account)


def service_account_to_delete(annotations: dict[str, str] | None) -> ObjectKey | None:
    """
    ServiceAccount to remove when a Secret is unmanaged or deleted.

    Returns None when the Secret opts out of deletion or does not name a
    complete ServiceAccount. No other annotation is validated, so cleanup
    never fails on a malformed timestamp or duration.
    """
    annotations = annotations or {}
    if _skip_deletion(annotations):
        return None

    name = annotations.get(SERVICE_ACCOUNT_NAME_ANNOTATION)
    namespace = annotations.get(SERVICE_ACCOUNT_NAMESPACE_ANNOTATION)
    if not name or not namespace:
        return None
    return ObjectKey(namespace=namespace, name=name)
