"""
Credential embedding for carrier Secret payloads.

A Secret carries its bearer token in one of two shapes, selected by the
payload keys that are already present:

- raw: the ``token`` key holds exactly the token bytes
- kubeconfig: the ``kubeconfig`` key holds a client configuration whose
  selected user has the token in its ``token`` field

Everything in a kubeconfig other than that single field is preserved.
Documents are written back in the canonical kubeconfig layout (block style,
sorted keys), so a document in that layout round-trips byte for byte.
"""

import copy
import logging
from typing import Any

import yaml

from ..constants import (
    DATA_KEY_KUBECONFIG,
    DATA_KEY_TOKEN,
    ERROR_KUBECONFIG_DECODE,
    ERROR_KUBECONFIG_USER,
)
from ..errors import ValidationError

logger = logging.getLogger(__name__)


class RawTokenFormat:
    """Token stored verbatim under the ``token`` key."""

    name = "token"

    def extract(self, data: dict[str, bytes]) -> str | None:
        raw = data.get(DATA_KEY_TOKEN)
        return raw.decode("utf-8") if raw is not None else None

    def embed(self, data: dict[str, bytes], token: str) -> dict[str, bytes]:
        updated = dict(data)
        updated[DATA_KEY_TOKEN] = token.encode("utf-8")
        return updated


class KubeconfigFormat:
    """Token stored inside the user entry of an embedded kubeconfig."""

    name = "kubeconfig"

    def __init__(self, document: dict[str, Any]):
        self.document = document

    @classmethod
    def decode(cls, raw: bytes) -> "KubeconfigFormat":
        """
        Parse a serialized kubeconfig.

        Args:
            raw: Bytes stored under the ``kubeconfig`` key

        Returns:
            Format bound to the parsed document

        Raises:
            ValidationError: If the bytes are not a kubeconfig mapping
        """
        try:
            document = yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ValidationError(
                ERROR_KUBECONFIG_DECODE.format(e), field=f"data.{DATA_KEY_KUBECONFIG}"
            ) from e

        if not isinstance(document, dict):
            raise ValidationError(
                ERROR_KUBECONFIG_DECODE.format(
                    f"expected a mapping, got {type(document).__name__}"
                ),
                field=f"data.{DATA_KEY_KUBECONFIG}",
            )

        users = document.get("users")
        if users is not None and not isinstance(users, list):
            raise ValidationError(
                ERROR_KUBECONFIG_DECODE.format("'users' must be a list"),
                field=f"data.{DATA_KEY_KUBECONFIG}",
            )

        return cls(document)

    @staticmethod
    def encode(document: dict[str, Any]) -> bytes:
        return yaml.safe_dump(
            document, default_flow_style=False, sort_keys=True
        ).encode("utf-8")

    def _select_user(self, document: dict[str, Any]) -> dict[str, Any]:
        """
        Find the user entry that carries the managed token.

        The user of the current context wins. Without a resolvable current
        context a document with exactly one user is still unambiguous.
        """
        users = [u for u in document.get("users") or [] if isinstance(u, dict)]

        current_context = document.get("current-context")
        if current_context:
            for entry in document.get("contexts") or []:
                if not isinstance(entry, dict) or entry.get("name") != current_context:
                    continue
                context = entry.get("context") or {}
                user_name = context.get("user") if isinstance(context, dict) else None
                for user in users:
                    if user_name is not None and user.get("name") == user_name:
                        return user

        if len(users) == 1:
            return users[0]

        raise ValidationError(
            ERROR_KUBECONFIG_USER.format(
                f"found {len(users)} users and no user for the current context"
            ),
            field=f"data.{DATA_KEY_KUBECONFIG}",
        )

    def extract(self, data: dict[str, bytes]) -> str | None:
        user = self._select_user(self.document).get("user")
        if not isinstance(user, dict):
            return None
        return user.get("token")

    def embed(self, data: dict[str, bytes], token: str) -> dict[str, bytes]:
        document = copy.deepcopy(self.document)
        entry = self._select_user(document)
        if not isinstance(entry.get("user"), dict):
            entry["user"] = {}
        entry["user"]["token"] = token

        updated = dict(data)
        updated[DATA_KEY_KUBECONFIG] = self.encode(document)
        return updated


CredentialFormat = RawTokenFormat | KubeconfigFormat


def select_format(data: dict[str, bytes]) -> CredentialFormat:
    """
    Pick the credential format matching the Secret payload.

    A payload with a ``kubeconfig`` key is treated as a kubeconfig and must
    parse; every other payload (including an empty one) gets a raw token.

    Raises:
        ValidationError: If the kubeconfig cannot be decoded
    """
    if DATA_KEY_KUBECONFIG in data:
        return KubeconfigFormat.decode(data[DATA_KEY_KUBECONFIG])
    return RawTokenFormat()
