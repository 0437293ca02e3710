"""
Tests for credential embedding into Secret payloads.

The kubeconfig fixture is written in the canonical layout produced by
client tooling, so embedding a token must change only the token line.
"""

import pytest
import yaml

from token_requestor.errors import ValidationError
from token_requestor.utils.kubeconfig import (
    KubeconfigFormat,
    RawTokenFormat,
    select_format,
)


def kubeconfig_raw(token: str) -> bytes:
    return f"""apiVersion: v1
clusters:
- cluster:
    certificate-authority-data: AAAA
    server: some-server-url
  name: shoot--foo--bar
contexts:
- context:
    cluster: shoot--foo--bar
    user: shoot--foo--bar-token
  name: shoot--foo--bar
current-context: shoot--foo--bar
kind: Config
preferences: {{}}
users:
- name: shoot--foo--bar-token
  user:
    token: {token}
""".encode()


MULTI_USER_KUBECONFIG = b"""apiVersion: v1
kind: Config
current-context: second
contexts:
- name: first
  context:
    cluster: c
    user: alice
- name: second
  context:
    cluster: c
    user: bob
users:
- name: alice
  user:
    token: alice-token
- name: bob
  user:
    token: bob-token
"""


class TestSelectFormat:
    def test_empty_payload_uses_raw_token(self):
        assert isinstance(select_format({}), RawTokenFormat)

    def test_token_payload_uses_raw_token(self):
        assert isinstance(select_format({"token": b"old"}), RawTokenFormat)

    def test_kubeconfig_payload_uses_kubeconfig(self):
        selected = select_format({"kubeconfig": kubeconfig_raw("")})
        assert isinstance(selected, KubeconfigFormat)
        assert selected.name == "kubeconfig"

    @pytest.mark.parametrize(
        "raw",
        [
            b"some non-decodeable stuff",
            b"users: [unclosed",
            b"- just\n- a\n- list\n",
            b"users: not-a-list\n",
        ],
    )
    def test_undecodable_kubeconfig(self, raw):
        with pytest.raises(ValidationError, match="could not decode kubeconfig") as exc_info:
            select_format({"kubeconfig": raw})
        assert exc_info.value.field == "data.kubeconfig"
        assert exc_info.value.retryable is False


class TestRawTokenFormat:
    def test_embed_sets_token(self):
        data = {"token": b"old", "other": b"kept"}
        updated = RawTokenFormat().embed(data, "foo")

        assert updated == {"token": b"foo", "other": b"kept"}
        assert data["token"] == b"old"

    def test_extract(self):
        assert RawTokenFormat().extract({"token": b"foo"}) == "foo"
        assert RawTokenFormat().extract({}) is None


class TestKubeconfigFormat:
    def test_embed_only_changes_token(self):
        data = {"kubeconfig": kubeconfig_raw("")}
        updated = select_format(data).embed(data, "foo")

        assert updated["kubeconfig"] == kubeconfig_raw("foo")
        assert "token" not in updated

    def test_embed_replaces_existing_token(self):
        data = {"kubeconfig": kubeconfig_raw("old")}
        kubeconfig = select_format(data)

        updated = kubeconfig.embed(data, "foo")

        assert updated["kubeconfig"] == kubeconfig_raw("foo")
        # The parsed document is not modified by embedding
        assert kubeconfig.extract(data) == "old"

    def test_current_context_user_is_updated(self):
        data = {"kubeconfig": MULTI_USER_KUBECONFIG}
        updated = select_format(data).embed(data, "new-token")

        document = yaml.safe_load(updated["kubeconfig"])
        tokens = {u["name"]: u["user"]["token"] for u in document["users"]}
        assert tokens == {"alice": "alice-token", "bob": "new-token"}

    def test_single_user_without_context(self):
        raw = b"apiVersion: v1\nkind: Config\nusers:\n- name: only\n  user: {}\n"
        data = {"kubeconfig": raw}

        updated = select_format(data).embed(data, "foo")

        document = yaml.safe_load(updated["kubeconfig"])
        assert document["users"] == [{"name": "only", "user": {"token": "foo"}}]

    def test_user_entry_without_user_mapping(self):
        raw = b"users:\n- name: only\n"
        data = {"kubeconfig": raw}

        updated = select_format(data).embed(data, "foo")

        document = yaml.safe_load(updated["kubeconfig"])
        assert document["users"][0]["user"] == {"token": "foo"}

    def test_ambiguous_user_is_rejected(self):
        raw = MULTI_USER_KUBECONFIG.replace(b"current-context: second", b"current-context: missing")
        data = {"kubeconfig": raw}

        with pytest.raises(ValidationError, match="could not determine the kubeconfig user"):
            select_format(data).embed(data, "foo")

    def test_no_users_is_rejected(self):
        data = {"kubeconfig": b"apiVersion: v1\nkind: Config\n"}

        with pytest.raises(ValidationError):
            select_format(data).embed(data, "foo")
