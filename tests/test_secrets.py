import datetime
import stat

import pytest
import yaml
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID
from kubernetes.client.rest import ApiException
from kubernetes.config import ConfigException

from cd_homelab.k8s.secrets import (
    SEALED_SECRETS_KEY_LABEL, ExternalSecretsManager, SealedSecretsManager, strip_server_fields
)


def key_secret(name, namespace="sealed-secrets"):
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "type": "kubernetes.io/tls",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": {SEALED_SECRETS_KEY_LABEL: "active"},
            "resourceVersion": "1234",
            "uid": "0f4c-11",
            "creationTimestamp": "2026-01-01T00:00:00Z",
            "managedFields": [{"manager": "controller"}],
        },
        "data": {"tls.crt": "Y2VydA==", "tls.key": "a2V5"},
    }


def self_signed_pem(days_valid):
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "sealed-secret")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=30))
        .not_valid_after(now + datetime.timedelta(days=days_valid))
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode()


@pytest.fixture
def sealed(runner, kube):
    return SealedSecretsManager(runner, kube)


def test_strip_server_fields_keeps_identity():
    stripped = strip_server_fields(key_secret("sealed-secrets-key1"))

    assert stripped["metadata"] == {
        "name": "sealed-secrets-key1",
        "namespace": "sealed-secrets",
        "labels": {SEALED_SECRETS_KEY_LABEL: "active"},
    }
    assert stripped["data"]["tls.key"] == "a2V5"


def test_backup_writes_private_list(sealed, kube, tmp_path):
    kube.secrets[("sealed-secrets", "sealed-secrets-key1")] = key_secret("sealed-secrets-key1")
    kube.secrets[("sealed-secrets", "sealed-secrets-key2")] = key_secret("sealed-secrets-key2")
    kube.secrets[("sealed-secrets", "unrelated")] = {"metadata": {"name": "unrelated", "labels": {}}}
    backup = tmp_path / ".secrets" / "sealed-secrets-keys.yaml"

    assert sealed.backup(backup)

    document = yaml.safe_load(backup.read_text())
    assert document["kind"] == "List"
    assert [item["metadata"]["name"] for item in document["items"]] == [
        "sealed-secrets-key1", "sealed-secrets-key2"
    ]
    assert all("resourceVersion" not in item["metadata"] for item in document["items"])
    assert stat.S_IMODE(backup.stat().st_mode) == 0o600


def test_backup_without_keys_keeps_existing_file(sealed, tmp_path):
    backup = tmp_path / "keys.yaml"
    backup.write_text("previous backup\n")

    assert not sealed.backup(backup)
    assert backup.read_text() == "previous backup\n"


def test_backup_api_error(sealed, kube, tmp_path, monkeypatch):
    def forbidden(namespace, label_selector):
        raise ApiException(status=403, reason="Forbidden")

    monkeypatch.setattr(kube, "list_secrets", forbidden)

    assert not sealed.backup(tmp_path / "keys.yaml")
    assert not sealed.has_keys()


def test_restore_applies_every_key(sealed, kube, tmp_path):
    backup = tmp_path / "keys.yaml"
    items = [key_secret("sealed-secrets-key1"), key_secret("sealed-secrets-key2")]
    del items[1]["metadata"]["namespace"]
    backup.write_text(yaml.safe_dump({"apiVersion": "v1", "kind": "List", "items": items}))

    assert sealed.restore(backup)

    assert "sealed-secrets" in kube.namespaces
    assert [secret["metadata"]["name"] for secret in kube.applied] == [
        "sealed-secrets-key1", "sealed-secrets-key2"
    ]
    assert all(secret["metadata"]["namespace"] == "sealed-secrets" for secret in kube.applied)
    assert all("uid" not in secret["metadata"] for secret in kube.applied)


def test_restore_single_secret_document(sealed, kube, tmp_path):
    backup = tmp_path / "key.yaml"
    backup.write_text(yaml.safe_dump(key_secret("sealed-secrets-key1")))

    assert sealed.restore(backup)
    assert len(kube.applied) == 1


def test_restore_missing_or_empty_backup(sealed, kube, tmp_path):
    assert not sealed.restore(tmp_path / "missing.yaml")

    empty = tmp_path / "empty.yaml"
    empty.write_text("apiVersion: v1\nkind: List\nitems: []\n")
    assert not sealed.restore(empty)
    assert kube.applied == []


def test_fetch_cert(sealed, runner):
    runner.respond("kubeseal --fetch-cert", stdout="-----BEGIN CERTIFICATE-----\n")

    assert sealed.fetch_cert().startswith("-----BEGIN CERTIFICATE-----")
    assert runner.commands == [
        "kubeseal --fetch-cert --controller-name=sealed-secrets --controller-namespace=sealed-secrets"
    ]


def test_fetch_cert_without_kubeseal(sealed, runner):
    runner.missing.add("kubeseal")
    assert sealed.fetch_cert() is None


@pytest.mark.parametrize("days_valid, expired", [(365, False), (-1, True)])
def test_describe_cert(days_valid, expired):
    info = SealedSecretsManager.describe_cert(self_signed_pem(days_valid))

    assert info["subject"] == "CN=sealed-secret"
    assert info["issuer"] == "CN=sealed-secret"
    assert info["expired"] is expired
    assert info["not_before"] < info["not_after"]


def test_describe_cert_rejects_garbage():
    with pytest.raises(ValueError):
        SealedSecretsManager.describe_cert("not a certificate")


def test_namespaces_follow_settings(runner, kube):
    assert SealedSecretsManager(runner, kube, namespace="kubeseal").namespace == "kubeseal"
    assert ExternalSecretsManager(runner, kube, namespace="eso").namespace == "eso"


def test_has_keys_without_kube_context(sealed, kube, monkeypatch):
    def no_context(namespace, label_selector):
        raise ConfigException("Invalid kube-config file. No configuration found.")

    monkeypatch.setattr(kube, "list_secrets", no_context)
    assert not sealed.has_keys()
