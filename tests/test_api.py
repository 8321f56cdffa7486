import base64
from unittest.mock import MagicMock

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from cd_homelab.k8s.api import KubeApi


@pytest.fixture
def core():
    return MagicMock()


@pytest.fixture
def custom():
    return MagicMock()


@pytest.fixture
def api(core, custom):
    return KubeApi(core_api=core, custom_api=custom)


def test_ensure_namespace_exists(api, core):
    assert api.ensure_namespace("argocd")
    core.create_namespace.assert_not_called()


def test_ensure_namespace_creates_missing(api, core):
    core.read_namespace.side_effect = ApiException(status=404, reason="Not Found")

    assert api.ensure_namespace("argocd")

    body = core.create_namespace.call_args.kwargs["body"]
    assert body.metadata.name == "argocd"


def test_ensure_namespace_race_is_success(api, core):
    core.read_namespace.side_effect = ApiException(status=404, reason="Not Found")
    core.create_namespace.side_effect = ApiException(status=409, reason="Conflict")
    assert api.ensure_namespace("argocd")


def test_ensure_namespace_forbidden(api, core):
    core.read_namespace.side_effect = ApiException(status=403, reason="Forbidden")
    assert not api.ensure_namespace("argocd")
    core.create_namespace.assert_not_called()


def test_list_secrets_serializes_manifests(api, core):
    core.list_namespaced_secret.return_value = client.V1SecretList(items=[
        client.V1Secret(
            metadata=client.V1ObjectMeta(name="sealed-secrets-key1", namespace="sealed-secrets",
                                         labels={"sealedsecrets.bitnami.com/sealed-secrets-key": "active"}),
            type="kubernetes.io/tls",
            data={"tls.key": "a2V5"}
        )
    ])

    secrets = api.list_secrets("sealed-secrets", "sealedsecrets.bitnami.com/sealed-secrets-key")

    assert secrets == [{
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": "sealed-secrets-key1",
            "namespace": "sealed-secrets",
            "labels": {"sealedsecrets.bitnami.com/sealed-secrets-key": "active"},
        },
        "type": "kubernetes.io/tls",
        "data": {"tls.key": "a2V5"},
    }]
    core.list_namespaced_secret.assert_called_once_with(
        "sealed-secrets", label_selector="sealedsecrets.bitnami.com/sealed-secrets-key"
    )


def test_list_secrets_missing_namespace(api, core):
    core.list_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")
    assert api.list_secrets("sealed-secrets", "x") == []


def test_read_secret_value(api, core):
    core.read_namespaced_secret.return_value = client.V1Secret(
        data={"password": base64.b64encode(b"hunter2").decode()}
    )
    assert api.read_secret_value("argocd-initial-admin-secret", "argocd", "password") == "hunter2"
    assert api.read_secret_value("argocd-initial-admin-secret", "argocd", "other") is None


def test_read_secret_value_missing(api, core):
    core.read_namespaced_secret.side_effect = ApiException(status=404, reason="Not Found")
    assert api.read_secret_value("argocd-initial-admin-secret", "argocd", "password") is None


def test_read_secret_value_propagates_other_errors(api, core):
    core.read_namespaced_secret.side_effect = ApiException(status=500, reason="Internal Server Error")
    with pytest.raises(ApiException):
        api.read_secret_value("argocd-initial-admin-secret", "argocd", "password")


def test_cluster_object_exists(api, custom):
    assert api.cluster_object_exists("external-secrets.io", "v1beta1", "clustersecretstores", "azure-keyvault-store")

    custom.get_cluster_custom_object.side_effect = ApiException(status=404, reason="Not Found")
    assert not api.cluster_object_exists("external-secrets.io", "v1beta1", "clustersecretstores", "azure-keyvault-store")


def test_apply_secret_replaces_existing(api, core):
    core.create_namespaced_secret.side_effect = ApiException(status=409, reason="Conflict")
    body = {"apiVersion": "v1", "kind": "Secret", "metadata": {"name": "key1", "namespace": "sealed-secrets"}}

    assert api.apply_secret(body)

    core.replace_namespaced_secret.assert_called_once_with(name="key1", namespace="sealed-secrets", body=body)


def test_config_is_loaded_lazily(monkeypatch):
    from kubernetes import config

    loaded = []
    monkeypatch.setattr(config, "load_kube_config", lambda config_file=None: loaded.append(config_file))

    api = KubeApi(kubeconfig="/tmp/kubeconfig.yaml")
    assert loaded == []

    assert api.core is not None
    assert loaded == ["/tmp/kubeconfig.yaml"]
