import pytest

from docling_poller.credentials import (
    CredentialError,
    build_client,
    get_api_key,
    get_identity_token,
    resolve_service_url,
)
from docling_poller.settings import get_settings


class FakeGcloud:
    def __init__(self, **outputs):
        # keyed by the first gcloud word: auth / secrets / run
        self.outputs = outputs
        self.calls = []

    def __call__(self, args):
        self.calls.append(list(args))
        return self.outputs.get(args[0], "")


def test_env_values_win_over_gcloud(monkeypatch):
    monkeypatch.setenv("DOCLING_API_KEY", "env-key")
    monkeypatch.setenv("DOCLING_IDENTITY_TOKEN", "env-token")
    monkeypatch.setenv("SERVICE_URL", "https://svc.test")
    gcloud = FakeGcloud()

    s = get_settings()

    assert get_api_key(s, gcloud) == "env-key"
    assert get_identity_token(s, gcloud) == "env-token"
    assert resolve_service_url(s, gcloud) == "https://svc.test"
    assert gcloud.calls == []


def test_falls_back_to_gcloud(monkeypatch):
    monkeypatch.setenv("GCP_PROJECT_ID", "proj-1")
    gcloud = FakeGcloud(auth="tok\n", secrets="secret-key\n", run="https://docling-serve.run.app\n")

    s = get_settings()
    client = build_client(s, gcloud)

    assert client.identity_token == "tok"
    assert client.api_key == "secret-key"
    assert client.base_url == "https://docling-serve.run.app"
    assert ["auth", "print-identity-token"] in gcloud.calls
    assert [
        "secrets", "versions", "access", "latest", "--secret=docling-api-key", "--project=proj-1",
    ] in gcloud.calls
    assert [
        "run", "services", "describe", "docling-serve",
        "--region=us-central1", "--project=proj-1", "--format=value(status.url)",
    ] in gcloud.calls


def test_secret_name_comes_from_settings(monkeypatch):
    monkeypatch.setenv("GCP_PROJECT_ID", "proj-1")
    monkeypatch.setenv("DOCLING_API_KEY_SECRET", "other-secret")
    gcloud = FakeGcloud(secrets="k")

    get_api_key(get_settings(), gcloud)

    assert "--secret=other-secret" in gcloud.calls[0]


def test_api_key_needs_env_or_project():
    with pytest.raises(CredentialError):
        get_api_key(get_settings(), FakeGcloud(secrets="k"))


def test_service_url_needs_env_or_project():
    with pytest.raises(CredentialError):
        resolve_service_url(get_settings(), FakeGcloud(run="https://x"))


def test_empty_gcloud_output_is_an_error(monkeypatch):
    monkeypatch.setenv("GCP_PROJECT_ID", "proj-1")
    gcloud = FakeGcloud()

    with pytest.raises(CredentialError):
        get_identity_token(get_settings(), gcloud)
    with pytest.raises(CredentialError):
        get_api_key(get_settings(), gcloud)
    with pytest.raises(CredentialError):
        resolve_service_url(get_settings(), gcloud)


def test_blank_env_value_is_treated_as_unset(monkeypatch):
    monkeypatch.setenv("DOCLING_IDENTITY_TOKEN", "   ")
    gcloud = FakeGcloud(auth="from-gcloud")

    assert get_identity_token(get_settings(), gcloud) == "from-gcloud"
