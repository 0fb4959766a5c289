"""
Credential and endpoint lookup.

Environment variables win. Otherwise we ask the gcloud CLI, the same way an
operator would by hand:
- identity token: `gcloud auth print-identity-token`
- application key: `gcloud secrets versions access latest --secret=...`
- service URL: `gcloud run services describe ... --format=value(status.url)`
"""
from __future__ import annotations

import logging
import shutil
import subprocess
from typing import Callable, Sequence

from docling_poller.client import ServeClient
from docling_poller.settings import Settings

logger = logging.getLogger(__name__)

GcloudRunner = Callable[[Sequence[str]], str]


class CredentialError(RuntimeError):
    pass


def run_gcloud(args: Sequence[str]) -> str:
    if shutil.which("gcloud") is None:
        raise CredentialError("gcloud CLI not found on PATH")
    try:
        proc = subprocess.run(
            ["gcloud", *args],
            capture_output=True,
            text=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        stderr = (e.stderr or "").strip()
        raise CredentialError(f"gcloud {' '.join(args[:3])} failed: {stderr}") from e
    return proc.stdout.strip()


def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def get_identity_token(settings: Settings, runner: GcloudRunner = run_gcloud) -> str:
    token = _clean(settings.identity_token)
    if token:
        return token

    logger.info("Getting identity token from gcloud...")
    token = _clean(runner(["auth", "print-identity-token"]))
    if not token:
        raise CredentialError("Could not get identity token. Are you authenticated?")
    return token


def get_api_key(settings: Settings, runner: GcloudRunner = run_gcloud) -> str:
    key = _clean(settings.api_key)
    if key:
        return key

    project = _clean(settings.gcp_project_id)
    if not project:
        raise CredentialError("Set DOCLING_API_KEY, or GCP_PROJECT_ID to read it from Secret Manager.")

    logger.warning("DOCLING_API_KEY not set. Reading it from Secret Manager...")
    key = _clean(
        runner([
            "secrets", "versions", "access", "latest",
            f"--secret={settings.api_key_secret}",
            f"--project={project}",
        ])
    )
    if not key:
        raise CredentialError(f"Secret {settings.api_key_secret!r} is empty.")
    return key


def resolve_service_url(settings: Settings, runner: GcloudRunner = run_gcloud) -> str:
    url = _clean(settings.service_url)
    if url:
        return url

    project = _clean(settings.gcp_project_id)
    if not project:
        raise CredentialError("Set SERVICE_URL, or GCP_PROJECT_ID to look the service up.")

    logger.info(f"Getting service URL for {settings.service_name}...")
    url = _clean(
        runner([
            "run", "services", "describe", settings.service_name,
            f"--region={settings.region}",
            f"--project={project}",
            "--format=value(status.url)",
        ])
    )
    if not url:
        raise CredentialError("Could not get service URL. Is the service deployed?")
    return url


def build_client(settings: Settings, runner: GcloudRunner = run_gcloud) -> ServeClient:
    return ServeClient(
        resolve_service_url(settings, runner),
        api_key=get_api_key(settings, runner),
        identity_token=get_identity_token(settings, runner),
        timeout=settings.request_timeout_seconds,
    )
