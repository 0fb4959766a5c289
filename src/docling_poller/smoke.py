import logging
import time
from pathlib import Path
from typing import Callable

from docling_poller.client import ProtocolError, ServeClient
from docling_poller.poll import PollTimeoutError, TaskFailedError, poll_task
from docling_poller.report import find_keys
from docling_poller.results import CheckResult
from docling_poller.schema import ConvertSourcesRequest, HttpSource

logger = logging.getLogger(__name__)

REJECTED_CODES = {401, 403}
EXPECTED_CONTENT = ("json_content", "text_content")


def conversion_request(source_url: str, *, with_options: bool = True) -> ConvertSourcesRequest:
    if with_options:
        return ConvertSourcesRequest(sources=[HttpSource(url=source_url)])
    return ConvertSourcesRequest(sources=[HttpSource(url=source_url)], options={})


def check_health(client: ServeClient) -> CheckResult:
    try:
        body = client.health()
    except ProtocolError as e:
        return CheckResult(name="health", status="failed", detail=str(e))
    return CheckResult(name="health", status="passed", detail=str(body))


def check_async_conversion(
    client: ServeClient,
    source_url: str,
    *,
    max_attempts: int = 30,
    interval_seconds: float = 5.0,
    out_dir: Path | str = "out",
    sleep: Callable[[float], None] = time.sleep,
) -> CheckResult:
    try:
        submission = client.submit(conversion_request(source_url))
    except ProtocolError as e:
        return CheckResult(name="async_conversion", status="failed", detail=f"Conversion request failed: {e}")

    task_id = submission.task_id
    logger.info(f"Conversion task created: {task_id}")

    try:
        completed = poll_task(
            client,
            task_id,
            max_attempts=max_attempts,
            interval_seconds=interval_seconds,
            out_dir=out_dir,
            sleep=sleep,
        )
    except (TaskFailedError, PollTimeoutError, ProtocolError) as e:
        return CheckResult(name="async_conversion", status="failed", detail=str(e), task_id=task_id)

    missing = set(EXPECTED_CONTENT) - find_keys(completed.result.model_dump(), *EXPECTED_CONTENT)
    if missing:
        return CheckResult(
            name="async_conversion",
            status="warning",
            detail=f"Result is missing: {', '.join(sorted(missing))}",
            task_id=task_id,
        )
    return CheckResult(
        name="async_conversion",
        status="passed",
        detail=f"Results saved to {completed.out_path}",
        task_id=task_id,
    )


def _check_rejected(name: str, client: ServeClient, source_url: str) -> CheckResult:
    try:
        code = client.probe_submit(conversion_request(source_url, with_options=False))
    except ProtocolError as e:
        return CheckResult(name=name, status="warning", detail=str(e))

    if code in REJECTED_CODES:
        return CheckResult(name=name, status="passed", detail=f"Correctly rejected (HTTP {code})")
    return CheckResult(name=name, status="warning", detail=f"Returned HTTP {code} (expected 401/403)")


def check_rejects_without_api_key(client: ServeClient, source_url: str) -> CheckResult:
    return _check_rejected("rejects_without_api_key", client.without_api_key(), source_url)


def check_rejects_without_identity_token(client: ServeClient, source_url: str) -> CheckResult:
    return _check_rejected("rejects_without_identity_token", client.without_identity_token(), source_url)


def run_smoke_tests(
    client: ServeClient,
    source_url: str,
    *,
    max_attempts: int = 30,
    interval_seconds: float = 5.0,
    out_dir: Path | str = "out",
    sleep: Callable[[float], None] = time.sleep,
) -> list[CheckResult]:
    """
    Health and conversion must pass; the run stops at the first failure of either.
    The auth probes only warn when the service accepts an unauthenticated request.
    """
    results = [check_health(client)]
    if results[-1].status == "failed":
        return results

    results.append(
        check_async_conversion(
            client,
            source_url,
            max_attempts=max_attempts,
            interval_seconds=interval_seconds,
            out_dir=out_dir,
            sleep=sleep,
        )
    )
    if results[-1].status == "failed":
        return results

    results.append(check_rejects_without_api_key(client, source_url))
    results.append(check_rejects_without_identity_token(client, source_url))
    return results


def suite_passed(results: list[CheckResult]) -> bool:
    return all(r.status != "failed" for r in results)
