from typing import Optional

from prefect import flow, task, get_run_logger

from docling_poller.credentials import build_client
from docling_poller.poll import poll_task
from docling_poller.report import summarize_result
from docling_poller.results import CheckResult, CompletedTask
from docling_poller.settings import get_settings
from docling_poller.smoke import run_smoke_tests, suite_passed


@task(retries=0)  # IMPORTANT: disable Prefect retries; the poller does its own bounded loop
def t_poll(
    task_id: str,
    max_attempts: Optional[int] = None,
    interval_seconds: Optional[float] = None,
    out_dir: Optional[str] = None,
) -> CompletedTask:
    s = get_settings()
    client = build_client(s)
    return poll_task(
        client,
        task_id,
        max_attempts=max_attempts or s.poll_max_attempts,
        interval_seconds=s.poll_interval_seconds if interval_seconds is None else interval_seconds,
        out_dir=out_dir or s.output_dir,
    )


@flow(name="docling-poll-task", retries=0)
def poll_task_flow(
    task_id: str,
    max_attempts: Optional[int] = None,
    interval_seconds: Optional[float] = None,
    out_dir: Optional[str] = None,
) -> CompletedTask:
    logger = get_run_logger()
    logger.info(f"Polling task: {task_id}")

    completed = t_poll(task_id, max_attempts, interval_seconds, out_dir)
    summary = summarize_result(completed.result)

    logger.info(f"Task done after {completed.attempts} attempt(s). chunks={summary['total_chunks']}")
    logger.info(f"Persisted result to: {completed.out_path}")
    return completed


@task(retries=0)
def t_smoke() -> list[CheckResult]:
    s = get_settings()
    client = build_client(s)
    return run_smoke_tests(
        client,
        s.smoke_source_url,
        max_attempts=s.smoke_max_attempts,
        interval_seconds=s.poll_interval_seconds,
        out_dir=s.output_dir,
    )


@flow(name="docling-smoke-test", retries=0)
def smoke_test_flow() -> list[CheckResult]:
    logger = get_run_logger()
    logger.info("Starting smoke test against deployed service.")

    results = t_smoke()
    for r in results:
        log = logger.error if r.status == "failed" else logger.info
        log(f"{r.name}: {r.status} {r.detail}")

    logger.info(f"Smoke test complete. passed={suite_passed(results)}")
    return results


if __name__ == "__main__":
    print(smoke_test_flow())
