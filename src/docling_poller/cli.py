import argparse
import base64
import json
import logging
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from docling_poller.client import ProtocolError
from docling_poller.credentials import CredentialError, build_client
from docling_poller.flow import poll_task_flow, smoke_test_flow
from docling_poller.logging_config import setup_logging
from docling_poller.poll import PollTimeoutError, TaskFailedError
from docling_poller.report import summarize_result
from docling_poller.results import CheckResult, CompletedTask
from docling_poller.schema import ConvertSourcesRequest, FileSource, HttpSource
from docling_poller.settings import Settings, get_settings
from docling_poller.smoke import suite_passed

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


def build_sources(items: List[str]) -> list:
    sources = []
    for item in items:
        if item.startswith(("http://", "https://")):
            sources.append(HttpSource(url=item))
            continue

        path = Path(item)
        if not path.is_file():
            raise FileNotFoundError(f"Source is neither a URL nor a file: {item}")
        encoded = base64.b64encode(path.read_bytes()).decode("ascii")
        sources.append(FileSource(base64_string=encoded, filename=path.name))
    return sources


def print_result_summary(completed: CompletedTask) -> None:
    summary = summarize_result(completed.result)

    print("\nTask Summary")
    print("=" * 40)
    print(f"Task     : {completed.task_id}")
    print(f"Attempts : {completed.attempts}")
    print(f"Saved to : {completed.out_path}")
    print(f"Chunks   : {summary['total_chunks']}")
    print()

    if summary["total_chunks"]:
        print("First chunk keys: " + ", ".join(summary["first_chunk_keys"]))
        print(f"Text preview: {summary['text_preview']!r}")
        print("Metadata: " + json.dumps(summary["metadata"], ensure_ascii=False))
        print("Positions:")
        for name, info in summary["positions"].items():
            print(f"- {name}: present={info['present']} value={info['value']}")
        print()


def print_checks(results: List[CheckResult]) -> None:
    marks = {"passed": "PASS", "failed": "FAIL", "warning": "WARN"}
    print("\nSmoke Test")
    print("=" * 40)
    for r in results:
        print(f"[{marks[r.status]}] {r.name}: {r.detail}")
    print()


def _poll_and_report(task_id: str, args: argparse.Namespace) -> int:
    try:
        completed = poll_task_flow(
            task_id,
            max_attempts=args.max_attempts,
            interval_seconds=args.interval,
            out_dir=str(args.out_dir) if args.out_dir else None,
        )
    except TaskFailedError as e:
        logger.error(f"Task failed!\n{json.dumps(e.payload, indent=2, ensure_ascii=False)}")
        return EXIT_FAILED
    except PollTimeoutError as e:
        logger.error(f"Timeout: {e}")
        return EXIT_FAILED
    except ProtocolError as e:
        logger.error(f"Protocol error: {e}")
        return EXIT_FAILED

    print_result_summary(completed)
    return EXIT_OK


def cmd_poll(args: argparse.Namespace, s: Settings) -> int:
    return _poll_and_report(args.task_id, args)


def cmd_submit(args: argparse.Namespace, s: Settings) -> int:
    extra = {"options": {"to_formats": args.to_format}} if args.to_format else {}
    request = ConvertSourcesRequest(sources=build_sources(args.sources), **extra)

    client = build_client(s)
    try:
        submission = client.submit(request)
    except ProtocolError as e:
        logger.error(f"Conversion request failed: {e}")
        return EXIT_FAILED

    print(submission.task_id)
    if not args.wait:
        return EXIT_OK
    return _poll_and_report(submission.task_id, args)


def cmd_smoke(args: argparse.Namespace, s: Settings) -> int:
    results = smoke_test_flow()
    print_checks(results)
    return EXIT_OK if suite_passed(results) else EXIT_FAILED


def cmd_stub(args: argparse.Namespace, s: Settings) -> int:
    import uvicorn

    from docling_poller.stub_service import create_app

    app = create_app(
        api_key=args.api_key,
        polls_until_done=args.polls_until_done,
        chaos_rate=args.chaos_rate,
        chaos_seed=args.chaos_seed,
    )
    uvicorn.run(app, host=args.host, port=args.port)
    return EXIT_OK


def _add_poll_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--max-attempts", type=int, default=None, help="Status checks before giving up (POLL_MAX_ATTEMPTS)")
    p.add_argument("--interval", type=float, default=None, help="Seconds between checks (POLL_INTERVAL_SECONDS)")
    p.add_argument("--out-dir", type=Path, default=None, help="Where task_<id>_result.json is written (OUTPUT_DIR)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docling-poller",
        description="Submit, poll and smoke-test an async document conversion service",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("poll", help="Poll a task until it finishes and save its result")
    p.add_argument("task_id", help="Task id returned by the submission endpoint")
    _add_poll_options(p)
    p.set_defaults(handler=cmd_poll)

    p = sub.add_parser("submit", help="Submit URLs or local files for async conversion")
    p.add_argument("sources", nargs="+", help="http(s) URLs or paths to local files")
    p.add_argument("--to-format", action="append", default=None, help="Output format; repeatable")
    p.add_argument("--wait", action="store_true", help="Poll the new task until it finishes")
    _add_poll_options(p)
    p.set_defaults(handler=cmd_submit)

    p = sub.add_parser("smoke", help="Run the smoke test suite against the deployed service")
    p.set_defaults(handler=cmd_smoke)

    p = sub.add_parser("stub", help="Serve a local stand-in for the conversion service")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=5001)
    p.add_argument("--api-key", default="stub-api-key")
    p.add_argument("--polls-until-done", type=int, default=3)
    p.add_argument("--chaos-rate", type=float, default=0.0)
    p.add_argument("--chaos-seed", type=int, default=None)
    p.set_defaults(handler=cmd_stub)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        s = get_settings()
    except ValidationError as e:
        setup_logging()
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILED
    setup_logging(s.log_level)

    if args.command == "poll" and not args.task_id.strip():
        parser.error("task_id must not be empty")
    if getattr(args, "max_attempts", None) is not None and args.max_attempts < 1:
        parser.error("--max-attempts must be >= 1")
    if getattr(args, "interval", None) is not None and args.interval < 0:
        parser.error("--interval must be >= 0")

    try:
        return args.handler(args, s)
    except (CredentialError, FileNotFoundError) as e:
        logger.error(str(e))
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
