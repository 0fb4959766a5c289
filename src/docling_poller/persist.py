import json
import re
from pathlib import Path

from docling_poller.schema import ConversionResult


_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def result_path(task_id: str, out_dir: Path | str = "out") -> Path:
    # ids are opaque; keep them from reaching outside out_dir
    safe_id = _UNSAFE_NAME_CHARS.sub("_", task_id)
    return Path(out_dir) / f"task_{safe_id}_result.json"


def persist_result(result: ConversionResult, *, task_id: str, out_dir: Path | str = "out") -> Path:
    """
    Idempotent persistence:
    - Same task id -> same output path (last successful fetch wins)
    - Uses atomic write via temp file + replace
    """
    path = result_path(task_id, out_dir)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = result.model_dump(mode="json")
    data = json.dumps(payload, indent=2, ensure_ascii=False)

    tmp_path = path.with_suffix(".json.tmp")
    tmp_path.write_text(data, encoding="utf-8")
    tmp_path.replace(path)  # atomic on same filesystem

    return path


def load_result(path: Path | str) -> ConversionResult:
    return ConversionResult.model_validate_json(Path(path).read_text(encoding="utf-8"))
