from typing import Any

from docling_poller.schema import ConversionResult

PREVIEW_CHARS = 200
POSITION_FIELDS = ("box", "page", "bbox")


def summarize_result(result: ConversionResult) -> dict[str, Any]:
    """Chunk count plus a look at the first chunk: its keys, a text preview and positional metadata."""
    summary: dict[str, Any] = {"total_chunks": len(result.chunks)}
    if not result.chunks:
        return summary

    first = result.chunks[0]
    summary["first_chunk_keys"] = sorted(first.model_dump().keys())
    summary["text_preview"] = first.text[:PREVIEW_CHARS]
    summary["metadata"] = first.metadata
    summary["positions"] = {
        field: {"present": first.metadata.get(field) is not None, "value": first.metadata.get(field)}
        for field in POSITION_FIELDS
    }
    return summary


def find_keys(payload: Any, *names: str) -> set[str]:
    """Which of `names` appear as a key anywhere in a nested JSON payload."""
    found: set[str] = set()
    stack = [payload]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            found.update(k for k in node if k in names)
            stack.extend(node.values())
        elif isinstance(node, list):
            stack.extend(node)
    return found
