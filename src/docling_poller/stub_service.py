from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request

from docling_poller.schema import ConvertSourcesRequest, FileSource, HttpSource

DEFAULT_STUB_API_KEY = "stub-api-key"


@dataclass
class StubTask:
    task_id: str
    sources: list
    fail: bool = False
    polls: int = 0
    status: str = "pending"

    @property
    def done(self) -> bool:
        return self.status in {"success", "failure"}


@dataclass
class StubState:
    api_key: str
    polls_until_done: int = 3
    chaos_rate: float = 0.0
    rng: random.Random = field(default_factory=random.Random)
    tasks: dict[str, StubTask] = field(default_factory=dict)

    def advance(self, t: StubTask) -> StubTask:
        if t.done:
            return t
        t.polls += 1
        if t.polls >= self.polls_until_done:
            t.status = "failure" if t.fail else "success"
        elif t.polls > 1:
            t.status = "started"
        return t


def _source_name(source) -> str:
    if isinstance(source, HttpSource):
        return source.url
    if isinstance(source, FileSource):
        return source.filename
    return "unknown"


def _build_result(t: StubTask) -> dict:
    names = [_source_name(s) for s in t.sources]
    chunks = [
        {
            "text": f"Converted content of {name}",
            "metadata": {"page": 1, "bbox": [0.0, 0.0, 612.0, 792.0], "source": name},
        }
        for name in names
    ]
    text = "\n\n".join(c["text"] for c in chunks)
    return {
        "status": "success",
        "chunks": chunks,
        "document": {
            "filename": names[0],
            "text_content": text,
            "json_content": {"name": names[0], "texts": [c["text"] for c in chunks]},
        },
        "processing_time": 0.0,
    }


def create_app(
    *,
    api_key: str = DEFAULT_STUB_API_KEY,
    polls_until_done: int = 3,
    chaos_rate: float = 0.0,
    chaos_seed: Optional[int] = None,
) -> FastAPI:
    """
    In-memory stand-in for the conversion service.
    Tasks go pending -> started -> success once polled `polls_until_done` times;
    with chaos enabled a task may end in failure instead.
    """
    if polls_until_done < 1:
        raise ValueError("polls_until_done must be >= 1")
    if not 0.0 <= chaos_rate <= 1.0:
        raise ValueError("chaos_rate must be between 0 and 1")

    app = FastAPI(
        title="docling-serve stub",
        version="0.1.0",
        description="Local emulation of the async conversion endpoints.",
    )
    app.state.stub = StubState(
        api_key=api_key,
        polls_until_done=polls_until_done,
        chaos_rate=chaos_rate,
        rng=random.Random(chaos_seed),
    )

    def get_state(request: Request) -> StubState:
        return request.app.state.stub

    def require_auth(
        state: StubState = Depends(get_state),
        authorization: Optional[str] = Header(default=None),
        x_api_key: Optional[str] = Header(default=None),
    ) -> None:
        # identity layer first, like the platform in front of the real service
        if not authorization or not authorization.startswith("Bearer ") or not authorization[7:].strip():
            raise HTTPException(status_code=403, detail="Forbidden")
        if x_api_key != state.api_key:
            raise HTTPException(status_code=401, detail="Invalid or missing API key")

    def lookup(task_id: str, state: StubState) -> StubTask:
        t = state.tasks.get(task_id)
        if t is None:
            raise HTTPException(status_code=404, detail="Task not found.")
        return t

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.post("/v1/convert/source/async", dependencies=[Depends(require_auth)])
    def convert_source_async(req: ConvertSourcesRequest, state: StubState = Depends(get_state)) -> dict:
        fail = state.chaos_rate > 0 and state.rng.random() < state.chaos_rate
        t = StubTask(task_id=str(uuid.uuid4()), sources=list(req.sources), fail=fail)
        state.tasks[t.task_id] = t
        return {
            "task_id": t.task_id,
            "task_type": "convert",
            "task_status": t.status,
            "task_position": len([x for x in state.tasks.values() if not x.done]) - 1,
            "task_meta": None,
        }

    @app.get("/v1/status/poll/{task_id}", dependencies=[Depends(require_auth)])
    def poll_status(task_id: str, state: StubState = Depends(get_state)) -> dict:
        t = state.advance(lookup(task_id, state))
        meta = None
        if t.status == "started":
            meta = {"num_docs": len(t.sources), "num_processed": 0}
        return {
            "task_id": t.task_id,
            "task_type": "convert",
            "task_status": t.status,
            "task_position": None,
            "task_meta": meta,
        }

    @app.get("/v1/result/{task_id}", dependencies=[Depends(require_auth)])
    def task_result(task_id: str, state: StubState = Depends(get_state)) -> dict:
        t = lookup(task_id, state)
        if t.status != "success":
            raise HTTPException(status_code=404, detail="Task result not found. Please wait for a completion status.")
        return _build_result(t)

    return app
