import json
from collections import defaultdict

import pytest
import requests

from docling_poller.client import ServeClient

BASE_URL = "https://docling.example.test"

ENV_VARS = [
    "SERVICE_URL",
    "GCP_PROJECT_ID",
    "SERVICE_NAME",
    "REGION",
    "DOCLING_API_KEY",
    "DOCLING_IDENTITY_TOKEN",
    "DOCLING_API_KEY_SECRET",
    "POLL_MAX_ATTEMPTS",
    "POLL_INTERVAL_SECONDS",
    "REQUEST_TIMEOUT_SECONDS",
    "OUTPUT_DIR",
    "SMOKE_SOURCE_URL",
    "SMOKE_MAX_ATTEMPTS",
    "LOG_LEVEL",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # a developer's .env must not leak into the tests
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        return json.loads(self.text)


class FakeSession:
    """
    Scripted stand-in for requests.Session.
    Responses are queued per path; the last one repeats once the queue is drained.
    """

    def __init__(self):
        self.routes = defaultdict(list)
        self.calls = []

    def add(self, path, *responses):
        self.routes[path].extend(responses)
        return self

    def statuses(self, path, *statuses, meta=None):
        for s in statuses:
            body = {"task_id": "t", "task_status": s}
            if meta is not None:
                body["task_meta"] = meta
            self.add(path, FakeResponse(200, body))
        return self

    def request(self, method, url, headers=None, json=None, timeout=None):
        path = url[len(BASE_URL):]
        self.calls.append({"method": method, "path": path, "headers": dict(headers or {}), "json": json})
        queue = self.routes.get(path)
        if not queue:
            raise requests.ConnectionError(f"no route for {path}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def paths(self, method=None):
        return [c["path"] for c in self.calls if method is None or c["method"] == method]


class FakeSleep:
    def __init__(self, clock=None):
        self.calls = []
        self.clock = clock

    def __call__(self, seconds):
        self.calls.append(seconds)
        if self.clock is not None:
            self.clock.now += seconds


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture(scope="session")
def prefect_harness():
    # flows run against a throwaway local Prefect API
    from prefect.testing.utilities import prefect_test_harness

    with prefect_test_harness():
        yield


@pytest.fixture()
def session():
    return FakeSession()


@pytest.fixture()
def client(session):
    return ServeClient(BASE_URL, api_key="key-123", identity_token="tok-abc", session=session)


@pytest.fixture()
def sleep():
    return FakeSleep()


def status_path(task_id):
    return f"/v1/status/poll/{task_id}"


def result_path(task_id):
    return f"/v1/result/{task_id}"


SAMPLE_RESULT = {
    "chunks": [
        {"text": "Docling Technical Report. " * 20, "metadata": {"page": 1, "bbox": [10, 20, 300, 400]}},
        {"text": "Second chunk", "metadata": {}},
    ],
    "document": {"json_content": {"name": "doc"}, "text_content": "..."},
}
