import pytest
from fastapi.testclient import TestClient

from docling_poller.stub_service import DEFAULT_STUB_API_KEY, create_app

AUTH = {"Authorization": "Bearer local-token", "X-Api-Key": DEFAULT_STUB_API_KEY}
BODY = {"sources": [{"kind": "http", "url": "https://arxiv.org/pdf/2501.17887"}]}


@pytest.fixture()
def api():
    return TestClient(create_app(polls_until_done=3))


def submit(api, headers=AUTH, body=BODY):
    return api.post("/v1/convert/source/async", json=body, headers=headers)


def test_health_needs_no_credentials(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_missing_identity_token_is_forbidden(api):
    r = submit(api, headers={"X-Api-Key": DEFAULT_STUB_API_KEY})
    assert r.status_code == 403


def test_missing_or_wrong_api_key_is_unauthorized(api):
    assert submit(api, headers={"Authorization": "Bearer t"}).status_code == 401
    assert submit(api, headers={"Authorization": "Bearer t", "X-Api-Key": "nope"}).status_code == 401


def test_task_walks_pending_started_success(api):
    task_id = submit(api).json()["task_id"]

    seen = [api.get(f"/v1/status/poll/{task_id}", headers=AUTH).json() for _ in range(4)]

    assert [s["task_status"] for s in seen] == ["pending", "started", "success", "success"]
    assert seen[1]["task_meta"] == {"num_docs": 1, "num_processed": 0}


def test_result_only_after_success(api):
    task_id = submit(api).json()["task_id"]

    assert api.get(f"/v1/result/{task_id}", headers=AUTH).status_code == 404
    for _ in range(3):
        api.get(f"/v1/status/poll/{task_id}", headers=AUTH)

    result = api.get(f"/v1/result/{task_id}", headers=AUTH).json()
    assert len(result["chunks"]) == 1
    assert result["chunks"][0]["metadata"]["page"] == 1
    assert "json_content" in result["document"]
    assert "text_content" in result["document"]


def test_unknown_task_is_404(api):
    assert api.get("/v1/status/poll/missing", headers=AUTH).status_code == 404


def test_chaos_rate_one_fails_every_task():
    api = TestClient(create_app(polls_until_done=1, chaos_rate=1.0, chaos_seed=7))
    task_id = submit(api).json()["task_id"]

    assert api.get(f"/v1/status/poll/{task_id}", headers=AUTH).json()["task_status"] == "failure"
    assert api.get(f"/v1/result/{task_id}", headers=AUTH).status_code == 404


def test_empty_sources_are_rejected(api):
    assert submit(api, body={"sources": []}).status_code == 422


def test_bad_configuration_is_rejected():
    with pytest.raises(ValueError):
        create_app(polls_until_done=0)
    with pytest.raises(ValueError):
        create_app(chaos_rate=1.5)


def test_default_app_reports_started_before_success():
    api = TestClient(create_app())
    task_id = submit(api).json()["task_id"]

    seen = [api.get(f"/v1/status/poll/{task_id}", headers=AUTH).json()["task_status"] for _ in range(3)]

    assert seen == ["pending", "started", "success"]
