import json

import httpx
import pytest

from autoweave.merge_client import (
    MERGE_PATH,
    EmptyMergeOutput,
    FileTokenStorage,
    MemoryTokenStorage,
    MergeClient,
    MergeServiceError,
    MissingInputError,
    NetworkFailure,
    Session,
)

MERGED = "date,project_name,amount,duration_hours\n2024-01-01,A,100,2\n"


def _client(handler, token=None) -> MergeClient:
    transport = httpx.MockTransport(handler)
    http = httpx.Client(base_url="https://merge.test", transport=transport)
    return MergeClient(session=Session(MemoryTokenStorage(token)), client=http)


def test_merge_posts_multipart_with_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.read()
        return httpx.Response(200, json={"download_csv": MERGED, "stats": {"rows": 1}, "mode": "full"})

    result = _client(handler, token="tok-123").merge("a,b\n1,2\n", ("incomes.csv", b"c,d\n3,4\n"))

    assert seen["path"] == MERGE_PATH
    assert seen["auth"] == "Bearer tok-123"
    assert b'name="time_entries_csv"' in seen["body"]
    assert b'name="incomes_csv"' in seen["body"]
    assert b'name="projects_csv"' not in seen["body"]
    assert result.download_csv == MERGED
    assert result.stats == {"rows": 1}
    assert result.mode == "full"


def test_optional_projects_file_and_anonymous_session(tmp_path):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = request.read()
        return httpx.Response(200, json={"download_csv": MERGED})

    projects = tmp_path / "projects.csv"
    projects.write_text("id,name\n1,A\n", encoding="utf-8")

    _client(handler).merge("t\n", "i\n", projects)

    assert seen["auth"] is None
    assert b'filename="projects.csv"' in seen["body"]


def test_both_required_files_must_be_present():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(MissingInputError):
        _client(handler).merge("t\n", None)
    with pytest.raises(MissingInputError):
        _client(handler).merge("", "i\n")


def test_http_error_status_is_reported():
    client = _client(lambda request: httpx.Response(500, text="merge exploded"))

    with pytest.raises(MergeServiceError) as exc_info:
        client.merge("t\n", "i\n")

    assert exc_info.value.status_code == 500
    assert "merge exploded" in str(exc_info.value)


def test_missing_download_csv_is_empty_output():
    client = _client(lambda request: httpx.Response(200, json={"mode": "preview_only", "preview_csv": "x"}))

    with pytest.raises(EmptyMergeOutput) as exc_info:
        client.merge("t\n", "i\n")

    assert exc_info.value.mode == "preview_only"


def test_network_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(NetworkFailure):
        _client(handler).merge("t\n", "i\n")


def test_non_json_response():
    client = _client(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(MergeServiceError):
        client.merge("t\n", "i\n")


def test_file_token_storage_round_trip(tmp_path):
    path = tmp_path / "auth" / "session.json"
    session = Session(FileTokenStorage(path))
    assert not session.signed_in

    session.sign_in("abc")
    assert json.loads(path.read_text(encoding="utf-8")) == {"token": "abc"}
    assert Session(FileTokenStorage(path)).headers() == {"Authorization": "Bearer abc"}

    session.sign_out()
    assert not path.exists()
    assert Session(FileTokenStorage(path)).token is None


def test_corrupt_token_file_is_ignored(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("{not json", encoding="utf-8")

    assert FileTokenStorage(path).load() is None
