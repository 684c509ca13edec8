import json
import time

import httpx
import pytest

from auth.models import Grant
from gdmcp.drive_client import DriveClient
from gdmcp.errors import BackendOperationError, MissingCredentials
from tests.oauth_helpers import _grant, _token_response


class RefreshRecorder:
    def __init__(self, *, error: Exception | None = None, refresh_token: str | None = None) -> None:
        self.calls: list[dict] = []
        self.error = error
        self.refresh_token = refresh_token

    async def __call__(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return _token_response(access_token="access-2", refresh_token=self.refresh_token)


class GoogleRecorder:
    def __init__(self, responses: dict[tuple[str, str], httpx.Response] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.get((request.method, request.url.path))
        if response is not None:
            return response
        return httpx.Response(200, json={})

    def json_body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def _client(grant, google: GoogleRecorder, refresh: RefreshRecorder | None = None) -> DriveClient:
    return DriveClient(
        grant,
        client_id="google-client",
        client_secret="google-secret",
        refresh_token_fn=refresh or RefreshRecorder(),
        transport=httpx.MockTransport(google),
        max_retries=0,
    )


@pytest.mark.asyncio
async def test_create_document_returns_id_and_url() -> None:
    google = GoogleRecorder(
        {("POST", "/v1/documents"): httpx.Response(200, json={"documentId": "doc-1", "title": "Notes"})}
    )

    async with _client(_grant(), google) as client:
        result = await client.create_document("Notes")

    assert result == {
        "documentId": "doc-1",
        "title": "Notes",
        "url": "https://docs.google.com/document/d/doc-1/edit",
    }
    assert google.requests[0].url.host == "docs.googleapis.com"
    assert google.requests[0].headers["authorization"] == "Bearer access-1"
    assert google.json_body() == {"title": "Notes"}


@pytest.mark.asyncio
async def test_fresh_grant_is_not_refreshed() -> None:
    refresh = RefreshRecorder()
    google = GoogleRecorder()

    async with _client(_grant(expires_in=120), google, refresh) as client:
        await client.delete_file("f1")

    assert refresh.calls == []


@pytest.mark.asyncio
async def test_expiring_grant_is_refreshed_once() -> None:
    grant = _grant(expires_in=30)
    refresh = RefreshRecorder()
    google = GoogleRecorder()

    async with _client(grant, google, refresh) as client:
        await client.delete_file("f1")
        await client.delete_file("f2")

    assert refresh.calls == [
        {
            "client_id": "google-client",
            "client_secret": "google-secret",
            "refresh_token": "refresh-1",
        }
    ]
    assert [request.headers["authorization"] for request in google.requests] == [
        "Bearer access-2",
        "Bearer access-2",
    ]
    assert grant.access_token == "access-2"
    assert grant.refresh_token == "refresh-1"
    assert grant.expires_at > time.time() + 60


@pytest.mark.asyncio
async def test_refresh_keeps_rotated_refresh_token() -> None:
    grant = _grant(expires_in=-10)

    async with _client(grant, GoogleRecorder(), RefreshRecorder(refresh_token="refresh-2")) as client:
        await client.delete_file("f1")

    assert grant.refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_refresh_failure_requires_reauth() -> None:
    google = GoogleRecorder()
    refresh = RefreshRecorder(error=RuntimeError("Token request failed with status 400: invalid_grant"))

    async with _client(_grant(expires_in=0), google, refresh) as client:
        with pytest.raises(BackendOperationError) as error:
            await client.delete_file("f1")

    assert error.value.status_code == 401
    assert "re-auth required" in error.value.message
    assert google.requests == []


@pytest.mark.asyncio
async def test_expired_grant_without_refresh_token() -> None:
    grant = Grant(access_token="stale", refresh_token="", expires_at=time.time() - 5)

    async with _client(grant, GoogleRecorder()) as client:
        with pytest.raises(BackendOperationError, match="no refresh token"):
            await client.delete_file("f1")


@pytest.mark.asyncio
async def test_missing_grant_raises_missing_credentials() -> None:
    async with _client(None, GoogleRecorder()) as client:
        with pytest.raises(MissingCredentials):
            await client.list_files()


@pytest.mark.asyncio
async def test_google_error_is_translated() -> None:
    google = GoogleRecorder(
        {
            ("GET", "/drive/v3/files/missing"): httpx.Response(
                404, json={"error": {"code": 404, "message": "File not found: missing."}}
            )
        }
    )

    async with _client(_grant(), google) as client:
        with pytest.raises(BackendOperationError) as error:
            await client.get_file("missing")

    assert error.value.status_code == 404
    assert error.value.message == (
        "The requested file or document was not found. (File not found: missing.)"
    )


@pytest.mark.asyncio
async def test_move_file_sends_parent_query_params() -> None:
    google = GoogleRecorder(
        {
            ("PATCH", "/drive/v3/files/f1"): httpx.Response(
                200, json={"id": "f1", "name": "report.txt", "parents": ["p2"]}
            )
        }
    )

    async with _client(_grant(), google) as client:
        result = await client.move_file("f1", ["p2", "p3"], ["p1"])

    params = google.requests[0].url.params
    assert params["addParents"] == "p2,p3"
    assert params["removeParents"] == "p1"
    assert result["parents"] == ["p2"]
    assert result["message"] == "File moved successfully"


@pytest.mark.asyncio
async def test_append_text_targets_end_of_body() -> None:
    google = GoogleRecorder()

    async with _client(_grant(), google) as client:
        await client.append_text("doc-1", "more")

    assert google.requests[0].url.path == "/v1/documents/doc-1:batchUpdate"
    assert google.json_body() == {
        "requests": [{"insertText": {"endOfSegmentLocation": {}, "text": "more"}}]
    }


@pytest.mark.asyncio
async def test_replace_text_reports_occurrences() -> None:
    google = GoogleRecorder(
        {
            ("POST", "/v1/documents/doc-1:batchUpdate"): httpx.Response(
                200, json={"replies": [{"replaceAllText": {"occurrencesChanged": 3}}]}
            )
        }
    )

    async with _client(_grant(), google) as client:
        result = await client.replace_text("doc-1", "draft", "final")

    assert result["occurrencesChanged"] == 3


@pytest.mark.asyncio
async def test_get_document_flattens_paragraphs() -> None:
    google = GoogleRecorder(
        {
            ("GET", "/v1/documents/doc-1"): httpx.Response(
                200,
                json={
                    "documentId": "doc-1",
                    "title": "Notes",
                    "body": {
                        "content": [
                            {"sectionBreak": {}},
                            {
                                "paragraph": {
                                    "elements": [
                                        {"textRun": {"content": "Hello "}},
                                        {"textRun": {"content": "world\n"}},
                                    ]
                                }
                            },
                        ]
                    },
                },
            )
        }
    )

    async with _client(_grant(), google) as client:
        result = await client.get_document("doc-1")

    assert result["content"] == [
        {"type": "other", "text": ""},
        {"type": "paragraph", "text": "Hello world\n"},
    ]


@pytest.mark.asyncio
async def test_list_files_escapes_name_query() -> None:
    google = GoogleRecorder(
        {
            ("GET", "/drive/v3/files"): httpx.Response(
                200,
                json={"files": [{"id": "d1", "mimeType": "application/vnd.google-apps.folder"}]},
            )
        }
    )

    async with _client(_grant(), google) as client:
        result = await client.list_files(query="Bob's")

    assert google.requests[0].url.params["q"] == "trashed=false and name contains 'Bob\\'s'"
    assert result["totalFiles"] == 1
    assert result["files"][0]["isFolder"] is True


@pytest.mark.asyncio
async def test_create_file_with_content_uses_multipart_upload() -> None:
    google = GoogleRecorder(
        {("POST", "/upload/drive/v3/files"): httpx.Response(200, json={"id": "f1", "name": "a.txt"})}
    )

    async with _client(_grant(), google) as client:
        result = await client.create_file("a.txt", "text/plain", content="hello", parents=["p1"])

    request = google.requests[0]
    assert request.url.params["uploadType"] == "multipart"
    assert request.headers["content-type"].startswith("multipart/related; boundary=")
    assert b'"parents": ["p1"]' in request.content
    assert b"hello" in request.content
    assert result["id"] == "f1"


@pytest.mark.asyncio
async def test_create_permission_for_anyone_omits_email() -> None:
    google = GoogleRecorder()

    async with _client(_grant(), google) as client:
        await client.create_permission("f1", "someone@example.com", "reader", "anyone")
        await client.create_permission("f1", "someone@example.com", "writer", "user")

    assert google.json_body(0) == {"type": "anyone", "role": "reader"}
    assert google.json_body(1) == {
        "type": "user",
        "role": "writer",
        "emailAddress": "someone@example.com",
    }


@pytest.mark.asyncio
async def test_create_comment_quotes_file_content() -> None:
    google = GoogleRecorder()

    async with _client(_grant(), google) as client:
        await client.create_comment("f1", "Looks good", "first paragraph")

    assert google.json_body() == {
        "content": "Looks good",
        "quotedFileContent": {"value": "first paragraph"},
    }


@pytest.mark.asyncio
async def test_export_pdf_writes_file(tmp_path) -> None:
    google = GoogleRecorder(
        {("GET", "/drive/v3/files/doc-1/export"): httpx.Response(200, content=b"%PDF-1.4")}
    )
    destination = tmp_path / "out" / "doc.pdf"

    async with _client(_grant(), google) as client:
        result = await client.export_pdf("doc-1", str(destination))

    assert destination.read_bytes() == b"%PDF-1.4"
    assert result["bytes"] == 8
    assert google.requests[0].url.params["mimeType"] == "application/pdf"


def _rooted_client(grant, google: GoogleRecorder, export_root) -> DriveClient:
    return DriveClient(
        grant,
        client_id="google-client",
        client_secret="google-secret",
        refresh_token_fn=RefreshRecorder(),
        transport=httpx.MockTransport(google),
        max_retries=0,
        export_root=export_root,
    )


@pytest.mark.asyncio
async def test_export_pdf_resolves_relative_path_under_export_root(tmp_path) -> None:
    google = GoogleRecorder(
        {("GET", "/drive/v3/files/doc-1/export"): httpx.Response(200, content=b"%PDF-1.4")}
    )
    export_root = tmp_path / "exports"

    async with _rooted_client(_grant(), google, export_root) as client:
        result = await client.export_pdf("doc-1", "reports/q3.pdf")

    written = export_root.resolve() / "reports" / "q3.pdf"
    assert written.read_bytes() == b"%PDF-1.4"
    assert result["outputPath"] == str(written)


@pytest.mark.asyncio
@pytest.mark.parametrize("output_path", ["../../escaped.pdf", "reports/../../escaped.pdf", "."])
async def test_export_pdf_rejects_paths_leaving_export_root(tmp_path, output_path) -> None:
    google = GoogleRecorder()
    export_root = tmp_path / "a" / "exports"

    async with _rooted_client(_grant(), google, export_root) as client:
        with pytest.raises(BackendOperationError) as error:
            await client.export_pdf("doc-1", output_path)

    assert error.value.status_code == 400
    assert google.requests == []
    assert not (tmp_path / "escaped.pdf").exists()
    assert not (tmp_path / "a" / "escaped.pdf").exists()


@pytest.mark.asyncio
async def test_export_pdf_rejects_absolute_path_outside_export_root(tmp_path) -> None:
    google = GoogleRecorder()
    outside = tmp_path / "elsewhere" / "doc.pdf"

    async with _rooted_client(_grant(), google, tmp_path / "exports") as client:
        with pytest.raises(BackendOperationError):
            await client.export_pdf("doc-1", str(outside))

    assert google.requests == []
    assert not outside.exists()


@pytest.mark.asyncio
async def test_path_ids_are_escaped_as_single_segments() -> None:
    google = GoogleRecorder()

    async with _client(_grant(), google) as client:
        await client.delete_file("f1/permissions/p9")
        await client.delete_permission("f1", "../p9")

    first, second = google.requests
    assert first.method == "DELETE"
    assert first.url.raw_path == b"/drive/v3/files/f1%2Fpermissions%2Fp9"
    assert second.url.raw_path == b"/drive/v3/files/f1/permissions/..%2Fp9"
