from __future__ import annotations

import json
import secrets
import urllib.parse
from pathlib import Path
from typing import Any

import httpx

from auth import google_oauth2
from auth.models import Grant

from .constants import (
    DOCS_API_URL,
    DRIVE_API_URL,
    DRIVE_UPLOAD_URL,
    GOOGLE_DOC_MIME_TYPE,
    GOOGLE_FOLDER_MIME_TYPE,
    GOOGLE_SHEET_MIME_TYPE,
    GOOGLE_SLIDE_MIME_TYPE,
    LOGGER,
)
from .errors import BackendOperationError, MissingCredentials
from .http import RetryTransport, raise_for_google_error

FILE_SUMMARY_FIELDS = "id,name,mimeType,webViewLink"
FILE_DETAIL_FIELDS = "id,name,mimeType,createdTime,modifiedTime,size,webViewLink,parents,permissions,owners"
REVISION_FIELDS = "id,modifiedTime,size,keepForever,published,exportLinks"


def document_url(document_id: str) -> str:
    return f"https://docs.google.com/document/d/{document_id}/edit"


def _segment(value: str) -> str:
    return urllib.parse.quote(value, safe="")


def _quote_query_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _multipart_related(metadata: dict, content: str, mime_type: str) -> tuple[bytes, str]:
    boundary = f"gdmcp-{secrets.token_hex(12)}"
    lines = [
        f"--{boundary}",
        "Content-Type: application/json; charset=UTF-8",
        "",
        json.dumps(metadata),
        f"--{boundary}",
        f"Content-Type: {mime_type}",
        "",
        content,
        f"--{boundary}--",
        "",
    ]
    return "\r\n".join(lines).encode("utf-8"), f"multipart/related; boundary={boundary}"


class DriveClient:
    """Google Docs/Drive client bound to one Grant.

    The underlying httpx client is built on first use. Before every call the
    Grant's expiry is checked and, when it is within 60 seconds, the access
    token is refreshed and written back into the Grant in place. Concurrent
    calls on the same Grant may both refresh; the last writer wins.
    """

    def __init__(
        self,
        grant: Grant | None,
        *,
        client_id: str,
        client_secret: str,
        refresh_token_fn=google_oauth2.refresh_token,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        debug: bool = False,
        export_root: str | Path | None = None,
    ) -> None:
        self.grant = grant
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token_fn = refresh_token_fn
        self._transport = transport
        self._timeout = timeout
        self._max_retries = max_retries
        self._debug = debug
        self._export_root = Path(export_root).expanduser().resolve() if export_root else None
        self._client: httpx.AsyncClient | None = None

    # -- auth lifecycle --------------------------------------------------------

    def _build_client(self) -> httpx.AsyncClient:
        if self.grant is None or not (self.grant.access_token or self.grant.refresh_token):
            raise MissingCredentials()

        async def log_request(request: httpx.Request) -> None:
            if self._debug:
                LOGGER.info("Google API request %s %s", request.method, request.url)

        async def log_response(response: httpx.Response) -> None:
            if not self._debug:
                return
            LOGGER.info(
                "Google API response %s %s -> %s",
                response.request.method,
                response.request.url,
                response.status_code,
            )
            if response.status_code >= 400:
                body = await response.aread()
                text = body.decode("utf-8", errors="replace")
                if len(text) > 1000:
                    text = text[:1000] + "...<truncated>"
                LOGGER.warning("Google API error body: %s", text)

        retry_transport = RetryTransport(
            self._transport or httpx.AsyncHTTPTransport(),
            max_retries=self._max_retries,
            logger=LOGGER,
        )
        return httpx.AsyncClient(
            timeout=self._timeout,
            transport=retry_transport,
            event_hooks={"request": [log_request], "response": [log_response]},
        )

    async def ensure_authenticated(self) -> None:
        if self._client is None:
            self._client = self._build_client()
        if self.grant.is_expiring():
            await self._refresh()

    async def _refresh(self) -> None:
        if not self.grant.refresh_token:
            raise BackendOperationError(
                "Access token expired and no refresh token is available; re-auth required.",
                status_code=401,
            )
        try:
            refreshed = await self._refresh_token_fn(
                client_id=self._client_id,
                client_secret=self._client_secret,
                refresh_token=self.grant.refresh_token,
            )
        except Exception as error:
            raise BackendOperationError(
                f"Google token refresh failed; re-auth required: {error}",
                status_code=401,
            ) from error

        self.grant.apply_refresh(
            refreshed.access_token,
            refreshed.expires_at,
            refreshed.refresh_token,
        )
        LOGGER.info("Refreshed Google access token")

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        content: bytes | None = None,
        content_type: str | None = None,
    ) -> httpx.Response:
        await self.ensure_authenticated()
        headers = {"Authorization": f"Bearer {self.grant.access_token}"}
        if content_type:
            headers["Content-Type"] = content_type
        response = await self._client.request(
            method,
            url,
            params={k: v for k, v in (params or {}).items() if v is not None},
            json=json_body,
            content=content,
            headers=headers,
        )
        raise_for_google_error(response)
        return response

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "DriveClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- documents -------------------------------------------------------------

    async def create_document(self, title: str) -> dict:
        data = (
            await self._request("POST", f"{DOCS_API_URL}/documents", json_body={"title": title})
        ).json()
        return {
            "documentId": data.get("documentId"),
            "title": data.get("title"),
            "url": document_url(data.get("documentId", "")),
        }

    async def get_document(self, document_id: str) -> dict:
        data = (
            await self._request("GET", f"{DOCS_API_URL}/documents/{_segment(document_id)}")
        ).json()
        content = []
        for item in data.get("body", {}).get("content", []):
            paragraph = item.get("paragraph")
            text = ""
            if paragraph:
                text = "".join(
                    element.get("textRun", {}).get("content", "")
                    for element in paragraph.get("elements", [])
                )
            content.append({"type": "paragraph" if paragraph else "other", "text": text})
        return {
            "documentId": data.get("documentId"),
            "title": data.get("title"),
            "content": content,
        }

    async def _batch_update(self, document_id: str, requests: list[dict]) -> dict:
        response = await self._request(
            "POST",
            f"{DOCS_API_URL}/documents/{_segment(document_id)}:batchUpdate",
            json_body={"requests": requests},
        )
        return response.json()

    async def append_text(self, document_id: str, text: str) -> dict:
        await self._batch_update(
            document_id,
            [{"insertText": {"endOfSegmentLocation": {}, "text": text}}],
        )
        return {"documentId": document_id, "message": "Text appended successfully"}

    async def replace_text(self, document_id: str, find_text: str, replace_with_text: str) -> dict:
        data = await self._batch_update(
            document_id,
            [
                {
                    "replaceAllText": {
                        "replaceText": replace_with_text,
                        "containsText": {"text": find_text, "matchCase": False},
                    }
                }
            ],
        )
        replies = data.get("replies") or [{}]
        occurrences = replies[0].get("replaceAllText", {}).get("occurrencesChanged", 0)
        return {
            "documentId": document_id,
            "occurrencesChanged": occurrences,
            "message": "Text replaced successfully",
        }

    async def list_documents(self, max_results: int = 10) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files",
                params={
                    "q": f"mimeType='{GOOGLE_DOC_MIME_TYPE}' and trashed=false",
                    "spaces": "drive",
                    "fields": "files(id,name,createdTime,modifiedTime)",
                    "pageSize": max_results,
                },
            )
        ).json()
        files = data.get("files", [])
        return {
            "totalDocs": len(files),
            "documents": [
                {
                    "documentId": item.get("id"),
                    "title": item.get("name"),
                    "createdTime": item.get("createdTime"),
                    "modifiedTime": item.get("modifiedTime"),
                    "url": document_url(item.get("id", "")),
                }
                for item in files
            ],
        }

    async def delete_document(self, document_id: str) -> dict:
        await self._request("DELETE", f"{DRIVE_API_URL}/files/{_segment(document_id)}")
        return {"success": True, "documentId": document_id, "message": "Document deleted successfully"}

    async def export_pdf(self, document_id: str, output_path: str) -> dict:
        destination = self._export_destination(output_path)
        response = await self._request(
            "GET",
            f"{DRIVE_API_URL}/files/{_segment(document_id)}/export",
            params={"mimeType": "application/pdf"},
        )
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
        return {
            "success": True,
            "documentId": document_id,
            "outputPath": str(destination),
            "bytes": len(response.content),
            "message": "PDF exported successfully",
        }

    def _export_destination(self, output_path: str) -> Path:
        if self._export_root is None:
            return Path(output_path).expanduser()

        destination = (self._export_root / output_path).resolve()
        if destination == self._export_root or not destination.is_relative_to(self._export_root):
            raise BackendOperationError(
                f"outputPath must stay inside the export directory: {output_path}",
                status_code=400,
            )
        return destination

    # -- files -----------------------------------------------------------------

    async def list_files(
        self,
        max_results: int = 50,
        mime_type: str | None = None,
        query: str | None = None,
        order_by: str = "modifiedTime desc",
    ) -> dict:
        search = "trashed=false"
        if mime_type:
            search += f" and mimeType='{_quote_query_value(mime_type)}'"
        if query:
            search += f" and name contains '{_quote_query_value(query)}'"

        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files",
                params={
                    "q": search,
                    "spaces": "drive",
                    "fields": "files(id,name,mimeType,createdTime,modifiedTime,size,webViewLink,parents)",
                    "pageSize": max_results,
                    "orderBy": order_by,
                },
            )
        ).json()
        files = data.get("files", [])
        return {
            "totalFiles": len(files),
            "files": [
                {
                    "id": item.get("id"),
                    "name": item.get("name"),
                    "mimeType": item.get("mimeType"),
                    "createdTime": item.get("createdTime"),
                    "modifiedTime": item.get("modifiedTime"),
                    "size": item.get("size"),
                    "webViewLink": item.get("webViewLink"),
                    "parents": item.get("parents"),
                    "isGoogleDoc": item.get("mimeType") == GOOGLE_DOC_MIME_TYPE,
                    "isGoogleSheet": item.get("mimeType") == GOOGLE_SHEET_MIME_TYPE,
                    "isGoogleSlide": item.get("mimeType") == GOOGLE_SLIDE_MIME_TYPE,
                    "isFolder": item.get("mimeType") == GOOGLE_FOLDER_MIME_TYPE,
                }
                for item in files
            ],
        }

    async def get_file(self, file_id: str, fields: str | None = None) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}",
                params={"fields": fields or FILE_DETAIL_FIELDS},
            )
        ).json()
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "mimeType": data.get("mimeType"),
            "createdTime": data.get("createdTime"),
            "modifiedTime": data.get("modifiedTime"),
            "size": data.get("size"),
            "webViewLink": data.get("webViewLink"),
            "parents": data.get("parents"),
            "permissions": data.get("permissions"),
            "owners": data.get("owners"),
        }

    @staticmethod
    def _file_summary(data: dict, message: str) -> dict:
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "mimeType": data.get("mimeType"),
            "webViewLink": data.get("webViewLink"),
            "message": message,
        }

    async def create_file(
        self,
        name: str,
        mime_type: str,
        content: str | None = None,
        parents: list[str] | None = None,
    ) -> dict:
        metadata: dict[str, Any] = {"name": name}
        if parents:
            metadata["parents"] = parents

        if content:
            body, content_type = _multipart_related(metadata, content, mime_type)
            response = await self._request(
                "POST",
                f"{DRIVE_UPLOAD_URL}/files",
                params={"uploadType": "multipart", "fields": FILE_SUMMARY_FIELDS},
                content=body,
                content_type=content_type,
            )
        else:
            response = await self._request(
                "POST",
                f"{DRIVE_API_URL}/files",
                params={"fields": FILE_SUMMARY_FIELDS},
                json_body={**metadata, "mimeType": mime_type},
            )
        return self._file_summary(response.json(), "File created successfully")

    async def update_file(
        self,
        file_id: str,
        name: str | None = None,
        content: str | None = None,
        add_parents: list[str] | None = None,
        remove_parents: list[str] | None = None,
    ) -> dict:
        metadata: dict[str, Any] = {}
        if name:
            metadata["name"] = name
        params = {
            "fields": FILE_SUMMARY_FIELDS,
            "addParents": ",".join(add_parents) if add_parents else None,
            "removeParents": ",".join(remove_parents) if remove_parents else None,
        }

        if content:
            body, content_type = _multipart_related(metadata, content, "text/plain")
            response = await self._request(
                "PATCH",
                f"{DRIVE_UPLOAD_URL}/files/{_segment(file_id)}",
                params={**params, "uploadType": "multipart"},
                content=body,
                content_type=content_type,
            )
        else:
            response = await self._request(
                "PATCH",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}",
                params=params,
                json_body=metadata,
            )
        return self._file_summary(response.json(), "File updated successfully")

    async def delete_file(self, file_id: str) -> dict:
        await self._request("DELETE", f"{DRIVE_API_URL}/files/{_segment(file_id)}")
        return {"fileId": file_id, "message": "File deleted successfully"}

    async def copy_file(
        self,
        file_id: str,
        name: str | None = None,
        parents: list[str] | None = None,
    ) -> dict:
        metadata: dict[str, Any] = {}
        if name:
            metadata["name"] = name
        if parents:
            metadata["parents"] = parents
        response = await self._request(
            "POST",
            f"{DRIVE_API_URL}/files/{_segment(file_id)}/copy",
            params={"fields": FILE_SUMMARY_FIELDS},
            json_body=metadata,
        )
        return self._file_summary(response.json(), "File copied successfully")

    async def move_file(self, file_id: str, add_parents: list[str], remove_parents: list[str]) -> dict:
        data = (
            await self._request(
                "PATCH",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}",
                params={
                    "addParents": ",".join(add_parents),
                    "removeParents": ",".join(remove_parents),
                    "fields": "id,name,parents",
                },
                json_body={},
            )
        ).json()
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "parents": data.get("parents"),
            "message": "File moved successfully",
        }

    # -- permissions -----------------------------------------------------------

    async def list_permissions(self, file_id: str) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/permissions",
                params={"fields": "permissions(id,type,role,emailAddress,displayName)"},
            )
        ).json()
        return {
            "permissions": [
                {
                    "id": item.get("id"),
                    "type": item.get("type"),
                    "role": item.get("role"),
                    "emailAddress": item.get("emailAddress"),
                    "displayName": item.get("displayName"),
                }
                for item in data.get("permissions", [])
            ]
        }

    async def create_permission(
        self,
        file_id: str,
        email_address: str | None,
        role: str,
        permission_type: str,
    ) -> dict:
        permission: dict[str, Any] = {"type": permission_type, "role": role}
        if email_address and permission_type in {"user", "group"}:
            permission["emailAddress"] = email_address
        data = (
            await self._request(
                "POST",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/permissions",
                params={"fields": "id,type,role,emailAddress"},
                json_body=permission,
            )
        ).json()
        return {
            "id": data.get("id"),
            "type": data.get("type"),
            "role": data.get("role"),
            "emailAddress": data.get("emailAddress"),
            "message": "Permission created successfully",
        }

    async def delete_permission(self, file_id: str, permission_id: str) -> dict:
        await self._request(
            "DELETE",
            f"{DRIVE_API_URL}/files/{_segment(file_id)}/permissions/{_segment(permission_id)}",
        )
        return {"fileId": file_id, "permissionId": permission_id, "message": "Permission deleted successfully"}

    # -- revisions -------------------------------------------------------------

    @staticmethod
    def _revision(data: dict) -> dict:
        return {
            "id": data.get("id"),
            "modifiedTime": data.get("modifiedTime"),
            "size": data.get("size"),
            "keepForever": data.get("keepForever"),
            "published": data.get("published"),
            "exportLinks": data.get("exportLinks"),
        }

    async def list_revisions(self, file_id: str) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/revisions",
                params={"fields": f"revisions({REVISION_FIELDS})"},
            )
        ).json()
        return {"revisions": [self._revision(item) for item in data.get("revisions", [])]}

    async def get_revision(self, file_id: str, revision_id: str) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/revisions/{_segment(revision_id)}",
                params={"fields": REVISION_FIELDS},
            )
        ).json()
        return self._revision(data)

    async def delete_revision(self, file_id: str, revision_id: str) -> dict:
        await self._request(
            "DELETE",
            f"{DRIVE_API_URL}/files/{_segment(file_id)}/revisions/{_segment(revision_id)}",
        )
        return {"fileId": file_id, "revisionId": revision_id, "message": "Revision deleted successfully"}

    # -- comments --------------------------------------------------------------

    async def list_comments(self, file_id: str, max_results: int = 100) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/comments",
                params={
                    "pageSize": max_results,
                    "fields": "comments(id,content,createdTime,modifiedTime,author,quotedFileContent)",
                },
            )
        ).json()
        return {
            "comments": [
                {
                    "id": item.get("id"),
                    "content": item.get("content"),
                    "createdTime": item.get("createdTime"),
                    "modifiedTime": item.get("modifiedTime"),
                    "author": item.get("author"),
                    "quotedFileContent": item.get("quotedFileContent"),
                }
                for item in data.get("comments", [])
            ]
        }

    async def create_comment(
        self,
        file_id: str,
        content: str,
        quoted_file_content: str | None = None,
    ) -> dict:
        comment: dict[str, Any] = {"content": content}
        if quoted_file_content:
            comment["quotedFileContent"] = {"value": quoted_file_content}
        data = (
            await self._request(
                "POST",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/comments",
                params={"fields": "id,content,createdTime,author"},
                json_body=comment,
            )
        ).json()
        return {
            "id": data.get("id"),
            "content": data.get("content"),
            "createdTime": data.get("createdTime"),
            "author": data.get("author"),
            "message": "Comment created successfully",
        }

    async def delete_comment(self, file_id: str, comment_id: str) -> dict:
        await self._request(
            "DELETE",
            f"{DRIVE_API_URL}/files/{_segment(file_id)}/comments/{_segment(comment_id)}",
        )
        return {"fileId": file_id, "commentId": comment_id, "message": "Comment deleted successfully"}

    # -- replies ---------------------------------------------------------------

    async def list_replies(self, file_id: str, comment_id: str) -> dict:
        data = (
            await self._request(
                "GET",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/comments/{_segment(comment_id)}/replies",
                params={"fields": "replies(id,content,createdTime,modifiedTime,author)"},
            )
        ).json()
        return {
            "replies": [
                {
                    "id": item.get("id"),
                    "content": item.get("content"),
                    "createdTime": item.get("createdTime"),
                    "modifiedTime": item.get("modifiedTime"),
                    "author": item.get("author"),
                }
                for item in data.get("replies", [])
            ]
        }

    async def create_reply(self, file_id: str, comment_id: str, content: str) -> dict:
        data = (
            await self._request(
                "POST",
                f"{DRIVE_API_URL}/files/{_segment(file_id)}/comments/{_segment(comment_id)}/replies",
                params={"fields": "id,content,createdTime,author"},
                json_body={"content": content},
            )
        ).json()
        return {
            "id": data.get("id"),
            "content": data.get("content"),
            "createdTime": data.get("createdTime"),
            "author": data.get("author"),
            "message": "Reply created successfully",
        }

    async def delete_reply(self, file_id: str, comment_id: str, reply_id: str) -> dict:
        await self._request(
            "DELETE",
            f"{DRIVE_API_URL}/files/{_segment(file_id)}/comments/{_segment(comment_id)}/replies/{_segment(reply_id)}",
        )
        return {
            "fileId": file_id,
            "commentId": comment_id,
            "replyId": reply_id,
            "message": "Reply deleted successfully",
        }
