from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .drive_client import DriveClient


class ToolArguments(BaseModel):
    """Base for tool argument models; wire names are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- documents -----------------------------------------------------------------


class CreateDocumentArgs(ToolArguments):
    title: str = Field(description="Document title")


class DocumentArgs(ToolArguments):
    document_id: str = Field(description="Google Doc ID")


class AppendTextArgs(DocumentArgs):
    text: str = Field(description="Text to append")


class ReplaceTextArgs(DocumentArgs):
    find_text: str = Field(description="Text to find")
    replace_with_text: str = Field(description="Text to replace with")


class ListDocumentsArgs(ToolArguments):
    max_results: int = Field(10, ge=1, le=1000, description="Maximum number of documents to return")


class ExportPdfArgs(DocumentArgs):
    output_path: str = Field(description="Path to save the PDF file")


# -- files -----------------------------------------------------------------------


class ListFilesArgs(ToolArguments):
    max_results: int = Field(50, ge=1, le=1000, description="Maximum number of files to return")
    mime_type: str | None = Field(None, description="Filter by MIME type")
    query: str | None = Field(None, description="Only files whose name contains this text")
    order_by: str = Field("modifiedTime desc", description="Order results by field")


class FileArgs(ToolArguments):
    file_id: str = Field(description="Google Drive file ID")


class GetFileArgs(FileArgs):
    fields: str | None = Field(None, description="Fields to return")


class CreateFileArgs(ToolArguments):
    name: str = Field(description="File name")
    mime_type: str = Field(description="MIME type of the file")
    content: str | None = Field(None, description="File content")
    parents: list[str] | None = Field(None, description="Parent folder IDs")


class UpdateFileArgs(FileArgs):
    name: str | None = Field(None, description="New file name")
    content: str | None = Field(None, description="New file content")
    add_parents: list[str] | None = Field(None, description="Add to these folders")
    remove_parents: list[str] | None = Field(None, description="Remove from these folders")


class CopyFileArgs(FileArgs):
    name: str | None = Field(None, description="Name for the copied file")
    parents: list[str] | None = Field(None, description="Destination folder IDs")


class MoveFileArgs(FileArgs):
    add_parents: list[str] = Field(description="Add to these folders")
    remove_parents: list[str] = Field(description="Remove from these folders")


# -- sub-resources ---------------------------------------------------------------


class CreatePermissionArgs(FileArgs):
    email_address: str | None = Field(None, description="Email address to share with")
    role: Literal["reader", "writer", "commenter", "owner"] = Field(description="Permission role")
    permission_type: Literal["user", "group", "domain", "anyone"] = Field(
        alias="type", description="Permission type"
    )


class PermissionArgs(FileArgs):
    permission_id: str = Field(description="Permission ID")


class RevisionArgs(FileArgs):
    revision_id: str = Field(description="Revision ID")


class ListCommentsArgs(FileArgs):
    max_results: int = Field(100, ge=1, le=100, description="Maximum number of comments")


class CreateCommentArgs(FileArgs):
    content: str = Field(description="Comment content")
    quoted_file_content: str | None = Field(None, description="Quoted text from the file")


class CommentArgs(FileArgs):
    comment_id: str = Field(description="Comment ID")


class CreateReplyArgs(CommentArgs):
    content: str = Field(description="Reply content")


class ReplyArgs(CommentArgs):
    reply_id: str = Field(description="Reply ID")


Handler = Callable[[DriveClient, Any], Awaitable[dict]]


@dataclass(frozen=True)
class Operation:
    name: str
    description: str
    arguments: type[ToolArguments]
    handler: Handler

    def parse(self, raw: dict[str, Any] | None) -> ToolArguments:
        return self.arguments.model_validate(raw or {})

    def input_schema(self) -> dict[str, Any]:
        return self.arguments.model_json_schema(by_alias=True)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema(),
        }


CATALOG: tuple[Operation, ...] = (
    # Google Docs
    Operation(
        "docs_create_document",
        "Create a new Google Doc",
        CreateDocumentArgs,
        lambda client, args: client.create_document(args.title),
    ),
    Operation(
        "docs_get_document",
        "Get the content of a Google Doc",
        DocumentArgs,
        lambda client, args: client.get_document(args.document_id),
    ),
    Operation(
        "docs_append_text",
        "Append text to a Google Doc",
        AppendTextArgs,
        lambda client, args: client.append_text(args.document_id, args.text),
    ),
    Operation(
        "docs_replace_text",
        "Find and replace text in a Google Doc",
        ReplaceTextArgs,
        lambda client, args: client.replace_text(
            args.document_id, args.find_text, args.replace_with_text
        ),
    ),
    Operation(
        "docs_list_documents",
        "List your Google Docs",
        ListDocumentsArgs,
        lambda client, args: client.list_documents(args.max_results),
    ),
    Operation(
        "docs_delete_document",
        "Delete a Google Doc",
        DocumentArgs,
        lambda client, args: client.delete_document(args.document_id),
    ),
    Operation(
        "docs_export_pdf",
        "Export a Google Doc as PDF",
        ExportPdfArgs,
        lambda client, args: client.export_pdf(args.document_id, args.output_path),
    ),
    # Google Drive files
    Operation(
        "drive_list_files",
        "List all files in Google Drive",
        ListFilesArgs,
        lambda client, args: client.list_files(
            args.max_results, args.mime_type, args.query, args.order_by
        ),
    ),
    Operation(
        "drive_get_file",
        "Get file metadata and content",
        GetFileArgs,
        lambda client, args: client.get_file(args.file_id, args.fields),
    ),
    Operation(
        "drive_create_file",
        "Create a new file in Google Drive",
        CreateFileArgs,
        lambda client, args: client.create_file(
            args.name, args.mime_type, args.content, args.parents
        ),
    ),
    Operation(
        "drive_update_file",
        "Update file content or metadata",
        UpdateFileArgs,
        lambda client, args: client.update_file(
            args.file_id, args.name, args.content, args.add_parents, args.remove_parents
        ),
    ),
    Operation(
        "drive_delete_file",
        "Delete a file from Google Drive",
        FileArgs,
        lambda client, args: client.delete_file(args.file_id),
    ),
    Operation(
        "drive_copy_file",
        "Copy a file in Google Drive",
        CopyFileArgs,
        lambda client, args: client.copy_file(args.file_id, args.name, args.parents),
    ),
    Operation(
        "drive_move_file",
        "Move a file to different folders",
        MoveFileArgs,
        lambda client, args: client.move_file(args.file_id, args.add_parents, args.remove_parents),
    ),
    # Permissions
    Operation(
        "drive_list_permissions",
        "List file permissions",
        FileArgs,
        lambda client, args: client.list_permissions(args.file_id),
    ),
    Operation(
        "drive_create_permission",
        "Share a file with users",
        CreatePermissionArgs,
        lambda client, args: client.create_permission(
            args.file_id, args.email_address, args.role, args.permission_type
        ),
    ),
    Operation(
        "drive_delete_permission",
        "Remove file permissions",
        PermissionArgs,
        lambda client, args: client.delete_permission(args.file_id, args.permission_id),
    ),
    # Revisions
    Operation(
        "drive_list_revisions",
        "List file revisions/versions",
        FileArgs,
        lambda client, args: client.list_revisions(args.file_id),
    ),
    Operation(
        "drive_get_revision",
        "Get specific file revision",
        RevisionArgs,
        lambda client, args: client.get_revision(args.file_id, args.revision_id),
    ),
    Operation(
        "drive_delete_revision",
        "Delete a file revision",
        RevisionArgs,
        lambda client, args: client.delete_revision(args.file_id, args.revision_id),
    ),
    # Comments
    Operation(
        "drive_list_comments",
        "List file comments",
        ListCommentsArgs,
        lambda client, args: client.list_comments(args.file_id, args.max_results),
    ),
    Operation(
        "drive_create_comment",
        "Add a comment to a file",
        CreateCommentArgs,
        lambda client, args: client.create_comment(
            args.file_id, args.content, args.quoted_file_content
        ),
    ),
    Operation(
        "drive_delete_comment",
        "Delete a file comment",
        CommentArgs,
        lambda client, args: client.delete_comment(args.file_id, args.comment_id),
    ),
    # Replies
    Operation(
        "drive_list_replies",
        "List replies to a comment",
        CommentArgs,
        lambda client, args: client.list_replies(args.file_id, args.comment_id),
    ),
    Operation(
        "drive_create_reply",
        "Reply to a comment",
        CreateReplyArgs,
        lambda client, args: client.create_reply(args.file_id, args.comment_id, args.content),
    ),
    Operation(
        "drive_delete_reply",
        "Delete a reply to a comment",
        ReplyArgs,
        lambda client, args: client.delete_reply(args.file_id, args.comment_id, args.reply_id),
    ),
)


class ToolRegistry:
    def __init__(self, operations: tuple[Operation, ...] | list[Operation]) -> None:
        self._operations: dict[str, Operation] = {}
        for operation in operations:
            if operation.name in self._operations:
                raise RuntimeError(f"Duplicate tool name: {operation.name}")
            self._operations[operation.name] = operation

    def get(self, name: str) -> Operation | None:
        return self._operations.get(name)

    def names(self) -> list[str]:
        return list(self._operations)

    def describe(self) -> list[dict[str, Any]]:
        return [operation.describe() for operation in self._operations.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._operations

    def __len__(self) -> int:
        return len(self._operations)


def build_registry() -> ToolRegistry:
    return ToolRegistry(CATALOG)
