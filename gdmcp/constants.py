from __future__ import annotations

import logging

LOGGER = logging.getLogger("gdmcp.google_api")
APP_VERSION = "0.1.0"
SERVICE_NAME = "google-drive-mcp"
AUTH_MODE = "oauth2-session"

DOCS_API_URL = "https://docs.googleapis.com/v1"
DRIVE_API_URL = "https://www.googleapis.com/drive/v3"
DRIVE_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3"

GOOGLE_DOC_MIME_TYPE = "application/vnd.google-apps.document"
GOOGLE_SHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"
GOOGLE_SLIDE_MIME_TYPE = "application/vnd.google-apps.presentation"
GOOGLE_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
