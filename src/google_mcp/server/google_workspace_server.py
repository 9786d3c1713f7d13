"""Google Workspace MCP server.

This MCP server exposes Calendar, Gmail, Drive, Docs and Sheets tools to an
MCP client over stdio. Every tool call goes through the OAuthManager: the
required scopes are checked, a fresh access token is obtained, and an
insufficient-scope rejection from Google clears the stored credential so the
next ``google-mcp setup`` grants the missing permissions.
"""

import asyncio
import base64
import csv
import io
import json
import logging
from email.mime.text import MIMEText
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from google_mcp.auth import SERVICE_SCOPES, OAuthManager
from google_mcp.errors import (
    ErrorKind,
    GoogleMCPError,
    ProviderError,
    classify_provider_error,
    provider_error_message,
)

logger = logging.getLogger(__name__)

SERVER_NAME = "google-mcp"

# Google API base URLs
CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"
GMAIL_API_BASE = "https://gmail.googleapis.com/gmail/v1"
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DOCS_API_BASE = "https://docs.googleapis.com/v1"
SHEETS_API_BASE = "https://sheets.googleapis.com/v4"

MAX_RESULTS_SCHEMA = {
    "type": "integer",
    "description": "Maximum number of results (default: 10)",
    "default": 10,
}


class GoogleWorkspaceServer:
    """MCP server for Google Workspace APIs.

    Attributes:
        server: MCP Server instance.
        manager: OAuthManager that supplies tokens and enforces scopes.
    """

    def __init__(self, manager: OAuthManager | None = None) -> None:
        """Initialize the Google Workspace MCP server.

        Args:
            manager: Token lifecycle manager. Created from the environment if
                not provided.
        """
        self.server = Server(SERVER_NAME)
        self.manager = manager or OAuthManager()
        self._http_client: httpx.AsyncClient | None = None
        self._setup_handlers()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling.

        Returns:
            Shared httpx.AsyncClient instance.
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                http2=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and the OAuth manager."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        await self.manager.close()

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return self._tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self._call_tool(name, arguments)

    async def _call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        try:
            result = await self._dispatch_tool(name, arguments or {})
        except GoogleMCPError as e:
            logger.warning(f"Tool {name} failed: {e}")
            result = e.to_dict()
        except Exception as e:
            logger.exception(f"Error calling tool {name}")
            result = {"error": str(e)}
        return [TextContent(type="text", text=json.dumps(result, indent=2))]

    def _tool_definitions(self) -> list[Tool]:
        return [
            Tool(
                name="list_calendars",
                description="List all calendars accessible by the authenticated user",
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
            Tool(
                name="list_events",
                description="List events from a calendar, ordered by start time",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "calendar_id": {
                            "type": "string",
                            "description": "Calendar ID (default: 'primary')",
                            "default": "primary",
                        },
                        "time_min": {
                            "type": "string",
                            "description": "Lower bound (RFC3339 timestamp, optional)",
                        },
                        "time_max": {
                            "type": "string",
                            "description": "Upper bound (RFC3339 timestamp, optional)",
                        },
                        "max_results": MAX_RESULTS_SCHEMA,
                    },
                    "required": [],
                },
            ),
            Tool(
                name="create_event",
                description="Create a new calendar event",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "calendar_id": {
                            "type": "string",
                            "description": "Calendar ID (default: 'primary')",
                            "default": "primary",
                        },
                        "summary": {"type": "string", "description": "Event title"},
                        "start_time": {
                            "type": "string",
                            "description": "Start time (RFC3339 timestamp)",
                        },
                        "end_time": {
                            "type": "string",
                            "description": "End time (RFC3339 timestamp)",
                        },
                        "description": {
                            "type": "string",
                            "description": "Event description (optional)",
                        },
                        "location": {"type": "string", "description": "Location (optional)"},
                        "attendees": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Attendee email addresses (optional)",
                        },
                        "timezone": {
                            "type": "string",
                            "description": "Timezone, e.g. 'America/New_York' (optional)",
                        },
                    },
                    "required": ["summary", "start_time", "end_time"],
                },
            ),
            Tool(
                name="search_gmail_messages",
                description="Search Gmail messages using Gmail search syntax",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Gmail search query (e.g., 'from:alice is:unread')",
                        },
                        "max_results": MAX_RESULTS_SCHEMA,
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="get_gmail_message",
                description="Get the full content of a Gmail message",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "message_id": {"type": "string", "description": "Gmail message ID"},
                    },
                    "required": ["message_id"],
                },
            ),
            Tool(
                name="send_email",
                description="Send an email from the authenticated Gmail account",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "to": {"type": "string", "description": "Recipient email address"},
                        "subject": {"type": "string", "description": "Email subject"},
                        "body": {"type": "string", "description": "Plain-text email body"},
                        "cc": {"type": "string", "description": "CC recipients (optional)"},
                        "bcc": {"type": "string", "description": "BCC recipients (optional)"},
                    },
                    "required": ["to", "subject", "body"],
                },
            ),
            Tool(
                name="list_gmail_labels",
                description="List all Gmail labels (system and custom)",
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
            Tool(
                name="search_drive_files",
                description="Search Google Drive files by name, content or Drive query syntax",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {
                            "type": "string",
                            "description": "Search terms or Drive query (e.g., \"name contains 'report'\")",
                        },
                        "max_results": MAX_RESULTS_SCHEMA,
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="create_drive_folder",
                description="Create a new folder in Google Drive",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Folder name"},
                        "parent_id": {
                            "type": "string",
                            "description": "Parent folder ID (optional, defaults to root)",
                        },
                    },
                    "required": ["name"],
                },
            ),
            Tool(
                name="get_document",
                description="Get the title and text content of a Google Doc",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "document_id": {"type": "string", "description": "Google Docs document ID"},
                    },
                    "required": ["document_id"],
                },
            ),
            Tool(
                name="get_sheet_values",
                description="Get values from a sheet/tab of a Google Spreadsheet as CSV",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "spreadsheet_id": {"type": "string", "description": "Spreadsheet ID"},
                        "sheet_name": {"type": "string", "description": "Sheet/tab name"},
                        "range": {
                            "type": "string",
                            "description": "A1 range within the sheet (default: 'A:ZZ')",
                        },
                    },
                    "required": ["spreadsheet_id", "sheet_name"],
                },
            ),
            Tool(
                name="update_sheet_values",
                description="Write values to a range of a Google Spreadsheet",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "spreadsheet_id": {"type": "string", "description": "Spreadsheet ID"},
                        "sheet_name": {"type": "string", "description": "Sheet/tab name"},
                        "range": {"type": "string", "description": "A1 range, e.g. 'A1:C3'"},
                        "values": {
                            "type": "array",
                            "items": {"type": "array", "items": {}},
                            "description": "Rows of cell values",
                        },
                    },
                    "required": ["spreadsheet_id", "sheet_name", "range", "values"],
                },
            ),
            Tool(
                name="get_auth_status",
                description="Report the Google authentication status (no secrets included)",
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
        ]

    async def _make_request(
        self,
        service: str,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make an authenticated HTTP request to a Google API.

        Args:
            service: Key into SERVICE_SCOPES naming the scopes this call needs.
            method: HTTP method (GET, POST, etc.).
            url: Full URL to request.
            params: Optional query parameters.
            json_data: Optional JSON body data.

        Returns:
            JSON response as a dictionary.

        Raises:
            AuthenticationRequiredError: If there is no usable credential.
            InsufficientScopeError: If the grant lacks the service's scopes.
            ProviderError: If Google rejects the request for another reason.
        """
        await self.manager.ensure_scopes(SERVICE_SCOPES[service])
        access_token = await self.manager.get_access_token()
        client = await self._get_http_client()

        response = await client.request(
            method=method,
            url=url,
            params=params,
            json=json_data,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
        )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            kind = classify_provider_error(e)
            if kind is ErrorKind.SCOPE_INSUFFICIENT:
                await self.manager.handle_insufficient_scope_error(e)
            raise ProviderError(
                f"{service} API error: {provider_error_message(e)}",
                kind=kind,
                status_code=e.response.status_code,
            ) from e

        if not response.content:
            return {}
        result: dict[str, Any] = response.json()
        return result

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Args:
            name: Tool name.
            arguments: Tool arguments.

        Returns:
            Tool result as dictionary.

        Raises:
            ValueError: If tool name is not recognized.
        """
        handlers = {
            "list_calendars": self._list_calendars,
            "list_events": self._list_events,
            "create_event": self._create_event,
            "search_gmail_messages": self._search_gmail_messages,
            "get_gmail_message": self._get_gmail_message,
            "send_email": self._send_email,
            "list_gmail_labels": self._list_gmail_labels,
            "search_drive_files": self._search_drive_files,
            "create_drive_folder": self._create_drive_folder,
            "get_document": self._get_document,
            "get_sheet_values": self._get_sheet_values,
            "update_sheet_values": self._update_sheet_values,
            "get_auth_status": self._get_auth_status,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    # =========================================================================
    # Calendar
    # =========================================================================

    async def _list_calendars(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List all calendars accessible by the user."""
        url = f"{CALENDAR_API_BASE}/users/me/calendarList"
        response = await self._make_request("calendar", "GET", url)

        calendars = [
            {
                "id": item.get("id"),
                "summary": item.get("summary"),
                "access_role": item.get("accessRole"),
                "primary": item.get("primary", False),
            }
            for item in response.get("items", [])
        ]
        return {"calendars": calendars, "count": len(calendars)}

    async def _list_events(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List events from a calendar.

        Args:
            arguments: Tool arguments with calendar_id, time_min, time_max, max_results.

        Returns:
            List of events with summary, start, end times.
        """
        calendar_id = arguments.get("calendar_id", "primary")
        params: dict[str, Any] = {
            "maxResults": arguments.get("max_results", 10),
            "singleEvents": True,
            "orderBy": "startTime",
        }
        if arguments.get("time_min"):
            params["timeMin"] = arguments["time_min"]
        if arguments.get("time_max"):
            params["timeMax"] = arguments["time_max"]

        url = f"{CALENDAR_API_BASE}/calendars/{calendar_id}/events"
        response = await self._make_request("calendar", "GET", url, params=params)

        events = []
        for item in response.get("items", []):
            start = item.get("start", {})
            end = item.get("end", {})
            events.append(
                {
                    "id": item.get("id"),
                    "summary": item.get("summary"),
                    "start": start.get("dateTime") or start.get("date"),
                    "end": end.get("dateTime") or end.get("date"),
                    "location": item.get("location"),
                    "attendees": [a.get("email") for a in item.get("attendees", [])],
                }
            )

        return {"events": events, "count": len(events)}

    async def _create_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create a new calendar event.

        Args:
            arguments: Tool arguments with summary, start_time, end_time, etc.

        Returns:
            Created event details with id and link.
        """
        calendar_id = arguments.get("calendar_id", "primary")
        timezone = arguments.get("timezone")

        event_body: dict[str, Any] = {
            "summary": arguments["summary"],
            "start": {"dateTime": arguments["start_time"]},
            "end": {"dateTime": arguments["end_time"]},
        }
        if timezone:
            event_body["start"]["timeZone"] = timezone
            event_body["end"]["timeZone"] = timezone
        if arguments.get("description"):
            event_body["description"] = arguments["description"]
        if arguments.get("location"):
            event_body["location"] = arguments["location"]
        if arguments.get("attendees"):
            event_body["attendees"] = [{"email": email} for email in arguments["attendees"]]

        url = f"{CALENDAR_API_BASE}/calendars/{calendar_id}/events"
        response = await self._make_request("calendar", "POST", url, json_data=event_body)

        return {
            "status": "created",
            "id": response.get("id"),
            "summary": response.get("summary"),
            "start": response.get("start", {}).get("dateTime"),
            "end": response.get("end", {}).get("dateTime"),
            "html_link": response.get("htmlLink"),
        }

    # =========================================================================
    # Gmail
    # =========================================================================

    async def _search_gmail_messages(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search Gmail messages, fetching message metadata concurrently.

        Args:
            arguments: Tool arguments with query and max_results.

        Returns:
            List of message summaries with id, thread_id, subject, from, date.
        """
        url = f"{GMAIL_API_BASE}/users/me/messages"
        params = {"q": arguments.get("query", ""), "maxResults": arguments.get("max_results", 10)}
        response = await self._make_request("gmail", "GET", url, params=params)

        message_list = response.get("messages", [])
        if not message_list:
            return {"messages": [], "count": 0}

        async def fetch_message_detail(msg_id: str) -> dict[str, Any]:
            msg_url = f"{GMAIL_API_BASE}/users/me/messages/{msg_id}"
            return await self._make_request("gmail", "GET", msg_url, params={"format": "metadata"})

        details = await asyncio.gather(
            *[fetch_message_detail(msg["id"]) for msg in message_list],
            return_exceptions=True,
        )

        messages = []
        for msg, detail in zip(message_list, details, strict=False):
            if isinstance(detail, GoogleMCPError) and detail.kind in (
                ErrorKind.AUTHENTICATION_REQUIRED,
                ErrorKind.SCOPE_INSUFFICIENT,
            ):
                raise detail
            if isinstance(detail, BaseException):
                logger.warning(f"Failed to fetch message {msg['id']}: {detail}")
                continue

            headers = _header_map(detail.get("payload", {}))
            messages.append(
                {
                    "id": msg["id"],
                    "thread_id": msg.get("threadId"),
                    "subject": headers.get("Subject"),
                    "from": headers.get("From"),
                    "date": headers.get("Date"),
                    "snippet": detail.get("snippet"),
                }
            )

        return {"messages": messages, "count": len(messages)}

    async def _get_gmail_message(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get full content of a Gmail message."""
        message_id = arguments["message_id"]

        url = f"{GMAIL_API_BASE}/users/me/messages/{message_id}"
        response = await self._make_request("gmail", "GET", url, params={"format": "full"})

        payload = response.get("payload", {})
        headers = _header_map(payload)
        return {
            "id": response.get("id"),
            "thread_id": response.get("threadId"),
            "subject": headers.get("Subject"),
            "from": headers.get("From"),
            "to": headers.get("To"),
            "cc": headers.get("Cc"),
            "date": headers.get("Date"),
            "body": _extract_message_body(payload),
            "labels": response.get("labelIds", []),
        }

    async def _send_email(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Send an email message.

        Args:
            arguments: Tool arguments with to, subject, body, cc, bcc.

        Returns:
            Sent message details.
        """
        message = MIMEText(arguments["body"])
        message["to"] = arguments["to"]
        message["subject"] = arguments["subject"]
        if arguments.get("cc"):
            message["cc"] = arguments["cc"]
        if arguments.get("bcc"):
            message["bcc"] = arguments["bcc"]
        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode()

        url = f"{GMAIL_API_BASE}/users/me/messages/send"
        response = await self._make_request("gmail", "POST", url, json_data={"raw": raw_message})

        return {
            "status": "sent",
            "id": response.get("id"),
            "thread_id": response.get("threadId"),
            "label_ids": response.get("labelIds", []),
        }

    async def _list_gmail_labels(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List Gmail labels, system labels first, each group sorted by name."""
        url = f"{GMAIL_API_BASE}/users/me/labels"
        response = await self._make_request("gmail", "GET", url)

        labels = [
            {"id": label.get("id"), "name": label.get("name"), "type": label.get("type")}
            for label in response.get("labels", [])
        ]
        system_labels = sorted(
            [lbl for lbl in labels if lbl["type"] == "system"], key=lambda x: x["name"] or ""
        )
        user_labels = sorted(
            [lbl for lbl in labels if lbl["type"] != "system"], key=lambda x: x["name"] or ""
        )
        return {
            "total": len(labels),
            "system_labels": system_labels,
            "user_labels": user_labels,
        }

    # =========================================================================
    # Drive
    # =========================================================================

    async def _search_drive_files(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search Google Drive files.

        Args:
            arguments: Tool arguments with query and max_results.

        Returns:
            List of files with id, name, mimeType, modifiedTime.
        """
        url = f"{DRIVE_API_BASE}/files"
        params = {
            "q": normalize_drive_query(arguments.get("query", "")),
            "pageSize": arguments.get("max_results", 10),
            "fields": "files(id,name,mimeType,modifiedTime,webViewLink)",
        }
        response = await self._make_request("drive", "GET", url, params=params)

        files = [
            {
                "id": item.get("id"),
                "name": item.get("name"),
                "mimeType": item.get("mimeType"),
                "modifiedTime": item.get("modifiedTime"),
                "webViewLink": item.get("webViewLink"),
            }
            for item in response.get("files", [])
        ]
        return {"files": files, "count": len(files)}

    async def _create_drive_folder(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create a new folder in Google Drive (requires drive.file)."""
        metadata: dict[str, Any] = {
            "name": arguments["name"],
            "mimeType": "application/vnd.google-apps.folder",
        }
        if arguments.get("parent_id"):
            metadata["parents"] = [arguments["parent_id"]]

        url = f"{DRIVE_API_BASE}/files"
        response = await self._make_request("drive_write", "POST", url, json_data=metadata)

        return {
            "status": "folder_created",
            "id": response.get("id"),
            "name": response.get("name"),
            "mimeType": response.get("mimeType"),
        }

    # =========================================================================
    # Docs
    # =========================================================================

    async def _get_document(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get the content of a Google Doc."""
        document_id = arguments["document_id"]

        url = f"{DOCS_API_BASE}/documents/{document_id}"
        response = await self._make_request("docs", "GET", url)

        return {
            "document_id": response.get("documentId"),
            "title": response.get("title"),
            "revision_id": response.get("revisionId"),
            "text_content": _extract_doc_text(response.get("body", {})),
        }

    # =========================================================================
    # Sheets
    # =========================================================================

    async def _get_sheet_values(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get values from a sheet as CSV text.

        Args:
            arguments: Tool arguments with spreadsheet_id, sheet_name, and optional range.

        Returns:
            Sheet data as CSV plus row/column counts.
        """
        spreadsheet_id = arguments["spreadsheet_id"]
        sheet_name = arguments["sheet_name"]
        range_notation = f"'{sheet_name}'!{arguments.get('range', 'A:ZZ')}"

        url = f"{SHEETS_API_BASE}/spreadsheets/{spreadsheet_id}/values/{range_notation}"
        params = {"valueRenderOption": "FORMATTED_VALUE"}
        response = await self._make_request("sheets", "GET", url, params=params)

        values = response.get("values", [])
        return {
            "spreadsheet_id": spreadsheet_id,
            "sheet_name": sheet_name,
            "range": response.get("range", range_notation),
            "data": _rows_to_csv(values),
            "row_count": len(values),
            "column_count": max((len(row) for row in values), default=0),
        }

    async def _update_sheet_values(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Update values in a range of a Google Spreadsheet.

        Args:
            arguments: Tool arguments with spreadsheet_id, sheet_name, range, and values.

        Returns:
            Update result with updated cell count.
        """
        spreadsheet_id = arguments["spreadsheet_id"]
        range_notation = f"'{arguments['sheet_name']}'!{arguments['range']}"

        url = f"{SHEETS_API_BASE}/spreadsheets/{spreadsheet_id}/values/{range_notation}"
        params = {"valueInputOption": "USER_ENTERED"}
        body = {"range": range_notation, "values": arguments["values"]}
        response = await self._make_request("sheets", "PUT", url, params=params, json_data=body)

        return {
            "spreadsheet_id": spreadsheet_id,
            "updated_range": response.get("updatedRange", range_notation),
            "updated_rows": response.get("updatedRows", 0),
            "updated_columns": response.get("updatedColumns", 0),
            "updated_cells": response.get("updatedCells", 0),
        }

    # =========================================================================
    # Auth
    # =========================================================================

    async def _get_auth_status(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Report authentication status without touching the credential."""
        status: dict[str, Any] = self.manager.get_auth_status().model_dump(mode="json")
        return status

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


def _header_map(payload: dict[str, Any]) -> dict[str, str]:
    return {h["name"]: h["value"] for h in payload.get("headers", [])}


def _decode_body(data: str) -> str:
    return base64.urlsafe_b64decode(data).decode("utf-8", errors="replace")


def _extract_message_body(payload: dict[str, Any]) -> str:
    """Extract message body from a Gmail payload, preferring text/plain.

    Args:
        payload: Gmail message payload.

    Returns:
        Decoded message body text.
    """
    if payload.get("body", {}).get("data"):
        return _decode_body(payload["body"]["data"])

    parts = payload.get("parts", [])
    for part in parts:
        mime_type = part.get("mimeType", "")
        if mime_type == "text/plain" and part.get("body", {}).get("data"):
            return _decode_body(part["body"]["data"])
        if mime_type.startswith("multipart/"):
            nested = _extract_message_body(part)
            if nested:
                return nested

    # Fallback to HTML if no plain text
    for part in parts:
        if part.get("mimeType") == "text/html" and part.get("body", {}).get("data"):
            return _decode_body(part["body"]["data"])

    return ""


def _extract_doc_text(body: dict[str, Any]) -> str:
    """Extract plain text from a Google Docs body structure."""
    text_parts = []
    for element in body.get("content", []):
        if "paragraph" in element:
            for para_element in element["paragraph"].get("elements", []):
                if "textRun" in para_element:
                    text_parts.append(para_element["textRun"].get("content", ""))
        elif "table" in element:
            for row in element["table"].get("tableRows", []):
                for cell in row.get("tableCells", []):
                    cell_text = _extract_doc_text(cell)
                    if cell_text:
                        text_parts.append(cell_text)
                        text_parts.append("\t")
                text_parts.append("\n")
    return "".join(text_parts)


def _rows_to_csv(values: list[list[Any]]) -> str:
    output = io.StringIO()
    csv.writer(output, lineterminator="\n").writerows(values)
    return output.getvalue().removesuffix("\n")


def normalize_drive_query(query: str) -> str:
    """Wrap bare search terms in a Drive ``fullText contains`` clause.

    Queries that already use Drive query operators pass through unchanged.
    """
    operators = ["contains", "=", "!=", "<", ">", " in ", " has ", " not "]
    if any(op in query.lower() for op in operators):
        return query

    escaped_query = query.replace("'", "\\'")
    return f"fullText contains '{escaped_query}'"


def main() -> None:
    """Entry point for the Google Workspace MCP server."""
    # stdout carries the MCP stream; logs go to stderr
    logging.basicConfig(level=logging.INFO)
    server = GoogleWorkspaceServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
