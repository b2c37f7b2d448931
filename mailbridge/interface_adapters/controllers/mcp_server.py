# mailbridge/interface_adapters/controllers/mcp_server.py
from __future__ import annotations
from typing import Any, Optional
from mcp.server.fastmcp import FastMCP

from mailbridge.interface_adapters.controllers.tool_controller import ToolController
from mailbridge.interface_adapters.schemas import (
    DEFAULT_ATTACHMENT_BYTES,
    FindMessageParams,
    GetAttachmentParams,
    GetMessageParams,
    GetThreadParams,
    ListMessagesParams,
    MarkAsReadParams,
    ReplyToMessageParams,
    SendMessageParams,
)

SERVER_NAME = "mailbridge"


def build_server(controller: ToolController) -> FastMCP:
    """Registra las herramientas; la validación la hacen los modelos de schemas.py."""
    mcp = FastMCP(SERVER_NAME)

    @mcp.tool(description="List recent messages from the inbox, newest first.")
    async def list_messages(count: int = 10) -> dict[str, Any]:
        return await controller.list_messages(ListMessagesParams(count=count))

    @mcp.tool(description="Search for messages containing specific words or phrases (Gmail search syntax on Gmail).")
    async def find_message(query: str) -> dict[str, Any]:
        return await controller.find_message(FindMessageParams(query=query))

    @mcp.tool(description="Send a plain-text email message.")
    async def send_message(
        to: str,
        subject: str,
        body: str,
        cc: Optional[str] = None,
        bcc: Optional[str] = None,
    ) -> dict[str, Any]:
        params = SendMessageParams(to=to, subject=subject, body=body, cc=cc, bcc=bcc)
        return await controller.send_message(params)

    @mcp.tool(description="Get a single email message with full body content. IDs come from list_messages or find_message.")
    async def get_message(id: str) -> dict[str, Any]:
        return await controller.get_message(GetMessageParams(id=id))

    @mcp.tool(description="Mark an email message as read or unread.")
    async def mark_as_read(id: str, read: bool = True) -> dict[str, Any]:
        return await controller.mark_as_read(MarkAsReadParams(id=id, read=read))

    @mcp.tool(description="Reply to an existing email message, keeping it in the same thread.")
    async def reply_to_message(id: str, body: str, include_quote: bool = True) -> dict[str, Any]:
        params = ReplyToMessageParams(id=id, body=body, include_quote=include_quote)
        return await controller.reply_to_message(params)

    @mcp.tool(description="Get all messages in the conversation of a message, oldest first.")
    async def get_thread(id: str) -> dict[str, Any]:
        return await controller.get_thread(GetThreadParams(id=id))

    @mcp.tool(description="Download an attachment from an email message as base64 (default cap 10MB, max 25MB).")
    async def get_attachment(
        message_id: str,
        attachment_index: int = 0,
        max_size_bytes: int = DEFAULT_ATTACHMENT_BYTES,
    ) -> dict[str, Any]:
        params = GetAttachmentParams(
            message_id=message_id,
            attachment_index=attachment_index,
            max_size_bytes=max_size_bytes,
        )
        return await controller.get_attachment(params)

    return mcp
