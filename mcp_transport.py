import json
import uuid
import logging
from typing import Dict, Any, Optional, List, Union

from fastapi import Request, HTTPException
from fastapi.responses import JSONResponse, Response, StreamingResponse

from config import Config
from dqos_client import DQoSClient, DQoSAPIError
from models import MCPContentItem, MCPToolCallParams, MCPToolCallResult
from tools import TOOLS, get_endpoint_for_tool, get_tool

logger = logging.getLogger(__name__)

# JSON-RPC error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class MCPTransport:
    """
    MCP Streamable HTTP transport (JSON responses only).

    Every request reaching this class has already passed the Bearer token gate;
    handlers receive the authenticated client id.
    """

    def __init__(self, dqos_client: DQoSClient, config: Config):
        self.dqos_client = dqos_client
        self.config = config

        self.server_info = {
            "name": config.mcp_server_name,
            "version": config.mcp_server_version,
        }

    async def handle_post_request(self, request: Request, client_id: str) -> Response:
        """Handle POST request carrying a JSON-RPC message or batch"""
        content_type = request.headers.get("content-type", "")
        if not content_type.startswith("application/json"):
            raise HTTPException(status_code=400, detail="Content-Type must be application/json")

        body = await request.body()
        if not body:
            raise HTTPException(status_code=400, detail="Request body is required")

        try:
            message = json.loads(body)
        except json.JSONDecodeError as e:
            raise HTTPException(status_code=400, detail=f"Invalid JSON: {e}")

        protocol_version = request.headers.get("mcp-protocol-version")
        if protocol_version and protocol_version != self.config.mcp_protocol_version:
            logger.warning(f"Client requested protocol version {protocol_version}")

        session_id = request.headers.get("mcp-session-id")

        if isinstance(message, list):
            if not message:
                return JSONResponse(content=self._create_error_response(None, INVALID_REQUEST, "Empty batch"))
            responses = []
            for msg in message:
                response, new_session = await self.handle_message(msg, client_id)
                session_id = new_session or session_id
                if response is not None:
                    responses.append(response)
            return self._respond(responses or None, session_id)

        response, new_session = await self.handle_message(message, client_id)
        return self._respond(response, new_session or session_id)

    def _respond(self, content: Optional[Union[Dict[str, Any], List[Dict[str, Any]]]],
                 session_id: Optional[str]) -> Response:
        headers = {"Mcp-Session-Id": session_id} if session_id else {}
        if content is None:
            # Only notifications were received
            return Response(status_code=202, headers=headers)
        return JSONResponse(content=content, headers=headers)

    async def handle_message(self, message: Any, client_id: str):
        """
        Dispatch one JSON-RPC message.

        Returns ``(response, session_id)``; response is None for notifications and
        session_id is set only by ``initialize``.
        """
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0" or not isinstance(message.get("method"), str):
            msg_id = message.get("id") if isinstance(message, dict) else None
            return self._create_error_response(msg_id, INVALID_REQUEST, "Invalid Request"), None

        method = message["method"]
        msg_id = message.get("id")
        params = message.get("params") or {}

        if "id" not in message:
            logger.debug(f"Notification received: {method}")
            return None, None

        if method == "initialize":
            session_id = str(uuid.uuid4())
            logger.info(f"MCP session {session_id} initialized for client {client_id}")
            return self._create_result(msg_id, {
                "protocolVersion": self.config.mcp_protocol_version,
                "serverInfo": self.server_info,
                "capabilities": {"tools": {}},
            }), session_id

        if method == "tools/list":
            logger.info("Listing tools")
            return self._create_result(msg_id, {"tools": TOOLS}), None

        if method == "tools/call":
            try:
                call = MCPToolCallParams(**params)
            except (TypeError, ValueError):
                return self._create_error_response(msg_id, INVALID_PARAMS, "Invalid params", "Tool name is required"), None

            if get_tool(call.name) is None:
                return self._create_error_response(msg_id, INVALID_PARAMS, "Tool not found", f"Tool '{call.name}' not found"), None

            result = await self.call_tool(call.name, call.arguments or {})
            return self._create_result(msg_id, result.model_dump(exclude_none=True)), None

        if method == "ping":
            return self._create_result(msg_id, {}), None

        return self._create_error_response(msg_id, METHOD_NOT_FOUND, "Method not found", method), None

    async def handle_sse_request(self, request: Request) -> StreamingResponse:
        """Run one tool call and report its outcome as a single server-sent event"""
        try:
            call = MCPToolCallParams(**(await request.json()))
        except (TypeError, ValueError):
            raise HTTPException(status_code=400, detail="Tool name is required")

        async def event_stream():
            if get_tool(call.name) is None:
                event = {"type": "error", "error": f"Tool '{call.name}' not found"}
            else:
                try:
                    event = {"type": "result", "data": await self._fetch(call.name, call.arguments or {})}
                except DQoSAPIError as e:
                    logger.error(f"Tool error: {e}")
                    event = {"type": "error", "error": str(e)}
            yield f"data: {json.dumps(event)}\n\n"

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache"}
        )

    async def _fetch(self, tool_name: str, arguments: Dict[str, Any]) -> Any:
        logger.info(f"Tool called: {tool_name}")
        return await self.dqos_client.get(get_endpoint_for_tool(tool_name), arguments)

    async def call_tool(self, tool_name: str, arguments: Dict[str, Any]) -> MCPToolCallResult:
        """Proxy a tool call to the DQoS API and wrap the outcome as MCP content"""
        try:
            result = await self._fetch(tool_name, arguments)
        except DQoSAPIError as e:
            logger.error(f"Tool error: {e}")
            return MCPToolCallResult(
                content=[MCPContentItem(type="text", text=f"Error: {e}")],
                isError=True,
            )

        return MCPToolCallResult(
            content=[MCPContentItem(type="text", text=json.dumps(result, indent=2))]
        )

    def _create_result(self, msg_id: Optional[Union[str, int]], result: Any) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": msg_id, "result": result}

    def _create_error_response(self, msg_id: Optional[Union[str, int]], code: int, message: str, data: Optional[str] = None) -> Dict[str, Any]:
        """Create a JSON-RPC error response"""
        error = {
            "code": code,
            "message": message
        }
        if data:
            error["data"] = data

        return {
            "jsonrpc": "2.0",
            "id": msg_id,
            "error": error
        }
