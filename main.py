#!/usr/bin/env python3

import html
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
import uvicorn

from auth import AuthManager, InvalidToken, OAuthError
from config import Config
from dqos_client import DQoSClient
from mcp_transport import MCPTransport
from models import HealthCheckResponse, MCPToolCallParams
from sweeper import ExpirySweeper
from token_store import ACCESS_TOKENS, AUTHORIZATION_CODES, TokenStore
from tools import TOOLS, get_tool

logger = logging.getLogger(__name__)

CONSENT_PAGE = """<!DOCTYPE html>
<html>
<head>
    <title>Authorize DQoS MCP</title>
    <style>
        body {{ font-family: Arial, sans-serif; max-width: 500px; margin: 100px auto; padding: 20px; text-align: center; }}
        button {{ background: #5865F2; color: white; border: none; padding: 12px 24px; font-size: 16px; border-radius: 4px; cursor: pointer; margin: 10px; }}
        .deny {{ background: #ED4245; }}
    </style>
</head>
<body>
    <h1>Authorize DQoS MCP</h1>
    <p>Client <strong>{client_id}</strong> wants to read your DQoS data.</p>
    <ul style="text-align: left;">
        <li>Read locations</li>
        <li>Read KPI data</li>
        <li>Read operator scores</li>
        <li>Read coverage statistics</li>
    </ul>
    <form method="POST" action="/authorize">
        <input type="hidden" name="client_id" value="{client_id}">
        <input type="hidden" name="redirect_uri" value="{redirect_uri}">
        <input type="hidden" name="state" value="{state}">
        <button type="submit" name="action" value="allow">Allow</button>
        <button type="submit" name="action" value="deny" class="deny">Deny</button>
    </form>
</body>
</html>
"""


def configure_logging(config: Config):
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=config.log_format
    )


def create_app(config: Optional[Config] = None, store: Optional[TokenStore] = None,
               dqos_client: Optional[DQoSClient] = None) -> FastAPI:
    """Build the gateway application and wire its components together"""
    if config is None:
        # Started through `uvicorn --factory main:create_app`
        config = Config()
        configure_logging(config)
    store = store if store is not None else TokenStore()
    auth_manager = AuthManager(config, store)
    sweeper = ExpirySweeper(store, interval=config.cleanup_interval)
    dqos_client = dqos_client or DQoSClient(config)
    mcp_transport = MCPTransport(dqos_client, config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {config.mcp_server_name} v{config.mcp_server_version}")
        logger.info(f"Environment: {config.environment}")
        logger.info(f"DQoS API: {config.dqos_api_url}")
        sweeper.start()
        try:
            yield
        finally:
            logger.info(f"Shutting down {config.mcp_server_name}")
            await sweeper.stop()
            await dqos_client.close()

    app = FastAPI(
        lifespan=lifespan,
        title="DQoS Remote MCP Server",
        description="MCP gateway to the DQoS API with OAuth 2.0 authorization code flow",
        version=config.mcp_server_version,
        docs_url="/docs" if config.is_development else None,
        redoc_url="/redoc" if config.is_development else None
    )
    # Add security headers middleware
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; form-action 'self' https://claude.ai https://*.claude.ai claude:; "
            "script-src 'self' 'unsafe-inline'; style-src 'self' 'unsafe-inline'"
        )

        # HTTPS enforcement in production
        if config.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["Mcp-Session-Id", "WWW-Authenticate"]
    )

    @app.exception_handler(OAuthError)
    async def oauth_error_handler(request: Request, exc: OAuthError):
        headers = {}
        if isinstance(exc, InvalidToken):
            headers["WWW-Authenticate"] = (
                f'Bearer realm="dqos-mcp", error="invalid_token", '
                f'resource_metadata="{config.base_url}/.well-known/oauth-protected-resource"'
            )
        elif exc.status_code == 401:
            headers["WWW-Authenticate"] = 'Basic realm="dqos-mcp"'
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(exclude_none=True),
            headers=headers
        )

    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check():
        """Health check endpoint with credential store counters"""
        return HealthCheckResponse(
            status="healthy",
            service=config.mcp_server_name,
            version=config.mcp_server_version,
            timestamp=datetime.now(timezone.utc).isoformat(),
            components={
                "auth": "ready",
                "sweeper": "running" if sweeper.running else "stopped",
                "dqos_api": config.dqos_api_url,
            },
            store={
                "authorization_codes": store.count(AUTHORIZATION_CODES),
                "access_tokens": store.count(ACCESS_TOKENS),
            },
            environment=config.environment
        )

    # OAuth 2.0 Authorization Server Metadata (RFC 8414)
    @app.get("/.well-known/oauth-authorization-server")
    async def oauth_authorization_server_metadata():
        return {
            "issuer": config.base_url,
            "authorization_endpoint": f"{config.base_url}/authorize",
            "token_endpoint": f"{config.base_url}/token",
            "response_types_supported": ["code"],
            "grant_types_supported": ["authorization_code"],
            "token_endpoint_auth_methods_supported": ["client_secret_post", "client_secret_basic"],
        }

    # OAuth 2.0 Protected Resource Metadata (RFC 9728)
    @app.get("/.well-known/oauth-protected-resource")
    async def oauth_protected_resource_metadata():
        return {
            "resource": f"{config.base_url}/mcp",
            "authorization_servers": [config.base_url],
            "bearer_methods_supported": ["header"],
        }

    @app.get("/authorize", response_class=HTMLResponse)
    async def authorize_page(client_id: Optional[str] = None, redirect_uri: Optional[str] = None,
                             response_type: Optional[str] = None, state: Optional[str] = None):
        """Consent page shown to the user before a code is issued"""
        auth_manager.validate_authorization_request(client_id, redirect_uri, response_type)
        return CONSENT_PAGE.format(
            client_id=html.escape(client_id),
            redirect_uri=html.escape(redirect_uri),
            state=html.escape(state or ""),
        )

    @app.post("/authorize")
    async def authorize_decision(request: Request):
        form_data = await request.form()
        redirect_url = auth_manager.create_authorization(
            client_id=form_data.get("client_id"),
            redirect_uri=form_data.get("redirect_uri"),
            state=form_data.get("state"),
            action=form_data.get("action"),
        )
        return RedirectResponse(url=redirect_url, status_code=302)

    @app.post("/token")
    async def oauth_token(request: Request):
        """Exchange an authorization code for an access token"""
        form_data = await request.form()
        token_response = auth_manager.exchange_code_for_token(
            {key: value for key, value in form_data.items() if isinstance(value, str)},
            request.headers.get("Authorization"),
        )
        return JSONResponse(
            content=token_response.model_dump(),
            headers={"Cache-Control": "no-store", "Pragma": "no-cache"}
        )

    @app.get("/mcp")
    async def mcp_info():
        """Public server description for discovery"""
        return {
            "name": config.mcp_server_name,
            "version": config.mcp_server_version,
            "protocol": "mcp-remote",
            "protocolVersion": config.mcp_protocol_version,
            "capabilities": {"tools": True},
            "oauth": {
                "authorization_endpoint": f"{config.base_url}/authorize",
                "token_endpoint": f"{config.base_url}/token",
            },
        }

    @app.post("/mcp")
    async def mcp_endpoint(request: Request):
        client_id = auth_manager.authenticate(request.headers.get("Authorization"))
        return await mcp_transport.handle_post_request(request, client_id)

    @app.get("/mcp/tools")
    async def list_tools(request: Request):
        auth_manager.authenticate(request.headers.get("Authorization"))
        return {"tools": TOOLS}

    @app.post("/mcp/call-tool")
    async def call_tool(request: Request):
        auth_manager.authenticate(request.headers.get("Authorization"))
        try:
            call = MCPToolCallParams(**(await request.json()))
        except (TypeError, ValueError):
            return JSONResponse(status_code=400, content={"error": "Tool name is required"})

        if get_tool(call.name) is None:
            return JSONResponse(status_code=404, content={"error": f"Tool '{call.name}' not found"})

        result = await mcp_transport.call_tool(call.name, call.arguments or {})
        if result.isError:
            return JSONResponse(status_code=500, content={"error": result.content[0].text})
        return result.model_dump(exclude_none=True)

    @app.post("/mcp/sse")
    async def call_tool_stream(request: Request):
        auth_manager.authenticate(request.headers.get("Authorization"))
        return await mcp_transport.handle_sse_request(request)

    return app


if __name__ == "__main__":
    config = Config()
    configure_logging(config)

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
        access_log=True
    )
