import os
from typing import List
from datetime import timedelta

PLACEHOLDER_SECRET = "change-me-in-production"
MIN_JWT_SECRET_LENGTH = 32


class Config:
    """Configuration management for the MCP gateway"""

    def __init__(self):
        # Server configuration
        self.host = os.getenv("HOST", "0.0.0.0")
        self.port = int(os.getenv("PORT", 4000))
        self.environment = os.getenv("ENVIRONMENT", "production")
        self.base_url = os.getenv("SERVER_URL", f"http://localhost:{self.port}").rstrip("/")
        self.allowed_origins = self._parse_allowed_origins()

        # Token signing configuration
        self.jwt_secret = os.getenv("JWT_SECRET", "")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")

        # Static OAuth client
        self.oauth_client_id = os.getenv("OAUTH_CLIENT_ID", "dqos-mcp-client")
        self.oauth_client_secret = os.getenv("OAUTH_CLIENT_SECRET", "")

        # OAuth lifetimes
        self.oauth_code_expiry = int(os.getenv("OAUTH_CODE_EXPIRY", 600))  # 10 minutes
        self.oauth_token_expiry = int(os.getenv("OAUTH_TOKEN_EXPIRY", 86400))  # 24 hours

        # Cleanup configuration
        self.cleanup_interval = int(os.getenv("CLEANUP_INTERVAL", 3600))  # 1 hour

        # DQoS API configuration
        self.dqos_api_url = os.getenv("DQOS_API_URL", "http://localhost:8000/api/mcp").rstrip("/")
        self.dqos_timeout = float(os.getenv("DQOS_TIMEOUT", 30))

        # MCP configuration
        self.mcp_protocol_version = os.getenv("MCP_PROTOCOL_VERSION", "2025-03-26")
        self.mcp_server_name = os.getenv("MCP_SERVER_NAME", "dqos-mcp-remote")
        self.mcp_server_version = os.getenv("MCP_SERVER_VERSION", "1.0.0")

        # Logging configuration
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.log_format = os.getenv("LOG_FORMAT", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        self._validate_config()

    def _parse_allowed_origins(self) -> List[str]:
        """Parse allowed origins from environment variable"""
        origins_str = os.getenv("ALLOWED_ORIGINS", "*")
        if origins_str == "*":
            return ["*"]
        return [origin.strip() for origin in origins_str.split(",") if origin.strip()]

    def _validate_config(self):
        """Validate configuration values"""
        # Refuse to start with a signing key anyone could guess
        if not self.jwt_secret or self.jwt_secret == PLACEHOLDER_SECRET:
            raise ValueError("JWT_SECRET must be set")

        if len(self.jwt_secret) < MIN_JWT_SECRET_LENGTH:
            raise ValueError(f"JWT_SECRET must be at least {MIN_JWT_SECRET_LENGTH} characters")

        if not self.jwt_algorithm.startswith("HS"):
            raise ValueError("JWT_ALGORITHM must be an HMAC algorithm (HS256, HS384, HS512)")

        if not self.oauth_client_id:
            raise ValueError("OAUTH_CLIENT_ID must not be empty")

        if not self.oauth_client_secret or self.oauth_client_secret == PLACEHOLDER_SECRET:
            raise ValueError("OAUTH_CLIENT_SECRET must be set")

        if self.environment == "production" and not self.base_url.startswith("https://"):
            raise ValueError("SERVER_URL must use HTTPS in production")

        if self.oauth_code_expiry < 30 or self.oauth_code_expiry > 600:
            raise ValueError("OAUTH_CODE_EXPIRY must be between 30 and 600 seconds")

        if self.oauth_token_expiry < 300:  # 5 minutes minimum
            raise ValueError("OAUTH_TOKEN_EXPIRY must be at least 300 seconds")

        if self.cleanup_interval <= 0:
            raise ValueError("CLEANUP_INTERVAL must be positive")

        if self.dqos_timeout <= 0:
            raise ValueError("DQOS_TIMEOUT must be positive")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode"""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode"""
        return self.environment == "production"

    def get_oauth_code_expiry_delta(self) -> timedelta:
        """Get OAuth code expiry as timedelta"""
        return timedelta(seconds=self.oauth_code_expiry)

    def get_oauth_token_expiry_delta(self) -> timedelta:
        """Get OAuth token expiry as timedelta"""
        return timedelta(seconds=self.oauth_token_expiry)
