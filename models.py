from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

# Credential store models
class StoreEntry(BaseModel):
    """Lifetime record kept for an authorization code or access token"""
    model_config = ConfigDict(frozen=True)

    client_id: str
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at < now

class TokenVerification(BaseModel):
    """Outcome of an access token check"""
    valid: bool
    client_id: Optional[str] = None

class SweepResult(BaseModel):
    """Entries removed by one expiry sweep"""
    codes_removed: int = 0
    tokens_removed: int = 0

    @property
    def total(self) -> int:
        return self.codes_removed + self.tokens_removed

# OAuth Models
class TokenResponse(BaseModel):
    """OAuth 2.0 Token Response"""
    access_token: str
    token_type: str = "Bearer"
    expires_in: int

class OAuthErrorResponse(BaseModel):
    """OAuth 2.0 Error Response (RFC 6749 section 5.2)"""
    error: str
    error_description: Optional[str] = None

# MCP Models
class MCPToolCallParams(BaseModel):
    """MCP Tool Call Parameters"""
    name: str
    arguments: Optional[Dict[str, Any]] = Field(default_factory=dict)

class MCPContentItem(BaseModel):
    """MCP Content Item"""
    type: str
    text: Optional[str] = None

class MCPToolCallResult(BaseModel):
    """MCP Tool Call Result"""
    content: List[MCPContentItem]
    isError: Optional[bool] = False

# API Response Models
class HealthCheckResponse(BaseModel):
    """Health Check Response"""
    status: str
    service: str
    version: str
    timestamp: str
    components: Dict[str, str]
    store: Dict[str, int]
    environment: str
