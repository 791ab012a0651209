import base64
import binascii
import hmac
import logging
import secrets
import time
from datetime import timedelta
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import jwt

from config import Config
from models import OAuthErrorResponse, StoreEntry, TokenResponse, TokenVerification
from token_store import ACCESS_TOKENS, AUTHORIZATION_CODES, TokenStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access_token"
DEFAULT_CODE_LIFETIME = timedelta(minutes=10)
DEFAULT_TOKEN_LIFETIME = timedelta(hours=24)

Clock = Callable[[], float]


class OAuthError(Exception):
    """
    Base class for OAuth flow failures.

    Carries the RFC 6749 error code, a human readable description and the
    HTTP status the route should answer with.
    """

    error = "server_error"
    status_code = 400

    def __init__(self, description: str):
        self.description = description
        super().__init__(description)

    def to_response(self) -> OAuthErrorResponse:
        return OAuthErrorResponse(error=self.error, error_description=self.description)


class InvalidRequest(OAuthError):
    error = "invalid_request"


class InvalidClient(OAuthError):
    error = "invalid_client"
    status_code = 401


class InvalidGrant(OAuthError):
    error = "invalid_grant"


class InvalidToken(OAuthError):
    error = "invalid_token"
    status_code = 401


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"


class AuthorizationCodeIssuer:
    """Issues one-time authorization codes and consumes them exactly once"""

    def __init__(self, store: TokenStore, lifetime: timedelta = DEFAULT_CODE_LIFETIME,
                 clock: Clock = time.time):
        self.store = store
        self.lifetime = lifetime.total_seconds()
        self.clock = clock

    def issue(self, client_id: str) -> str:
        code = secrets.token_urlsafe(32)
        self.store.put(
            AUTHORIZATION_CODES,
            code,
            StoreEntry(client_id=client_id, expires_at=self.clock() + self.lifetime),
        )
        return code

    def verify_and_consume(self, code: str, client_id: str) -> bool:
        """
        Redeem a code for ``client_id``.

        Expired codes are deleted on touch. A code presented by the wrong client
        is left in place so the rightful client can still redeem it.
        """
        entry = self.store.get(AUTHORIZATION_CODES, code)
        if entry is None:
            return False

        if entry.is_expired(self.clock()):
            self.store.compare_and_delete(AUTHORIZATION_CODES, code, entry)
            return False

        if entry.client_id != client_id:
            return False

        # Only the caller that actually removes the entry wins
        return self.store.compare_and_delete(AUTHORIZATION_CODES, code, entry)


class AccessTokenIssuer:
    """Mints signed bearer tokens and tracks their lifetime in the store"""

    def __init__(self, store: TokenStore, secret: str, algorithm: str = "HS256",
                 lifetime: timedelta = DEFAULT_TOKEN_LIFETIME, clock: Clock = time.time):
        if not secret:
            raise ValueError("A signing secret is required")
        self.store = store
        self.secret = secret
        self.algorithm = algorithm
        self.lifetime = lifetime.total_seconds()
        self.clock = clock

    def issue(self, client_id: str) -> str:
        now = self.clock()
        issued_at = int(now)
        token = jwt.encode(
            {
                "clientId": client_id,
                "type": ACCESS_TOKEN_TYPE,
                "iat": issued_at,
                "exp": issued_at + int(self.lifetime),
                "jti": secrets.token_hex(16),
            },
            self.secret,
            algorithm=self.algorithm,
        )
        # The store keeps its own clock; both must pass at verification time
        self.store.put(ACCESS_TOKENS, token, StoreEntry(client_id=client_id, expires_at=now + self.lifetime))
        return token

    def verify(self, token: str) -> TokenVerification:
        """Check signature, embedded expiry and store membership. Never raises."""
        if not token:
            return TokenVerification(valid=False)

        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "clientId"]},
            )
        except jwt.PyJWTError as e:
            logger.debug(f"Rejected access token: {e}")
            return TokenVerification(valid=False)

        client_id = claims.get("clientId")
        if claims.get("type") != ACCESS_TOKEN_TYPE or not isinstance(client_id, str):
            return TokenVerification(valid=False)

        entry = self.store.get(ACCESS_TOKENS, token)
        if entry is None:
            return TokenVerification(valid=False)

        if entry.is_expired(self.clock()):
            self.store.compare_and_delete(ACCESS_TOKENS, token, entry)
            return TokenVerification(valid=False)

        return TokenVerification(valid=True, client_id=client_id)


class ClientCredentialValidator:
    """Checks client credentials against the single configured pair"""

    def __init__(self, client_id: str, client_secret: str):
        self._client_id = client_id.encode()
        self._client_secret = client_secret.encode()

    def verify(self, client_id: Optional[str], client_secret: Optional[str]) -> bool:
        if client_id is None or client_secret is None:
            return False
        # Evaluate both comparisons so timing does not reveal which field failed
        id_ok = hmac.compare_digest(client_id.encode(), self._client_id)
        secret_ok = hmac.compare_digest(client_secret.encode(), self._client_secret)
        return id_ok and secret_ok


def parse_basic_credentials(authorization_header: Optional[str]) -> Optional[Tuple[str, str]]:
    """Decode ``Basic base64(id:secret)``. Returns None when absent or malformed."""
    if not authorization_header:
        return None

    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "basic":
        return None

    try:
        decoded = base64.b64decode(parts[1].strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    client_id, sep, client_secret = decoded.partition(":")
    if not sep:
        return None
    return client_id, client_secret


def parse_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    if not authorization_header:
        return None
    parts = authorization_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        return None
    return parts[1].strip()


class AuthManager:
    """OAuth 2.0 authorization-code flow built on the credential store"""

    def __init__(self, config: Config, store: Optional[TokenStore] = None, clock: Clock = time.time):
        self.config = config
        self.store = store if store is not None else TokenStore()
        self.codes = AuthorizationCodeIssuer(
            self.store, config.get_oauth_code_expiry_delta(), clock=clock
        )
        self.tokens = AccessTokenIssuer(
            self.store,
            config.jwt_secret,
            algorithm=config.jwt_algorithm,
            lifetime=config.get_oauth_token_expiry_delta(),
            clock=clock,
        )
        self.clients = ClientCredentialValidator(config.oauth_client_id, config.oauth_client_secret)

    def validate_authorization_request(self, client_id: Optional[str], redirect_uri: Optional[str],
                                       response_type: Optional[str]) -> None:
        """Validate the query of an authorization request before showing consent"""
        if not client_id or not redirect_uri or response_type != "code":
            raise InvalidRequest("Missing or invalid parameters")

        if not self._is_valid_redirect_uri(redirect_uri):
            raise InvalidRequest("Invalid redirect_uri")

    def create_authorization(self, client_id: str, redirect_uri: str, state: Optional[str],
                             action: Optional[str]) -> str:
        """Record the consent decision and return the URL to redirect the user agent to"""
        self.validate_authorization_request(client_id, redirect_uri, "code")

        if action != "allow":
            logger.info(f"Authorization denied for client {client_id}")
            return self._build_redirect(redirect_uri, {"error": "access_denied", "state": state or ""})

        code = self.codes.issue(client_id)
        logger.info(f"Authorization code created for client {client_id}")

        params = {"code": code}
        if state:
            params["state"] = state
        return self._build_redirect(redirect_uri, params)

    def exchange_code_for_token(self, form_data: Dict[str, str],
                                authorization_header: Optional[str] = None) -> TokenResponse:
        """Exchange an authorization code for an access token"""
        client_id = form_data.get("client_id")
        client_secret = form_data.get("client_secret")

        # Fall back to HTTP Basic client authentication
        if not client_id or not client_secret:
            basic = parse_basic_credentials(authorization_header)
            if basic:
                client_id, client_secret = basic

        grant_type = form_data.get("grant_type")
        code = form_data.get("code")

        if grant_type != "authorization_code":
            raise UnsupportedGrantType("Only authorization_code grant type is supported")

        if not code or not client_id or not client_secret:
            raise InvalidRequest("Missing required parameters")

        if not self.clients.verify(client_id, client_secret):
            logger.warning(f"Token request with invalid credentials for client {client_id}")
            raise InvalidClient("Invalid client credentials")

        if not self.codes.verify_and_consume(code, client_id):
            logger.warning(f"Invalid or expired authorization code presented by client {client_id}")
            raise InvalidGrant("Invalid or expired authorization code")

        access_token = self.tokens.issue(client_id)
        logger.info(f"Access token issued for client {client_id}")

        return TokenResponse(
            access_token=access_token,
            token_type="Bearer",
            expires_in=self.config.oauth_token_expiry,
        )

    def authenticate(self, authorization_header: Optional[str]) -> str:
        """Resolve the client id behind a Bearer header or raise InvalidToken"""
        token = parse_bearer_token(authorization_header)
        if token is None:
            raise InvalidToken("Authentication required")

        verification = self.tokens.verify(token)
        if not verification.valid:
            logger.info(f"Rejected access token {token[:8]}...")
            raise InvalidToken("Invalid or expired token")

        return verification.client_id

    def _build_redirect(self, redirect_uri: str, params: Dict[str, str]) -> str:
        parts = urlsplit(redirect_uri)
        query = dict(parse_qsl(parts.query, keep_blank_values=True))
        query.update(params)
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

    def _is_valid_redirect_uri(self, uri: str) -> bool:
        """Validate redirect URI according to OAuth 2.1 security requirements"""
        parts = urlsplit(uri)
        if not parts.scheme:
            return False

        # HTTPS required except for localhost
        if parts.scheme == "https":
            return bool(parts.netloc)

        if parts.scheme == "http":
            return parts.hostname in ("localhost", "127.0.0.1")

        # Custom schemes are allowed for native apps
        return parts.scheme not in ("javascript", "data", "file")
