# social_connect/oauth/base.py
"""
Platform-agnostic OAuth2 flow. Subclasses supply the four platform calls
(build_authorization_url, exchange_code_for_tokens, refresh_access_token,
get_user_info). PKCE, state handling, token encryption, persistence and
lazy refresh live here.
"""
import abc
from datetime import datetime, timedelta
from typing import List, NamedTuple, Optional

import httpx
import structlog

from social_connect.config import PlatformCredentials
from social_connect.errors import (
    EncryptionError,
    InvalidState,
    MissingCodeOrState,
    NotConfigured,
    OAuthFlowError,
    PlatformNotConnected,
    TokenRefreshFailed,
    ValidationError,
)
from social_connect.infrastructure.http_client import ExternalAPIClient
from social_connect.infrastructure.platforms_repo import OAuthAttemptRepository, PlatformsRepository
from social_connect.models.connected_platform import Platform, PlatformConnection
from social_connect.models.oauth_attempt import OAuthAttempt
from social_connect.oauth.encryption import TokenCipher
from social_connect.oauth.pkce import create_pkce_pair
from social_connect.oauth.state_store import OAuthStateEntry, OAuthStateStore
from social_connect.schemas.platform_schema import (
    AuthorizationRequest,
    ConnectionRecord,
    OAuthTokens,
    OAuthUserInfo,
)
from social_connect.utils import as_utc, utcnow

logger = structlog.get_logger(__name__)

# failures the adapters normalize into TokenExchangeFailed / TokenRefreshFailed / UserInfoFailed
UPSTREAM_ERRORS = (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError, AttributeError)


class CallbackResult(NamedTuple):
    user_id: str
    connection: ConnectionRecord
    user_info: OAuthUserInfo


class BaseOAuthService(abc.ABC):
    platform: Platform
    scopes: List[str] = []
    scope_separator = " "

    # proactive refresh; None means tokens are refreshed lazily only
    refresh_interval: Optional[timedelta] = None
    token_lifetime: Optional[timedelta] = None
    # Instagram re-exchanges the access token instead of holding a refresh token
    refresh_with_access_token = False

    def __init__(
        self,
        credentials: PlatformCredentials,
        repo: PlatformsRepository,
        cipher: TokenCipher,
        state_store: OAuthStateStore,
        attempts: Optional[OAuthAttemptRepository] = None,
        http: Optional[ExternalAPIClient] = None,
    ):
        self.credentials = credentials
        self.repo = repo
        self.cipher = cipher
        self.state_store = state_store
        self.attempts = attempts
        self.http = http if http is not None else ExternalAPIClient()

    @property
    def client_id(self) -> Optional[str]:
        return self.credentials.client_id

    @property
    def client_secret(self) -> Optional[str]:
        return self.credentials.client_secret

    @property
    def redirect_uri(self) -> Optional[str]:
        return self.credentials.redirect_uri

    def is_configured(self) -> bool:
        return self.credentials.is_configured()

    def ensure_configured(self) -> None:
        if not self.is_configured():
            raise NotConfigured(
                f"{self.platform.value} credentials missing",
                public_message=(
                    f"{self.platform.display_name} integration is not configured yet. "
                    "Please contact the administrator to set up OAuth credentials."
                ),
            )

    # --- authorization ---

    async def generate_authorization_url(self, user_id: str) -> AuthorizationRequest:
        if not user_id or not str(user_id).strip():
            raise ValidationError("user_id is required")
        self.ensure_configured()
        pkce = create_pkce_pair()
        state = await self.state_store.store(user_id, pkce.code_verifier)
        auth_url = self.build_authorization_url(state, pkce.code_challenge)
        logger.info("oauth_authorize_started", platform=self.platform.value, user_id=str(user_id))
        return AuthorizationRequest(auth_url=auth_url, state=state)

    async def get_oauth_state(self, state: str) -> Optional[OAuthStateEntry]:
        return await self.state_store.retrieve(state)

    @abc.abstractmethod
    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        ...

    @abc.abstractmethod
    async def exchange_code_for_tokens(self, code: str, code_verifier: str) -> OAuthTokens:
        ...

    @abc.abstractmethod
    async def refresh_access_token(self, credential: str) -> OAuthTokens:
        """`credential` is the refresh token, or the access token when refresh_with_access_token is set."""

    @abc.abstractmethod
    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        ...

    async def handle_callback(self, code: Optional[str], state: Optional[str], ip_address: Optional[str] = None) -> CallbackResult:
        if not code or not state:
            raise MissingCodeOrState()

        entry = await self.get_oauth_state(state)
        if entry is None:
            await self.log_oauth_attempt(None, False, "invalid_state", ip_address)
            raise InvalidState()

        try:
            tokens = await self.exchange_code_for_tokens(code, entry.code_verifier)
            user_info = await self.get_user_info(tokens.access_token)
            connection = await self.save_platform_connection(
                entry.user_id, tokens, user_info, self.granted_scopes(tokens)
            )
        except OAuthFlowError as exc:
            await self.log_oauth_attempt(entry.user_id, False, exc.public_message, ip_address)
            raise
        except Exception as exc:
            await self.log_oauth_attempt(entry.user_id, False, f"unexpected: {type(exc).__name__}", ip_address)
            raise

        await self.log_oauth_attempt(entry.user_id, True, None, ip_address)
        logger.info(
            "oauth_connected",
            platform=self.platform.value,
            user_id=entry.user_id,
            platform_user_id=user_info.platform_user_id,
        )
        return CallbackResult(user_id=entry.user_id, connection=connection, user_info=user_info)

    def granted_scopes(self, tokens: OAuthTokens) -> List[str]:
        if tokens.scope:
            return [s for s in tokens.scope.replace(",", " ").split() if s]
        return list(self.scopes)

    # --- persistence ---

    def _expires_at(self, tokens: OAuthTokens) -> Optional[datetime]:
        if not tokens.expires_in:
            return None
        return utcnow() + timedelta(seconds=tokens.expires_in)

    async def save_platform_connection(
        self,
        user_id: str,
        tokens: OAuthTokens,
        user_info: OAuthUserInfo,
        scopes_granted: List[str],
    ) -> ConnectionRecord:
        fields = {
            "access_token_enc": self.cipher.encrypt(tokens.access_token),
            "refresh_token_enc": self.cipher.encrypt(tokens.refresh_token) if tokens.refresh_token else None,
            "token_expires_at": self._expires_at(tokens),
            "platform_user_id": user_info.platform_user_id,
            "platform_username": user_info.platform_username,
            "scopes_granted": list(scopes_granted),
            "last_synced": utcnow(),
        }
        cp = await self.repo.upsert_connection(str(user_id), self.platform, fields)
        return self._decrypt(cp)

    def _decrypt(self, cp: PlatformConnection) -> ConnectionRecord:
        return ConnectionRecord(
            id=cp.id,
            user_id=cp.user_id,
            platform=Platform(cp.platform),
            access_token=self.cipher.decrypt(cp.access_token_enc),
            refresh_token=self.cipher.decrypt(cp.refresh_token_enc) if cp.refresh_token_enc else None,
            token_expires_at=cp.token_expires_at,
            platform_user_id=cp.platform_user_id,
            platform_username=cp.platform_username,
            scopes_granted=list(cp.scopes_granted or []),
            connected_at=cp.connected_at,
            last_synced=cp.last_synced,
            is_active=cp.is_active,
        )

    async def get_connection(self, user_id: str) -> Optional[ConnectionRecord]:
        """Raises EncryptionError if the stored tokens cannot be decrypted."""
        cp = await self.repo.find_connection(str(user_id), self.platform)
        if cp is None:
            return None
        return self._decrypt(cp)

    async def disconnect(self, user_id: str) -> dict:
        # the row is kept for history and the token is not revoked upstream
        found = await self.repo.set_active(str(user_id), self.platform, False)
        logger.info("platform_disconnected", platform=self.platform.value, user_id=str(user_id), found=found)
        return {"success": True}

    # --- token validity ---

    def is_token_expired(self, expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        if expires_at is None:
            return False
        return as_utc(expires_at) < as_utc(now or utcnow())

    def refresh_credential(self, connection: ConnectionRecord) -> Optional[str]:
        if self.refresh_with_access_token:
            return connection.access_token
        return connection.refresh_token

    async def _load_active(self, user_id: str) -> Optional[ConnectionRecord]:
        try:
            connection = await self.get_connection(user_id)
        except EncryptionError as exc:
            logger.error(
                "connection_tokens_unreadable",
                platform=self.platform.value,
                user_id=str(user_id),
                error_type=type(exc).__name__,
            )
            return None
        if connection is None or not connection.is_active:
            return None
        return connection

    async def get_valid_access_token(self, user_id: str) -> Optional[str]:
        """
        The only way downstream code should obtain an access token. Refreshes
        an expired token once; returns None when there is no usable connection.
        """
        connection = await self._load_active(user_id)
        if connection is None:
            return None
        if not self.is_token_expired(connection.token_expires_at):
            return connection.access_token
        return await self._refresh_and_persist(connection)

    async def refresh_connection(self, user_id: str) -> Optional[str]:
        """Refresh now, whether or not the token has expired."""
        connection = await self._load_active(user_id)
        if connection is None:
            return None
        return await self._refresh_and_persist(connection)

    async def _refresh_and_persist(self, connection: ConnectionRecord) -> Optional[str]:
        credential = self.refresh_credential(connection)
        if not credential:
            logger.warning(
                "token_refresh_skipped",
                platform=self.platform.value,
                user_id=connection.user_id,
                reason="no_refresh_credential",
            )
            return None

        try:
            tokens = await self.refresh_access_token(credential)
        except TokenRefreshFailed:
            # connection stays as-is (stale) until the next attempt or a reconnect
            logger.warning("token_refresh_failed", platform=self.platform.value, user_id=connection.user_id)
            return None

        refresh_token = tokens.refresh_token or connection.refresh_token
        await self.repo.update_tokens(
            connection.user_id,
            self.platform,
            self.cipher.encrypt(tokens.access_token),
            self.cipher.encrypt(refresh_token) if refresh_token else None,
            self._expires_at(tokens),
        )
        logger.info(
            "token_refreshed",
            platform=self.platform.value,
            user_id=connection.user_id,
            rotated=bool(tokens.refresh_token and tokens.refresh_token != connection.refresh_token),
            expires_in=tokens.expires_in,
        )
        return tokens.access_token

    # --- audit ---

    async def log_oauth_attempt(
        self,
        user_id: Optional[str],
        success: bool,
        error: Optional[str],
        ip_address: Optional[str],
    ) -> None:
        """Best effort: an audit failure never aborts the flow."""
        if self.attempts is None:
            return
        try:
            await self.attempts.create(
                OAuthAttempt(
                    user_id=str(user_id) if user_id else None,
                    platform=self.platform.value,
                    success=success,
                    error=error,
                    ip_address=ip_address,
                )
            )
        except Exception as e:
            logger.warning("oauth_attempt_log_failed", platform=self.platform.value, error=str(e))

    # --- helpers for adapters ---

    def _log_upstream_failure(self, event: str, exc: Exception) -> None:
        if isinstance(exc, httpx.HTTPStatusError):
            logger.error(
                event,
                platform=self.platform.value,
                status_code=exc.response.status_code,
                body=exc.response.text[:500],
            )
        else:
            logger.error(event, platform=self.platform.value, error_type=type(exc).__name__)

    @staticmethod
    def _tokens_from(data: dict, refresh_token: Optional[str] = None) -> OAuthTokens:
        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_in=data.get("expires_in"),
            token_type=data.get("token_type") or "Bearer",
            scope=data.get("scope"),
        )

    async def _require_access_token(self, user_id: str) -> str:
        token = await self.get_valid_access_token(user_id)
        if not token:
            raise PlatformNotConnected(f"{self.platform.value} not connected for user {user_id}")
        return token
