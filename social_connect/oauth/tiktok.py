# social_connect/oauth/tiktok.py
from datetime import timedelta
from urllib.parse import urlencode

import structlog

from social_connect.errors import TokenExchangeFailed, TokenRefreshFailed, UserInfoFailed
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import UPSTREAM_ERRORS, BaseOAuthService
from social_connect.schemas.platform_schema import OAuthTokens, OAuthUserInfo

logger = structlog.get_logger(__name__)

AUTH_URL = "https://www.tiktok.com/v2/auth/authorize/"
TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
USER_INFO_URL = "https://open.tiktokapis.com/v2/user/info/"
USER_INFO_FIELDS = "open_id,union_id,avatar_url,display_name"


class TikTokAPIError(ValueError):
    """A 200 response whose body reports an error."""


def _unwrap(body: dict) -> dict:
    """
    TikTok reports failures inside 200 bodies, either as an `error` string
    (token endpoint) or an `error` object whose code is not "ok" (open API).
    """
    err = body.get("error")
    if isinstance(err, dict):
        if err.get("code") not in (None, "", "ok"):
            raise TikTokAPIError(err.get("code"))
    elif err:
        raise TikTokAPIError(err)
    # some responses nest the payload under "data"
    return body.get("data") or body


class TikTokOAuthService(BaseOAuthService):
    platform = Platform.TIKTOK
    scopes = ["user.info.basic", "video.list", "video.insights"]
    scope_separator = ","

    # access tokens live 24h; refresh with a 2h margin
    refresh_interval = timedelta(hours=22)
    token_lifetime = timedelta(hours=24)

    _form_headers = {"Content-Type": "application/x-www-form-urlencoded"}

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "client_key": self.client_id,
            "scope": self.scope_separator.join(self.scopes),
            "response_type": "code",
            "redirect_uri": self.redirect_uri,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def _log_tiktok_error(self, event: str, exc: Exception) -> None:
        if isinstance(exc, TikTokAPIError):
            logger.error(event, platform=self.platform.value, tiktok_error=str(exc))
        else:
            self._log_upstream_failure(event, exc)

    async def exchange_code_for_tokens(self, code: str, code_verifier: str) -> OAuthTokens:
        try:
            body = await self.http.post(
                TOKEN_URL,
                headers=self._form_headers,
                data={
                    "client_key": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                    "code_verifier": code_verifier,
                },
            )
            return self._tokens_from(_unwrap(body))
        except UPSTREAM_ERRORS as exc:
            self._log_tiktok_error("token_exchange_failed", exc)
            raise TokenExchangeFailed("tiktok token exchange failed") from None

    async def refresh_access_token(self, credential: str) -> OAuthTokens:
        try:
            body = await self.http.post(
                TOKEN_URL,
                headers=self._form_headers,
                data={
                    "client_key": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                    "refresh_token": credential,
                },
            )
            # TikTok rotates the refresh token on every refresh
            return self._tokens_from(_unwrap(body))
        except UPSTREAM_ERRORS as exc:
            self._log_tiktok_error("token_refresh_upstream_error", exc)
            raise TokenRefreshFailed("tiktok token refresh failed") from None

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        try:
            body = await self.http.get(
                USER_INFO_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                params={"fields": USER_INFO_FIELDS},
            )
            user = _unwrap(body)["user"]
            return OAuthUserInfo(
                platform_user_id=user["open_id"],
                platform_username=user.get("display_name"),
            )
        except UPSTREAM_ERRORS as exc:
            self._log_tiktok_error("user_info_failed", exc)
            raise UserInfoFailed("tiktok user info failed") from None
