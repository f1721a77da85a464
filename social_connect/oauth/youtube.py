# social_connect/oauth/youtube.py
from urllib.parse import urlencode

from social_connect.errors import PlatformAPIError, TokenExchangeFailed, TokenRefreshFailed, UserInfoFailed
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import UPSTREAM_ERRORS, BaseOAuthService
from social_connect.schemas.platform_schema import OAuthTokens, OAuthUserInfo

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
CHANNELS_URL = "https://www.googleapis.com/youtube/v3/channels"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class YouTubeOAuthService(BaseOAuthService):
    platform = Platform.YOUTUBE
    scopes = [
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/youtube.force-ssl",
        "https://www.googleapis.com/auth/yt-analytics.readonly",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": self.scope_separator.join(self.scopes),
            "state": state,
            # offline + consent so Google issues a refresh token every time
            "access_type": "offline",
            "prompt": "consent",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str, code_verifier: str) -> OAuthTokens:
        try:
            data = await self.http.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "code_verifier": code_verifier,
                    "grant_type": "authorization_code",
                    "redirect_uri": self.redirect_uri,
                },
            )
            return self._tokens_from(data)
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("token_exchange_failed", exc)
            raise TokenExchangeFailed("youtube token exchange failed") from None

    async def refresh_access_token(self, credential: str) -> OAuthTokens:
        try:
            data = await self.http.post(
                TOKEN_URL,
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "refresh_token": credential,
                    "grant_type": "refresh_token",
                },
            )
            # Google does not rotate refresh tokens
            return self._tokens_from(data, refresh_token=credential)
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("token_refresh_upstream_error", exc)
            raise TokenRefreshFailed("youtube token refresh failed") from None

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            data = await self.http.get(
                CHANNELS_URL,
                headers=headers,
                params={"part": "snippet,contentDetails,statistics", "mine": "true"},
            )
            items = data.get("items") or []
            if items:
                channel = items[0]
                return OAuthUserInfo(
                    platform_user_id=channel["id"],
                    platform_username=channel["snippet"]["title"],
                )

            # Google account without a channel
            info = await self.http.get(USERINFO_URL, headers=headers)
            return OAuthUserInfo(
                platform_user_id=info["id"],
                platform_username=info.get("email") or info.get("name") or "YouTube User",
                email=info.get("email"),
            )
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("user_info_failed", exc)
            raise UserInfoFailed("youtube user info failed") from None

    async def get_channel_analytics(self, user_id: str) -> dict:
        access_token = await self._require_access_token(user_id)
        try:
            data = await self.http.get(
                CHANNELS_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                params={"part": "snippet,statistics", "mine": "true"},
            )
            stats = data["items"][0]["statistics"]
            return {
                "subscriber_count": int(stats.get("subscriberCount", 0)),
                "view_count": int(stats.get("viewCount", 0)),
                "video_count": int(stats.get("videoCount", 0)),
            }
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("channel_analytics_failed", exc)
            raise PlatformAPIError("youtube channel analytics failed") from None
