# social_connect/oauth/instagram.py
"""
Instagram Business/Creator accounts via Facebook Login. There is no refresh
token: the long-lived user token (60 days) is re-exchanged before it expires.
"""
from datetime import timedelta
from urllib.parse import urlencode

import structlog

from social_connect.errors import TokenExchangeFailed, TokenRefreshFailed, UserInfoFailed
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import UPSTREAM_ERRORS, BaseOAuthService
from social_connect.schemas.platform_schema import OAuthTokens, OAuthUserInfo

logger = structlog.get_logger(__name__)

GRAPH_VERSION = "v21.0"
AUTH_URL = f"https://www.facebook.com/{GRAPH_VERSION}/dialog/oauth"
GRAPH_URL = f"https://graph.facebook.com/{GRAPH_VERSION}"
TOKEN_URL = f"{GRAPH_URL}/oauth/access_token"

LONG_LIVED_TOKEN_SECONDS = 60 * 24 * 60 * 60

NO_BUSINESS_ACCOUNT_MESSAGE = (
    "No Instagram Business Account found. Please connect your "
    "Instagram Business/Creator account to a Facebook Page."
)


class InstagramOAuthService(BaseOAuthService):
    platform = Platform.INSTAGRAM
    scopes = [
        "instagram_basic",
        "instagram_manage_insights",
        "instagram_manage_comments",
        "pages_show_list",
        "pages_read_engagement",
    ]
    scope_separator = ","

    refresh_interval = timedelta(days=50)
    token_lifetime = timedelta(days=60)
    refresh_with_access_token = True

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        # Facebook Login does not take PKCE parameters
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope_separator.join(self.scopes),
            "response_type": "code",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def _long_lived(self, token: str) -> OAuthTokens:
        data = await self.http.get(
            TOKEN_URL,
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "fb_exchange_token": token,
            },
        )
        return OAuthTokens(
            access_token=data["access_token"],
            expires_in=data.get("expires_in") or LONG_LIVED_TOKEN_SECONDS,
            token_type="Bearer",
        )

    async def exchange_code_for_tokens(self, code: str, code_verifier: str) -> OAuthTokens:
        try:
            data = await self.http.get(
                TOKEN_URL,
                params={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "code": code,
                },
            )
            short_lived = data["access_token"]
            tokens = await self._long_lived(short_lived)
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("token_exchange_failed", exc)
            raise TokenExchangeFailed("instagram token exchange failed") from None
        logger.info("instagram_long_lived_token_issued", expires_in=tokens.expires_in)
        return tokens

    async def refresh_access_token(self, credential: str) -> OAuthTokens:
        try:
            return await self._long_lived(credential)
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("token_refresh_upstream_error", exc)
            raise TokenRefreshFailed("instagram token refresh failed") from None

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        try:
            pages = await self.http.get(
                f"{GRAPH_URL}/me/accounts",
                params={"access_token": access_token, "fields": "instagram_business_account,name"},
            )
            page = next((p for p in pages["data"] if p.get("instagram_business_account")), None)
            if page is None:
                logger.warning("instagram_business_account_missing", pages=len(pages["data"]))
                raise UserInfoFailed(
                    "no instagram business account on any page",
                    public_message=NO_BUSINESS_ACCOUNT_MESSAGE,
                )

            ig_id = page["instagram_business_account"]["id"]
            account = await self.http.get(
                f"{GRAPH_URL}/{ig_id}",
                params={
                    "access_token": access_token,
                    "fields": "id,username,name,profile_picture_url,followers_count,media_count",
                },
            )
            return OAuthUserInfo(
                platform_user_id=account["id"],
                platform_username=account.get("username"),
            )
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("user_info_failed", exc)
            raise UserInfoFailed("instagram user info failed") from None
