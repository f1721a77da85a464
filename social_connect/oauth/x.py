# social_connect/oauth/x.py
import asyncio
from typing import Any, List, Optional
from urllib.parse import urlencode

from social_connect.errors import PlatformAPIError, TokenExchangeFailed, TokenRefreshFailed, UserInfoFailed
from social_connect.models.connected_platform import Platform
from social_connect.oauth.base import UPSTREAM_ERRORS, BaseOAuthService
from social_connect.oauth.rate_limit import with_rate_limit
from social_connect.schemas.platform_schema import OAuthTokens, OAuthUserInfo

AUTH_URL = "https://x.com/i/oauth2/authorize"
API_URL = "https://api.x.com/2"
TOKEN_URL = f"{API_URL}/oauth2/token"
ME_URL = f"{API_URL}/users/me"


def _tweet_summary(tweet: dict) -> dict:
    metrics = tweet.get("public_metrics") or {}
    return {
        "id": tweet["id"],
        "text": tweet.get("text", ""),
        "created_at": tweet.get("created_at"),
        "likes": metrics.get("like_count", 0),
        "retweets": metrics.get("retweet_count", 0),
        "replies": metrics.get("reply_count", 0),
        "impressions": metrics.get("impression_count", 0),
    }


class XOAuthService(BaseOAuthService):
    """
    X (Twitter) API v2 with OAuth 2.0 user context. Every outbound call goes
    through with_rate_limit, which waits out a 429 and retries once.
    """

    platform = Platform.X
    scopes = ["tweet.read", "tweet.write", "users.read", "offline.access"]

    def __init__(self, *args, sleep=asyncio.sleep, **kwargs):
        super().__init__(*args, **kwargs)
        self._sleep = sleep

    def build_authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": self.scope_separator.join(self.scopes),
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def _token_request(self, data: dict) -> Any:
        return await with_rate_limit(
            lambda: self.http.post(
                TOKEN_URL,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data=data,
                auth=(self.client_id, self.client_secret),
            ),
            sleep=self._sleep,
        )

    async def _api_get(self, url: str, access_token: str, params: Optional[dict] = None) -> Any:
        return await with_rate_limit(
            lambda: self.http.get(url, headers={"Authorization": f"Bearer {access_token}"}, params=params),
            sleep=self._sleep,
        )

    async def exchange_code_for_tokens(self, code: str, code_verifier: str) -> OAuthTokens:
        try:
            data = await self._token_request(
                {
                    "code": code,
                    "grant_type": "authorization_code",
                    "client_id": self.client_id,
                    "redirect_uri": self.redirect_uri,
                    "code_verifier": code_verifier,
                }
            )
            return self._tokens_from(data)
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("token_exchange_failed", exc)
            raise TokenExchangeFailed("x token exchange failed") from None

    async def refresh_access_token(self, credential: str) -> OAuthTokens:
        try:
            # X rotates refresh tokens; the old one is invalid after this call
            data = await self._token_request(
                {
                    "refresh_token": credential,
                    "grant_type": "refresh_token",
                    "client_id": self.client_id,
                }
            )
            return self._tokens_from(data)
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("token_refresh_upstream_error", exc)
            raise TokenRefreshFailed("x token refresh failed") from None

    async def _me(self, access_token: str, fields: str = "id,name,username,public_metrics") -> dict:
        body = await self._api_get(ME_URL, access_token, params={"user.fields": fields})
        return body["data"]

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        try:
            user = await self._me(access_token)
            return OAuthUserInfo(platform_user_id=user["id"], platform_username=user.get("username"))
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("user_info_failed", exc)
            raise UserInfoFailed("x user info failed") from None

    async def get_user_timeline(self, user_id: str) -> List[dict]:
        """Latest 10 original tweets (no retweets or replies) with engagement metrics."""
        access_token = await self._require_access_token(user_id)
        try:
            me = await self._me(access_token)
            body = await self._api_get(
                f"{API_URL}/users/{me['id']}/tweets",
                access_token,
                params={
                    "max_results": 10,
                    "tweet.fields": "created_at,public_metrics,entities",
                    "exclude": "retweets,replies",
                },
            )
            return [_tweet_summary(t) for t in body.get("data") or []]
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("user_timeline_failed", exc)
            raise PlatformAPIError("x timeline failed") from None

    async def get_mentions(self, user_id: str) -> List[dict]:
        access_token = await self._require_access_token(user_id)
        try:
            me = await self._me(access_token, fields="id")
            body = await self._api_get(
                f"{API_URL}/users/{me['id']}/mentions",
                access_token,
                params={"max_results": 10, "tweet.fields": "created_at,public_metrics,author_id"},
            )
            return list(body.get("data") or [])
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("mentions_failed", exc)
            raise PlatformAPIError("x mentions failed") from None

    async def get_user_analytics(self, user_id: str) -> dict:
        access_token = await self._require_access_token(user_id)
        try:
            me = await self._me(access_token, fields="public_metrics")
            metrics = me["public_metrics"]
            return {
                "followers_count": metrics["followers_count"],
                "following_count": metrics["following_count"],
                "tweet_count": metrics["tweet_count"],
                "listed_count": metrics["listed_count"],
            }
        except UPSTREAM_ERRORS as exc:
            self._log_upstream_failure("user_analytics_failed", exc)
            raise PlatformAPIError("x analytics failed") from None
