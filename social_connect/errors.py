# social_connect/errors.py


class SocialConnectError(Exception):
    """Base error. `public_message` is the only text that may reach an end user."""

    public_message = "Something went wrong"

    def __init__(self, message: str = None, public_message: str = None):
        super().__init__(message or public_message or self.public_message)
        if public_message:
            self.public_message = public_message


class ValidationError(SocialConnectError):
    public_message = "Invalid request"


class NotConfigured(SocialConnectError):
    public_message = "This integration is not configured yet"


class OAuthFlowError(SocialConnectError):
    pass


class InvalidState(OAuthFlowError):
    public_message = "Invalid state"


class MissingCodeOrState(OAuthFlowError):
    public_message = "Missing code or state"


class TokenExchangeFailed(OAuthFlowError):
    public_message = "Failed to complete authorization"


class TokenRefreshFailed(OAuthFlowError):
    public_message = "Failed to refresh token. Please reconnect the platform."


class UserInfoFailed(OAuthFlowError):
    public_message = "Failed to fetch account information"


class EncryptionError(SocialConnectError):
    public_message = "Stored credentials are unreadable. Please reconnect the platform."


class EncryptionKeyError(EncryptionError):
    pass


class InvalidEncryptedFormat(EncryptionError):
    pass


class AuthenticationFailed(EncryptionError):
    pass


class PlatformNotConnected(SocialConnectError):
    public_message = "Platform not connected or token expired"


class PlatformAPIError(SocialConnectError):
    public_message = "Failed to fetch data from the platform"
