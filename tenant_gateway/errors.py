"""Gateway error taxonomy and the JSON error envelope."""
from typing import Optional, Dict, Any, List


class GatewayError(Exception):
    """Base error. Subclasses pin the HTTP status and the stable error code."""

    status_code: int = 500
    code: str = "INTERNAL"
    default_message: str = "Internal gateway error"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        self.headers = headers or {}
        super().__init__(self.message)

    def to_body(self) -> Dict[str, Any]:
        return error_body(self.code, self.message, self.details)


def error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Build the standard `{"error": {...}}` envelope."""
    body: Dict[str, Any] = {"code": code, "message": message}
    if details:
        body["details"] = details
    return {"error": body}


# --- 400 ---

class ValidationError(GatewayError):
    status_code = 400
    code = "MALFORMED_REQUEST"
    default_message = "Malformed request"


class MalformedRequest(ValidationError):
    def __init__(self, fields: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message or "Request body failed validation", details={"fields": fields})
        self.fields = fields


class UnknownTenant(ValidationError):
    code = "INVALID_TENANT"
    default_message = "Invalid tenant id"


class UnsupportedBackend(ValidationError):
    code = "UNSUPPORTED_BACKEND"
    default_message = "Unsupported realtime backend"


class MissingTenantHeader(ValidationError):
    code = "MISSING_TENANT"
    default_message = "X-Tenant-Id header is required"


# --- 401 ---

class AuthenticationError(GatewayError):
    status_code = 401
    code = "AUTH_INVALID"
    default_message = "Authentication failed"


class MissingCredential(AuthenticationError):
    code = "AUTH_MISSING"
    default_message = "Missing or malformed Authorization header"


class InvalidCredential(AuthenticationError):
    code = "AUTH_INVALID"
    default_message = "Invalid authorization token"


class CredentialExpired(AuthenticationError):
    code = "AUTH_EXPIRED"
    default_message = "Credential has expired"


# --- 403 ---

class AuthorizationError(GatewayError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Not authorized"


class TenantMismatch(AuthorizationError):
    code = "TENANT_MISMATCH"
    default_message = "Credential does not belong to this tenant"


class ProviderUnconfigured(AuthorizationError):
    code = "PROVIDER_UNCONFIGURED"
    default_message = "Provider API key missing in tenant configuration"


class GroupUnconfigured(AuthorizationError):
    code = "GROUP_UNCONFIGURED"
    default_message = "User group not configured for this tenant"


# --- 404 ---

class NotFoundError(GatewayError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Not found"


class TenantNotFound(NotFoundError):
    code = "TENANT_NOT_FOUND"
    default_message = "Tenant not found"


# --- 429 ---

class QuotaExceeded(GatewayError):
    status_code = 429
    code = "QUOTA_EXCEEDED"
    default_message = "Quota exceeded"


class InsufficientBudget(QuotaExceeded):
    code = "INSUFFICIENT_BUDGET"
    default_message = "Insufficient tokens"


class RateLimitExceeded(QuotaExceeded):
    code = "RATE_LIMITED"
    default_message = "Rate limit exceeded"


# --- 5xx ---

class UpstreamError(GatewayError):
    status_code = 502
    code = "UPSTREAM_ERROR"
    default_message = "Upstream provider error"


class UpstreamUnreachable(UpstreamError):
    code = "UPSTREAM_UNREACHABLE"
    default_message = "Error connecting to provider"


class InternalError(GatewayError):
    status_code = 500
    code = "INTERNAL"
    default_message = "Internal gateway error"
