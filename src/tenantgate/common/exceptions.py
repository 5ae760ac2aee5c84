"""TenantGate exception hierarchy.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with.
"""


class TenantGateError(Exception):
    """Base exception for all TenantGate errors."""

    status_code = 500

    def __init__(self, message: str = "", code: str = "TENANTGATE_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(TenantGateError):
    """Raised for malformed input such as a bad identifier."""

    status_code = 400

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, code="VALIDATION_ERROR")


class MissingTenant(TenantGateError):
    """Raised when a request that needs a tenant does not name one."""

    status_code = 400

    def __init__(self, message: str = "Tenant is required"):
        super().__init__(message, code="MISSING_TENANT")


class TenantMismatch(TenantGateError):
    """Raised when the session tenant differs from the tenant in the URL."""

    status_code = 401

    def __init__(self, message: str = "Tenant does not match session"):
        super().__init__(message, code="TENANT_MISMATCH")


class NotFound(TenantGateError):
    """Raised for an unknown tenant or setup token."""

    status_code = 404

    def __init__(self, message: str = "Not found"):
        super().__init__(message, code="NOT_FOUND")


class Conflict(TenantGateError):
    """Raised when a tenant identifier or name is already taken."""

    status_code = 409

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, code="CONFLICT")


class TokenExpired(TenantGateError):
    status_code = 410

    def __init__(self, message: str = "Setup token has expired"):
        super().__init__(message, code="EXPIRED")


class CredentialUnavailable(TenantGateError):
    """Raised when a tenant credential cannot be decrypted.

    ``field`` names the credential that failed. The message never contains
    key material or plaintext.
    """

    status_code = 500

    def __init__(self, field: str, tenant: str | None = None, message: str = ""):
        self.field = field
        self.tenant = tenant
        if not message:
            message = f"Unable to decrypt {field}"
            if tenant:
                message += f" for tenant '{tenant}'"
        super().__init__(message, code="CREDENTIAL_UNAVAILABLE")


class FederationUnavailable(TenantGateError):
    """Raised when an identity provider cannot be reached or answers badly."""

    status_code = 502

    def __init__(self, message: str = "Identity provider unavailable"):
        super().__init__(message, code="FEDERATION_UNAVAILABLE")


class AuthenticationFailed(TenantGateError):
    """Raised when a login attempt is rejected for any reason."""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTHENTICATION_FAILED")


# ── Cryptographic failures ──


class AuthenticationFailure(TenantGateError):
    """Raised when an encrypted payload is malformed or its tag does not verify."""

    def __init__(self, message: str = "Encrypted payload failed authentication"):
        super().__init__(message, code="AUTHENTICATION_FAILURE")


class InvalidKey(TenantGateError):
    """Raised when an AES key is not 32 bytes long."""

    def __init__(self, message: str = "Key must be 32 bytes"):
        super().__init__(message, code="INVALID_KEY")


class MissingKeyMaterial(TenantGateError):
    """Raised when a tenant record carries no wrapped tenant key."""

    def __init__(self, message: str = "Tenant has no encryption key"):
        super().__init__(message, code="MISSING_KEY_MATERIAL")


class InvalidToken(TenantGateError):
    """Raised when an obfuscated tenant id cannot be parsed."""

    status_code = 400

    def __init__(self, message: str = "Invalid tenant token"):
        super().__init__(message, code="INVALID_TOKEN")
