"""Remote error taxonomy and translation of botocore failures."""

from typing import Any

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)


class RemoteError(Exception):
    """Base class for failures reported by AWS."""

    status_code = 500

    def __init__(self, message: str, code: str | None = None) -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class RemoteThrottlingError(RemoteError):
    """AWS asked us to slow down. Retried internally."""

    status_code = 503


class RemoteNotFoundError(RemoteError):
    """The cluster, service or definition does not exist."""

    status_code = 404


class RemotePermissionDeniedError(RemoteError):
    """Credentials are missing, invalid or lack permissions."""


class RemoteUnknownError(RemoteError):
    """Anything else AWS rejected."""


THROTTLING_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "RequestThrottled",
    "RequestThrottledException",
    "SlowDown",
}

NOT_FOUND_MESSAGES = {
    "ClusterNotFoundException": "Cluster not found",
    "ServiceNotFoundException": "Service not found",
    "ResourceNotFoundException": "Resource not found",
}

PERMISSION_MESSAGES = {
    "AccessDeniedException": "Access denied - check AWS credentials and permissions",
    "AccessDenied": "Access denied - check AWS credentials and permissions",
    "UnauthorizedOperation": "Unauthorized - insufficient permissions",
    "UnrecognizedClientException": "Invalid AWS credentials",
    "InvalidClientTokenId": "Invalid AWS credentials",
    "ExpiredTokenException": "AWS credentials have expired",
}

OTHER_MESSAGES = {
    "InvalidParameterException": "Invalid parameters provided",
    "ServiceNotActiveException": "Service is not active",
}


def classify_client_error(error: ClientError) -> RemoteError:
    """Map a botocore ClientError onto the remote error taxonomy."""
    details: dict[str, Any] = error.response.get("Error", {})
    code = details.get("Code", "Unknown")
    message = details.get("Message") or str(error)

    if code in THROTTLING_CODES:
        return RemoteThrottlingError(f"AWS throttled the request: {message}", code)
    if code in NOT_FOUND_MESSAGES:
        return RemoteNotFoundError(NOT_FOUND_MESSAGES[code], code)
    if code in PERMISSION_MESSAGES:
        return RemotePermissionDeniedError(PERMISSION_MESSAGES[code], code)
    return RemoteUnknownError(OTHER_MESSAGES.get(code, message), code)


def translate_error(error: Exception) -> RemoteError:
    """Translate any botocore exception into a RemoteError."""
    if isinstance(error, RemoteError):
        return error
    if isinstance(error, ClientError):
        return classify_client_error(error)
    if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
        return RemotePermissionDeniedError("AWS credentials not found", type(error).__name__)
    if isinstance(error, EndpointConnectionError):
        return RemoteUnknownError(f"Cannot reach AWS endpoint: {error}", type(error).__name__)
    if isinstance(error, BotoCoreError):
        return RemoteUnknownError(str(error), type(error).__name__)
    raise TypeError(f"Not a remote error: {error!r}")
