from __future__ import annotations


class CloudAuthError(RuntimeError):
    """Base class for IBM Cloud authentication and lookup failures."""


class IssuanceError(CloudAuthError):
    """Raised when exchanging the API key for a bearer token fails."""


class CredentialLookupError(CloudAuthError):
    """Raised when listing resource keys fails."""


class ParseError(CloudAuthError):
    """Raised when a response body does not have the expected shape."""
