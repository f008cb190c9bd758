from __future__ import annotations

import logging

import requests

from services.api_client import ApiError, ApiTimeoutError
from services.auth import TokenCache
from services.errors import CredentialLookupError, IssuanceError, ParseError
from services.models import CredentialResult
from services.resource_controller import ResourceControllerClient

logger = logging.getLogger(__name__)


class CredentialLookup:
    """Resolve a service credential name to its credentials payload."""

    def __init__(self, token_cache: TokenCache, resource_client: ResourceControllerClient) -> None:
        self._tokens = token_cache
        self._resources = resource_client

    def find_by_name(self, name: str) -> CredentialResult:
        # No listing request goes out without a token.
        try:
            self._tokens.get_token()
        except IssuanceError as exc:
            raise CredentialLookupError(f"Could not obtain a token to look up {name!r}: {exc}") from exc

        try:
            listing = self._resources.list_resource_keys()
        except IssuanceError as exc:
            raise CredentialLookupError(f"Could not obtain a token to look up {name!r}: {exc}") from exc
        except (ApiError, ApiTimeoutError, ParseError, requests.RequestException) as exc:
            raise CredentialLookupError(f"Failed to list resource keys: {exc}") from exc

        if listing.rows_count == 0:
            logger.info("lookup | name=%s | listing empty", name)
            return CredentialResult.not_found()

        for key in listing.resources:
            if key.name == name:
                logger.info("lookup | name=%s | found", name)
                return CredentialResult.found(key.credentials)

        logger.info("lookup | name=%s | not found among %d keys", name, len(listing.resources))
        return CredentialResult.not_found()
