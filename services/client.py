from __future__ import annotations

import time
from typing import Callable, Optional

import requests

from config.settings import Settings
from services.api_client import ApiClient
from services.auth import IamTokenIssuer, TokenCache
from services.credential_service import CredentialLookup
from services.models import CredentialResult
from services.resource_controller import ResourceControllerClient


class IBMCloudApikeyAuthClient:
    """
    Small client for IBM Cloud service IDs authenticating with an API key.

    - get_token(force=False): an IAM bearer token, cached in memory until stale.
    - get_service_credential_by_name(name): a service credential's payload,
      looked up in the resource controller's resource keys.

    Settings are resolved once by the caller (see Settings.from_env) and injected.
    """

    def __init__(
        self,
        settings: Settings,
        issuer: Optional[Callable[[], str]] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self._session = session or requests.Session()

        if issuer is None:
            issuer = IamTokenIssuer(
                token_url=settings.token_url,
                apikey=settings.apikey,
                timeout_seconds=settings.request_timeout_seconds,
                verify_ssl=settings.verify_ssl,
                session=self._session,
            )

        self.token_cache = TokenCache(
            issuer=issuer,
            margin_seconds=settings.refresh_margin_seconds,
            refresh_ahead=settings.refresh_ahead,
            clock=clock,
        )

        api_client = ApiClient(
            base_url=settings.resource_controller_url,
            get_access_token=self.token_cache.get_token,
            timeout_seconds=settings.request_timeout_seconds,
            verify_ssl=settings.verify_ssl,
            session=self._session,
        )
        self._lookup = CredentialLookup(self.token_cache, ResourceControllerClient(api_client))

    @classmethod
    def from_options(cls, apikey: Optional[str] = None, url: Optional[str] = None) -> "IBMCloudApikeyAuthClient":
        """Build a client from optional overrides, falling back to IBMCLOUD_API_KEY / IBMCLOUD_IAM_URL."""
        return cls(Settings.from_env(apikey=apikey, iam_url=url))

    def get_token(self, force: bool = False) -> str:
        return self.token_cache.get_token(force=force)

    def get_service_credential_by_name(self, name: str) -> CredentialResult:
        return self._lookup.find_by_name(name)
