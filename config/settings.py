from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_IAM_URL = "https://iam.cloud.ibm.com"
DEFAULT_RESOURCE_CONTROLLER_URL = "https://resource-controller.cloud.ibm.com"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigurationError(RuntimeError):
    """Raised when required settings are missing or invalid."""


@dataclass(frozen=True)
class Settings:
    apikey: str
    iam_url: str = DEFAULT_IAM_URL
    resource_controller_url: str = DEFAULT_RESOURCE_CONTROLLER_URL

    request_timeout_seconds: float = 30.0
    verify_ssl: bool = True
    refresh_margin_seconds: float = 60.0
    refresh_ahead: bool = False

    log_path: str = "logs/ibmcloud_auth.log"

    def __post_init__(self) -> None:
        if not isinstance(self.apikey, str) or not self.apikey.strip():
            raise ConfigurationError(
                "API Key not found. Pass it explicitly or set the IBMCLOUD_API_KEY environment variable."
            )
        object.__setattr__(self, "apikey", self.apikey.strip())

        for field_name in ("iam_url", "resource_controller_url"):
            url = str(getattr(self, field_name) or "").strip().rstrip("/")
            if not url.startswith(("https://", "http://")):
                raise ConfigurationError(f"{field_name} must start with https:// or http://")
            object.__setattr__(self, field_name, url)

        if self.request_timeout_seconds <= 0:
            raise ConfigurationError("request_timeout_seconds must be greater than 0")
        if self.refresh_margin_seconds < 0:
            raise ConfigurationError("refresh_margin_seconds must not be negative")

    @property
    def token_url(self) -> str:
        return f"{self.iam_url}/identity/token"

    @property
    def resource_keys_url(self) -> str:
        return f"{self.resource_controller_url}/v2/resource_keys"

    @staticmethod
    def _optional(environ: Mapping[str, str], name: str) -> Optional[str]:
        value = environ.get(name, "").strip()
        return value or None

    @staticmethod
    def _parse_bool(name: str, value: str) -> bool:
        lowered = value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"{name} must be a boolean, got {value!r}")

    @staticmethod
    def _parse_float(name: str, value: str) -> float:
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc

    @classmethod
    def from_env(
        cls,
        apikey: Optional[str] = None,
        iam_url: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "Settings":
        """
        Resolve settings once: explicit arguments first, then environment
        variables, then defaults.
        """
        env = os.environ if environ is None else environ

        resolved_apikey = (apikey or "").strip() or cls._optional(env, "IBMCLOUD_API_KEY") or ""
        resolved_iam_url = (iam_url or "").strip() or cls._optional(env, "IBMCLOUD_IAM_URL") or DEFAULT_IAM_URL

        kwargs = {}

        controller_url = cls._optional(env, "IBMCLOUD_RESOURCE_CONTROLLER_URL")
        if controller_url:
            kwargs["resource_controller_url"] = controller_url

        timeout = cls._optional(env, "IBMCLOUD_REQUEST_TIMEOUT")
        if timeout:
            kwargs["request_timeout_seconds"] = cls._parse_float("IBMCLOUD_REQUEST_TIMEOUT", timeout)

        verify_ssl = cls._optional(env, "IBMCLOUD_VERIFY_SSL")
        if verify_ssl:
            kwargs["verify_ssl"] = cls._parse_bool("IBMCLOUD_VERIFY_SSL", verify_ssl)

        refresh_ahead = cls._optional(env, "IBMCLOUD_TOKEN_REFRESH_AHEAD")
        if refresh_ahead:
            kwargs["refresh_ahead"] = cls._parse_bool("IBMCLOUD_TOKEN_REFRESH_AHEAD", refresh_ahead)

        log_path = cls._optional(env, "IBMCLOUD_LOG_PATH")
        if log_path:
            kwargs["log_path"] = log_path

        return cls(apikey=resolved_apikey, iam_url=resolved_iam_url, **kwargs)
