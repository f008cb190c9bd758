from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import requests


@dataclass
class ApiErrorDetail:
    status_code: int
    message: str
    url: str
    response_text: str


class ApiError(RuntimeError):
    def __init__(self, detail: ApiErrorDetail) -> None:
        super().__init__(f"API error {detail.status_code} for {detail.url}: {detail.message}")
        self.detail = detail


class ApiTimeoutError(RuntimeError):
    pass


class ApiClient:
    """JSON client for bearer-authenticated IBM Cloud endpoints."""

    def __init__(
        self,
        base_url: str,
        get_access_token: Callable[[], str],
        timeout_seconds: float = 30.0,
        verify_ssl: bool = True,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._get_access_token = get_access_token
        self._timeout_seconds = timeout_seconds
        self._verify_ssl = verify_ssl
        self._session = session or requests.Session()

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._get_access_token()}",
            "Accept": "application/json",
        }

    def url_for(self, path: str) -> str:
        if path.startswith(("https://", "http://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self.url_for(path)
        headers = self._headers()
        try:
            resp = self._session.request(
                method=method.upper(),
                url=url,
                headers=headers,
                params=params,
                timeout=self._timeout_seconds,
                verify=self._verify_ssl,
            )
        except requests.Timeout as exc:
            raise ApiTimeoutError(f"Request timed out after {self._timeout_seconds}s: {url}") from exc

        if not (200 <= resp.status_code < 300):
            raise ApiError(
                ApiErrorDetail(
                    status_code=resp.status_code,
                    message="Non-success status code",
                    url=url,
                    response_text=resp.text,
                )
            )

        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(
                ApiErrorDetail(
                    status_code=resp.status_code,
                    message="Failed to parse JSON response",
                    url=url,
                    response_text=resp.text,
                )
            ) from exc

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)
