from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from services.errors import ParseError


@dataclass(frozen=True)
class TokenResponse:
    access_token: str

    @classmethod
    def from_payload(cls, payload: Any) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise ParseError(f"Token response is not a JSON object: {type(payload).__name__}")

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token.strip():
            raise ParseError("Token response did not include a valid access_token")
        return cls(access_token=access_token.strip())


@dataclass(frozen=True)
class ResourceKey:
    name: str
    credentials: Dict[str, Any]

    @classmethod
    def from_payload(cls, payload: Any) -> "ResourceKey":
        if not isinstance(payload, dict):
            raise ParseError("Resource key entry is not a JSON object")

        name = payload.get("name")
        if not isinstance(name, str):
            raise ParseError("Resource key entry has no string 'name'")

        credentials = payload.get("credentials")
        if credentials is None:
            credentials = {}
        if not isinstance(credentials, dict):
            raise ParseError(f"Resource key {name!r} has non-object 'credentials'")
        return cls(name=name, credentials=credentials)


@dataclass(frozen=True)
class ResourceKeyList:
    rows_count: int
    resources: List[ResourceKey]
    next_url: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "ResourceKeyList":
        if not isinstance(payload, dict):
            raise ParseError("Resource key listing is not a JSON object")

        rows_count = payload.get("rows_count")
        # bool is an int subclass
        if not isinstance(rows_count, int) or isinstance(rows_count, bool) or rows_count < 0:
            raise ParseError(f"Unexpected payload shape: 'rows_count' is {rows_count!r}")

        resources = payload.get("resources", [])
        if resources is None:
            resources = []
        if not isinstance(resources, list):
            raise ParseError("Unexpected payload shape: 'resources' is not a list")

        next_url = payload.get("next_url")
        if next_url is not None and not isinstance(next_url, str):
            raise ParseError("Unexpected payload shape: 'next_url' is not a string")

        return cls(
            rows_count=rows_count,
            resources=[ResourceKey.from_payload(item) for item in resources],
            next_url=next_url or None,
        )


class CredentialStatus(str, Enum):
    SUCCESS = "SUCCESS"
    NOT_FOUND = "NOT_FOUND"


NOT_FOUND_MESSAGE = "No key found"


@dataclass(frozen=True)
class CredentialResult:
    status: CredentialStatus
    credentials: Dict[str, Any] = field(default_factory=dict)
    error_message: Optional[str] = None

    @classmethod
    def found(cls, credentials: Dict[str, Any]) -> "CredentialResult":
        return cls(status=CredentialStatus.SUCCESS, credentials=credentials)

    @classmethod
    def not_found(cls) -> "CredentialResult":
        return cls(status=CredentialStatus.NOT_FOUND, credentials={}, error_message=NOT_FOUND_MESSAGE)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"status": self.status.value, "credentials": self.credentials}
        if self.error_message is not None:
            out["errorMessage"] = self.error_message
        return out
