from __future__ import annotations

import logging
from typing import List, Set

from services.api_client import ApiClient
from services.errors import ParseError
from services.models import ResourceKey, ResourceKeyList

logger = logging.getLogger(__name__)

RESOURCE_KEYS_PATH = "v2/resource_keys"


class ResourceControllerClient:
    """Lists resource keys (service credentials) visible to the API key's identity."""

    def __init__(self, api_client: ApiClient) -> None:
        self._api = api_client

    def list_resource_keys(self) -> ResourceKeyList:
        """
        Fetch every page of `/v2/resource_keys`, following `next_url`.

        Resources keep listing order across pages; `rows_count` is summed.
        """
        resources: List[ResourceKey] = []
        rows_count = 0
        seen: Set[str] = set()
        path = RESOURCE_KEYS_PATH

        while True:
            url = self._api.url_for(path)
            if url in seen:
                raise ParseError(f"Resource key listing repeats page {url}")
            seen.add(url)

            page = ResourceKeyList.from_payload(self._api.get(url))
            resources.extend(page.resources)
            rows_count += page.rows_count
            logger.debug("resource_keys | page rows=%d", page.rows_count)

            if not page.next_url:
                break
            path = page.next_url

        logger.info("resource_keys | rows_count=%d", rows_count)
        return ResourceKeyList(rows_count=rows_count, resources=resources)
