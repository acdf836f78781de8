"""Model marketplace client (fal.ai REST API)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import ProviderHTTPError, ProviderUnavailableError

logger = logging.getLogger(__name__)

FAL_RUN_URL = "https://fal.run/{endpoint}"
FAL_UPLOAD_URL = "https://rest.fal.ai/storage/upload/initiate"


class FalClient:
    name = "fal"

    def __init__(self, api_key: Optional[str], http: httpx.AsyncClient) -> None:
        self._api_key = api_key
        self._http = http

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def _headers(self) -> Dict[str, str]:
        if not self._api_key:
            raise ProviderUnavailableError(self.name)
        return {"Authorization": f"Key {self._api_key}"}

    async def run(self, endpoint: str, params: Dict[str, Any]) -> Any:
        """Call a marketplace endpoint synchronously and return its JSON body."""
        response = await self._http.post(
            FAL_RUN_URL.format(endpoint=endpoint),
            headers=self._headers(),
            json=params,
        )
        if response.is_error:
            raise ProviderHTTPError(self.name, response.status_code, response.text)
        return response.json()

    async def upload(self, data: bytes, content_type: str, file_name: str) -> str:
        """Push a file into marketplace storage and return its public URL."""
        init = await self._http.post(
            FAL_UPLOAD_URL,
            params={"storage_type": "fal-cdn-v3"},
            headers=self._headers(),
            json={"content_type": content_type, "file_name": file_name},
        )
        if init.is_error:
            raise ProviderHTTPError(self.name, init.status_code, init.text)
        body = init.json()

        put = await self._http.put(
            body["upload_url"], content=data, headers={"Content-Type": content_type}
        )
        if put.is_error:
            raise ProviderHTTPError(self.name, put.status_code, put.text)
        logger.debug(f"Uploaded {file_name} to marketplace storage")
        return body["file_url"]
