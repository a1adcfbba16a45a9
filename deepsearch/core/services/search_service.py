import httpx
from loguru import logger
from pydantic import ValidationError
from ..errors import SearchError
from ..models.search import SerperResponse

SERPER_URL = "https://google.serper.dev/search"


class SerperClient:
    def __init__(self, api_key: str, client: httpx.AsyncClient, base_url: str = SERPER_URL):
        self.api_key = api_key
        self.client = client
        self.base_url = base_url

    async def search(self, query: str, num: int = 10) -> SerperResponse:
        if not self.api_key:
            raise SearchError("SERPER_API_KEY is not set")
        try:
            resp = await self.client.post(
                self.base_url,
                headers={"X-API-KEY": self.api_key, "Content-Type": "application/json"},
                json={"q": query, "num": num},
            )
        except httpx.HTTPError as e:
            logger.error(f"Serper request failed for '{query}': {e}")
            raise SearchError(f"Search request failed: {e}") from e

        if resp.status_code >= 400:
            logger.error(f"Serper returned {resp.status_code} for '{query}': {resp.text[:200]}")
            raise SearchError(f"Search API error: {resp.status_code} {resp.reason_phrase}".strip())

        try:
            return SerperResponse.model_validate(resp.json())
        except (ValueError, ValidationError) as e:
            raise SearchError(f"Malformed search response: {e}") from e
