from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..consensus.models import Business, Location
from ..consensus.orchestrator import ChatReply, SearchResponse
from ..errors import UpstreamError
from .config import DEFAULT_YELP_CONFIG, YelpConfig

logger = logging.getLogger(__name__)


def _response_text(data: dict[str, Any]) -> str:
    return (data.get("response") or {}).get("text") or ""


def _extract_businesses(data: dict[str, Any]) -> list[Business]:
    entities = data.get("entities") or []
    if not entities or not isinstance(entities[0], dict):
        return []

    businesses: list[Business] = []
    for raw in entities[0].get("businesses") or []:
        if not isinstance(raw, dict):
            continue
        try:
            businesses.append(Business.model_validate(raw))
        except PydanticValidationError:
            logger.warning("Skipping malformed business record %s", raw.get("id"), exc_info=True)
    return businesses


class YelpAIClient:
    """Thin async wrapper around the Yelp AI chat endpoint.

    One conversation (``chat_id``) carries context across the initial search,
    reasoning questions, follow-up searches and reservation requests.
    """

    def __init__(
        self,
        config: YelpConfig = DEFAULT_YELP_CONFIG,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self._client = client

    def set_client(self, client: httpx.AsyncClient | None) -> None:
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            logger.warning("Yelp httpx client not set via lifespan; creating a fallback client.")
            self._client = httpx.AsyncClient(timeout=self.config.timeout)
        return self._client

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        if not self.config.api_key:
            raise UpstreamError("YELP_API_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            resp = await self._get_client().post(self.config.api_url, json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Yelp AI request failed: %s", exc, exc_info=True)
            raise UpstreamError("Failed to reach the restaurant search service") from exc

        if not isinstance(data, dict):
            raise UpstreamError("Unexpected response from the restaurant search service")
        return data

    async def search(
        self,
        query: str,
        location: Location | None = None,
        chat_id: str | None = None,
    ) -> SearchResponse:
        payload: dict[str, Any] = {"query": query, "chat_id": chat_id}
        if location is not None:
            payload["user_context"] = {
                "latitude": location.latitude,
                "longitude": location.longitude,
            }

        data = await self._post(payload)
        return SearchResponse(
            text=_response_text(data),
            businesses=_extract_businesses(data),
            chat_id=data.get("chat_id") or chat_id or "",
        )

    async def converse(self, query: str, chat_id: str | None) -> ChatReply:
        data = await self._post({"query": query, "chat_id": chat_id})
        return ChatReply(
            text=_response_text(data),
            chat_id=data.get("chat_id") or chat_id or "",
        )

    async def make_reservation(
        self,
        restaurant_name: str,
        party_size: int,
        date: str,
        time: str,
        chat_id: str | None = None,
    ) -> ChatReply:
        query = f"Book a table for {party_size} at {restaurant_name} on {date} at {time}"
        return await self.converse(query, chat_id)
