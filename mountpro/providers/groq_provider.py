"""
Groq-backed live info provider.

Asks the chat completion API for current conditions around a POI and turns
the JSON answer into a `LiveInfo` record. Everything it returns is
best-effort; callers must treat every field as optional.
"""

import json
import re
import logging
from dataclasses import replace
from typing import Dict, List, Optional

import aiohttp

from mountpro.config import get_config
from mountpro.providers.base import (
    EnrichmentUnavailableError,
    LiveInfoProvider,
    ProviderError,
    ProviderMetadata,
)
from mountpro.providers.utils import http_post_json
from mountpro.src.models import POI, LiveInfo

logger = logging.getLogger(__name__)

GROQ_CHAT_URL = "https://api.groq.com/openai/v1/chat/completions"

SYSTEM_PROMPT = (
    "You are an alpine information assistant for a mountain shelter and water source map. "
    "Given one point of interest, return STRICT JSON (an object, no prose) with the optional keys: "
    "'summary' (<=200 chars, current access and conditions), 'strength' (integer 0..4, expected mobile signal), "
    "'google_maps_url' (a Google Maps link for the place, only if confident), 'weather' (<=80 chars), "
    "'temperature_c' (number), 'sources' (array of strings). Omit any key you are not confident about. "
    "Never invent coordinates or altitude."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


def build_user_prompt(poi: POI) -> str:
    return json.dumps({
        "id": poi.id,
        "name": poi.name,
        "type": poi.type.value,
        "lat": poi.coordinates.lat,
        "lng": poi.coordinates.lng,
        "altitude_m": poi.altitude if poi.altitude_known else None,
        "desc": poi.description[:200],
    }, ensure_ascii=False)


def parse_completion(payload: Dict) -> LiveInfo:
    """Extract the JSON object from a chat completion response.

    Raises:
        EnrichmentUnavailableError: If the response has no usable JSON object
    """
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise EnrichmentUnavailableError("Groq response has no message content", "groq")
    text = _FENCE_RE.sub("", (content or "").strip())
    try:
        data = json.loads(text)
    except ValueError:
        raise EnrichmentUnavailableError("Groq response is not JSON", "groq")
    if not isinstance(data, dict):
        raise EnrichmentUnavailableError("Groq response is not a JSON object", "groq")
    info = LiveInfo.from_payload(data)
    if "groq" not in info.sources:
        info = replace(info, sources=info.sources + ["groq"])
    return info


class GroqLiveInfoProvider(LiveInfoProvider):
    """Live info via the Groq chat completion API."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, api_key: Optional[str] = None,
                 model: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__()
        config = get_config()
        self.session = session
        self.api_key = api_key or config.groq_api_key
        self.model = model or config.groq_model
        self.timeout = timeout or config.get_timeout("enrichment")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def get_metadata(self) -> ProviderMetadata:
        return ProviderMetadata(
            name="groq",
            version="1.0",
            description="LLM-synthesized live conditions for a POI",
            capabilities=["fetch_live_info"],
        )

    async def ping(self) -> None:
        await self._chat([{"role": "user", "content": "Reply with an empty JSON object."}], max_tokens=5)

    async def fetch_live_info(self, poi: POI) -> LiveInfo:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_user_prompt(poi)},
        ]
        payload = await self._chat(messages)
        return parse_completion(payload)

    async def _chat(self, messages: List[Dict], max_tokens: int = 300) -> Dict:
        if not self.api_key:
            raise EnrichmentUnavailableError("GROQ_API_KEY not configured", "groq")
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        body = {
            "model": self.model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
        }
        try:
            return await http_post_json(GROQ_CHAT_URL, json_data=body, headers=headers,
                                        timeout=self.timeout, session=self.session, provider_name="groq")
        except ProviderError as e:
            logger.error(f"GROQ API call failed: {e}")
            raise EnrichmentUnavailableError(str(e), "groq")
