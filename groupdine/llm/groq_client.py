from __future__ import annotations

import logging
from collections import OrderedDict

from groq import AsyncGroq

from ..consensus.orchestrator import ChatReply
from ..errors import UpstreamError
from .config import DEFAULT_LLM_CONFIG, LLMConfig

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You help a group of friends agree on where to eat. "
    "When asked about a restaurant, answer in two or three friendly sentences "
    "explaining why it suits the whole group, touching on cuisine, price and "
    "dietary needs where relevant. Only use facts present in the conversation."
)

_MAX_TURNS = 6  # 3 exchanges
_MAX_CONVERSATIONS = 256


class GroqReasoner:
    """Reasoning provider backed by Groq chat completions.

    Groq has no server-side conversation, so a bounded transcript is kept per
    ``chat_id`` and replayed on every call.
    """

    def __init__(self, config: LLMConfig = DEFAULT_LLM_CONFIG) -> None:
        self._config = config
        self._client: AsyncGroq | None = None
        self._transcripts: "OrderedDict[str, list[dict[str, str]]]" = OrderedDict()

    def _get_client(self) -> AsyncGroq:
        if self._client is None:
            self._client = AsyncGroq(api_key=self._config.api_key, timeout=self._config.timeout)
        return self._client

    def _history(self, chat_id: str) -> list[dict[str, str]]:
        transcript = self._transcripts.get(chat_id)
        if transcript is None:
            return []
        self._transcripts.move_to_end(chat_id)
        return list(transcript)

    def _record(self, chat_id: str, question: str, answer: str) -> None:
        transcript = self._transcripts.setdefault(chat_id, [])
        transcript.append({"role": "user", "content": question})
        transcript.append({"role": "assistant", "content": answer})
        del transcript[:-_MAX_TURNS]
        self._transcripts.move_to_end(chat_id)
        if len(self._transcripts) > _MAX_CONVERSATIONS:
            self._transcripts.popitem(last=False)

    async def converse(self, query: str, chat_id: str) -> ChatReply:
        if not self._config.enabled or not self._config.api_key:
            raise UpstreamError("Groq reasoning is not configured")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            *self._history(chat_id),
            {"role": "user", "content": query},
        ]
        try:
            response = await self._get_client().chat.completions.create(
                model=self._config.model,
                messages=messages,
                max_tokens=self._config.max_tokens,
                temperature=0.3,
            )
            content = (response.choices[0].message.content or "").strip()
        except Exception as exc:
            logger.warning("Groq LLM call failed", exc_info=True)
            raise UpstreamError("Reasoning service unavailable") from exc

        self._record(chat_id, query, content)
        return ChatReply(text=content, chat_id=chat_id)
