"""
assistant/completion.py
One-shot text completion for the /ask command, through the openai SDK.
Any OpenAI-compatible endpoint works (set OPENAI_BASE_URL).
"""

from __future__ import annotations
import logging
from typing import Optional

import openai
from openai import AsyncOpenAI

log = logging.getLogger("castbot.assistant")

SYSTEM_PROMPT = (
    "You are a friendly assistant living in a Discord server. "
    "Answer concisely; replies are shown in a chat message and must stay "
    "under 1800 characters."
)

MAX_REPLY_CHARS = 1900
FALLBACK_REPLY  = "Sorry, I couldn't get an answer right now."


class CompletionClient:
    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        base_url: Optional[str] = None,
        max_tokens: int = 400,
    ):
        self.model      = model
        self.max_tokens = max_tokens
        self._api_key   = api_key
        self._base_url  = base_url
        self._client: Optional[AsyncOpenAI] = None

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise EnvironmentError("OPENAI_API_KEY not set in environment.")
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def ask(self, question: str) -> str:
        """
        Send one question, return the answer text.
        Returns FALLBACK_REPLY if the API call fails.
        """
        try:
            client   = self._get_client()
            response = await client.chat.completions.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user",   "content": question},
                ],
            )
        except (openai.OpenAIError, EnvironmentError) as e:
            log.error("Completion API error: %s", e)
            return FALLBACK_REPLY

        content = (response.choices[0].message.content or "").strip()
        if not content:
            return FALLBACK_REPLY
        log.debug("[ASK] %s → %s", question[:60], content[:60])
        return content[:MAX_REPLY_CHARS]
