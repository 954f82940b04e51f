"""
Client for the language-model provider (OpenAI-compatible HTTP API).

Provides:
 - generate_embedding(text) : text -> fixed-length vector, or None on any failure
 - chat(prompt) : text -> generated text, or None on any failure

Neither call raises; callers decide how to degrade. There is no retry here.
"""

import logging
from typing import List, Optional

import requests

from feedsense.config import settings

logger = logging.getLogger("feedsense.llm")


class LlmClient:
    def __init__(
        self,
        base_url: str = settings.LLM_BASE_URL,
        api_key: str = settings.LLM_API_KEY,
        embedding_model: str = settings.EMBEDDING_MODEL,
        chat_model: str = settings.CHAT_MODEL,
        dimensions: int = settings.EMBEDDING_DIM,
        timeout: float = settings.LLM_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.dimensions = dimensions
        self.timeout = timeout
        self.session = session or requests.Session()

    def _post(self, path: str, payload: dict) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        resp = self.session.post(f"{self.base_url}{path}", json=payload, headers=headers, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def generate_embedding(self, text: str) -> Optional[List[float]]:
        """Return the embedding of text, or None if the provider is unavailable."""
        if not text or not text.strip():
            return None
        try:
            data = self._post("/v1/embeddings", {
                "model": self.embedding_model,
                "input": text,
                "dimensions": self.dimensions,
            })
            vector = data["data"][0]["embedding"]
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Error generating embedding: %s", e)
            return None
        if not vector or len(vector) != self.dimensions:
            logger.error("Embedding has %d dimensions, expected %d", len(vector or []), self.dimensions)
            return None
        return [float(x) for x in vector]

    def chat(self, prompt: str, system: Optional[str] = None) -> Optional[str]:
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        try:
            data = self._post("/v1/chat/completions", {"model": self.chat_model, "messages": messages})
            return data["choices"][0]["message"]["content"]
        except (requests.RequestException, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error("Error calling chat model: %s", e)
            return None
