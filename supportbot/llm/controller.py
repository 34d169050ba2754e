"""
Completion service client.

Talks to an Ollama-compatible `/api/chat` endpoint over httpx. Transport
failures are raised as CompletionServiceError and never retried here.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..core.errors import CompletionServiceError

logger = logging.getLogger("supportbot.llm")


class LLMController:
    """
    Thin async client for the completion service.

    Owns one `httpx.AsyncClient` for the lifetime of the process; call
    `close()` on shutdown.
    """

    def __init__(self, base_url: str, model: str, *, timeout: Optional[float] = 120.0,
                 temperature: float = 0.3, max_tokens: int = 1024,
                 client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.default_model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_config(cls, llm_config: Dict[str, Any]) -> "LLMController":
        return cls(
            llm_config["base_url"],
            llm_config["model"],
            timeout=llm_config.get("timeout"),
            temperature=llm_config.get("temperature", 0.3),
            max_tokens=llm_config.get("max_tokens", 1024),
        )

    async def chat(self, messages: List[Dict[str, str]], *, model: Optional[str] = None,
                   temperature: Optional[float] = None,
                   max_tokens: Optional[int] = None) -> Dict[str, Any]:
        """
        Send a chat exchange and return the assistant reply.

        Returns:
            {"content": str, "model": str, "duration_ms": int}
        """
        model_name = model or self.default_model
        options: Dict[str, Any] = {
            "temperature": self.temperature if temperature is None else temperature,
        }
        num_predict = self.max_tokens if max_tokens is None else max_tokens
        if num_predict and num_predict > 0:
            options["num_predict"] = num_predict

        payload = {
            "model": model_name,
            "messages": messages,
            "stream": False,
            "options": options,
        }

        started = time.monotonic()
        try:
            response = await self._client.post(f"{self.base_url}/api/chat", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Completion service returned HTTP {e.response.status_code} for model {model_name}")
            raise CompletionServiceError(
                "Completion service returned an error",
                details={"status": e.response.status_code},
            ) from e
        except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as e:
            logger.error(f"Completion service unreachable: {type(e).__name__}: {e}")
            raise CompletionServiceError("Completion service is unreachable") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Completion service call failed: {e}", exc_info=True)
            raise CompletionServiceError("Completion service call failed") from e

        content = ((data or {}).get("message") or {}).get("content")
        if not isinstance(content, str):
            raise CompletionServiceError("Completion service response has no message content")

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Completion from {model_name} in {duration_ms}ms ({len(content)} chars)")
        return {"content": content, "model": model_name, "duration_ms": duration_ms}

    async def close(self) -> None:
        await self._client.aclose()
