import asyncio
import time
from typing import List, Protocol, Sequence

from mistralai import Mistral

from visa_interview.config.settings import Settings
from visa_interview.core.exceptions import ProviderError
from visa_interview.utils.logger import SessionEventLogger


class TextCompletionProvider(Protocol):
    name: str

    async def complete(self, system_prompt: str, prompt: str) -> str | None:
        """Return the completion text, or None when the provider has nothing to offer."""


class MistralCompletionProvider:
    def __init__(self, api_key: str, model: str, client: Mistral | None = None):
        self.client = client or Mistral(api_key=api_key)
        self.model = model
        self.name = f"mistral:{model}"

    async def complete(self, system_prompt: str, prompt: str) -> str | None:
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt}
        ]
        response = await asyncio.to_thread(
            self.client.chat.complete,
            model=self.model,
            messages=messages,
            response_format={"type": "json_object"}
        )
        if not response or not response.choices:
            raise ProviderError(f"{self.name} returned no choices")
        content = response.choices[0].message.content
        if content is None:
            raise ProviderError(f"{self.name} returned empty content")
        return content if isinstance(content, str) else str(content)


class NullCompletionProvider:
    """Terminal adapter: no narrative, the heuristic result stands."""

    name = "null"

    async def complete(self, system_prompt: str, prompt: str) -> str | None:
        return None


class ProviderChain:
    """Ordered providers, first non-empty reply wins."""

    def __init__(self, providers: Sequence[TextCompletionProvider], events: SessionEventLogger | None = None):
        self.providers: List[TextCompletionProvider] = list(providers)
        if not self.providers or not isinstance(self.providers[-1], NullCompletionProvider):
            self.providers.append(NullCompletionProvider())
        self.events = events or SessionEventLogger()

    @property
    def has_remote(self) -> bool:
        return any(not isinstance(p, NullCompletionProvider) for p in self.providers)

    async def complete(self, system_prompt: str, prompt: str) -> str | None:
        for provider in self.providers:
            start_time = time.time()
            try:
                content = await provider.complete(system_prompt, prompt)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.events.warning("Scorer", f"Provider {provider.name} failed: {e}")
                continue
            if content:
                self.events.log_latency((time.time() - start_time) * 1000)
                self.events.log("Scorer", f"Provider {provider.name} answered")
                return content
        return None

    @classmethod
    def from_settings(cls, settings: Settings, events: SessionEventLogger | None = None) -> "ProviderChain":
        providers: List[TextCompletionProvider] = []
        if settings.MISTRAL_API_KEY:
            client = Mistral(api_key=settings.MISTRAL_API_KEY)
            providers.append(MistralCompletionProvider(settings.MISTRAL_API_KEY, settings.MISTRAL_MODEL, client))
            if settings.MISTRAL_FALLBACK_MODEL and settings.MISTRAL_FALLBACK_MODEL != settings.MISTRAL_MODEL:
                providers.append(
                    MistralCompletionProvider(settings.MISTRAL_API_KEY, settings.MISTRAL_FALLBACK_MODEL, client)
                )
        return cls(providers, events)
