from __future__ import annotations

import asyncio
from typing import Callable, Dict, List, Optional, Sequence

from core import NewsSource, RawNewsItem
from intelligence.llm import BaseLLM, LLMResponse


GOOD_REPLY = "Summary:\nA short summary.\n\nOutline:\n- point one\n- point two"


class FakeLLM(BaseLLM):
    """Scripted backend: replies with text, sleeps, or raises."""

    def __init__(self, reply: str = GOOD_REPLY, *, delay: float = 0.0, error: Optional[Exception] = None, tag: str = "deepseek"):
        super().__init__(model="fake-model")
        self.reply = reply
        self.delay = delay
        self.error = error
        self.tag = tag
        self.calls: List[list] = []
        self.closed = False

    @property
    def provider(self) -> str:
        return self.tag

    async def acomplete(self, messages, **kwargs) -> LLMResponse:
        self.calls.append(list(messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.reply, model=self.model)

    async def aclose(self) -> None:
        self.closed = True


class ScriptedFactory:
    """LLM factory handing out one FakeLLM per call, in order; the last one repeats."""

    def __init__(self, backends: Sequence[FakeLLM]):
        self.backends = list(backends)
        self.providers: List[str] = []

    def __call__(self, provider: str) -> BaseLLM:
        self.providers.append(provider)
        index = min(len(self.providers) - 1, len(self.backends) - 1)
        return self.backends[index]


def make_item(link: str, source_id: str = "src_a", title: Optional[str] = None) -> RawNewsItem:
    return RawNewsItem(
        title=title or f"Title for {link}",
        link=link,
        pub_date="2026-01-01T00:00:00+00:00",
        content=f"Body of {link}",
        source_id=source_id,
    )


def static_fetcher(items_by_source: Dict[str, List[RawNewsItem]]) -> Callable:
    async def _fetch(source: NewsSource, max_results: int) -> List[RawNewsItem]:
        return list(items_by_source.get(source.id, []))[:max_results]

    return _fetch


