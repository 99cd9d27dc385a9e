"""
News Summarizer
Per-item summary/outline generation with a caller-side timeout and degraded fallback
"""
import asyncio
from dataclasses import dataclass
import logging
import re
from typing import Callable, Optional, Tuple, Union

from tenacity import AsyncRetrying, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from utils.exceptions import EnrichmentTimeoutError, LLMError, UnsupportedProviderError
from .llm import BaseLLM, Message, get_llm


logger = logging.getLogger(__name__)


SUMMARY_FAILED_PLACEHOLDER = "Summary generation failed"
OUTLINE_FAILED_PLACEHOLDER = "Outline generation failed"
SUMMARY_PARSE_PLACEHOLDER = "Summary parse failed"
OUTLINE_PARSE_PLACEHOLDER = "Outline parse failed"

STATUS_OK = "ok"
STATUS_PARSE_FAILED = "parse_failed"
STATUS_DEGRADED = "degraded"

SUMMARY_PROMPT_TEMPLATE = """You are a professional AI news analyst. Analyse and summarise the following news item.

Title: {title}

Content: {content}

Provide:
1. A concise summary (at most 200 words) of what happened and why it matters
2. A structured outline of 3-5 key points

Requirements:
- Keep the summary and the outline separate
- Use concise, professional language
- Stay objective and do not add personal opinions

Reply in exactly this format:

Summary:
[summary text]

Outline:
- [point 1]
- [point 2]
- [point 3]
..."""

_SUMMARY_RE = re.compile(r"Summary:\s*(.*?)(?=\n\s*Outline:|\Z)", re.DOTALL)
_OUTLINE_RE = re.compile(r"Outline:\s*(.*)\Z", re.DOTALL)


@dataclass(frozen=True)
class ParsedSummary:
    """Both sections were found."""
    summary: str
    outline: str

    def to_pair(self) -> Tuple[str, str]:
        return self.summary, self.outline


@dataclass(frozen=True)
class ParseFailed:
    """
    At least one anchor was missing.

    ``reason`` is ``empty_response`` or ``missing_anchor``; any section that
    was found is kept so ``to_pair`` only substitutes the missing one.
    """
    reason: str
    summary: Optional[str] = None
    outline: Optional[str] = None

    def to_pair(self) -> Tuple[str, str]:
        return (
            self.summary if self.summary is not None else SUMMARY_PARSE_PLACEHOLDER,
            self.outline if self.outline is not None else OUTLINE_PARSE_PLACEHOLDER,
        )


ParseResult = Union[ParsedSummary, ParseFailed]


def build_summary_prompt(title: str, content: str) -> str:
    return SUMMARY_PROMPT_TEMPLATE.format(title=title or "", content=content or "")


def parse_summary_response(text: Optional[str]) -> ParseResult:
    """Extract the Summary/Outline sections by anchor text. Never raises."""
    body = str(text or "").strip()
    if not body:
        return ParseFailed(reason="empty_response")

    summary_match = _SUMMARY_RE.search(body)
    outline_match = _OUTLINE_RE.search(body)
    summary = summary_match.group(1).strip() if summary_match else None
    outline = outline_match.group(1).strip() if outline_match else None

    if summary is None or outline is None:
        return ParseFailed(reason="missing_anchor", summary=summary, outline=outline)
    return ParsedSummary(summary=summary, outline=outline)


@dataclass
class SummaryOutcome:
    """What the step engine stores for one item."""
    summary: str
    outline: str
    status: str = STATUS_OK
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        return self.status == STATUS_DEGRADED


LLMFactory = Callable[[str], BaseLLM]


class NewsSummarizer:
    """
    Generates a summary and outline for one news item.

    ``generate`` never raises: unsupported providers, transport errors and
    caller-side timeouts all come back as a degraded outcome carrying the
    failure placeholders, so one bad item cannot sink the batch.
    """

    def __init__(
        self,
        llm_factory: Optional[LLMFactory] = None,
        call_timeout: Optional[float] = None,
        max_attempts: Optional[int] = None,
        max_content_chars: Optional[int] = None,
        retry_wait=None,
    ):
        if call_timeout is None or max_attempts is None:
            from config import get_llm_settings
            llm_settings = get_llm_settings()
            call_timeout = llm_settings.call_timeout if call_timeout is None else call_timeout
            max_attempts = llm_settings.max_attempts if max_attempts is None else max_attempts
        if max_content_chars is None:
            from config import get_pipeline_settings
            max_content_chars = get_pipeline_settings().max_content_chars

        self.llm_factory = llm_factory or (lambda provider: get_llm(provider=provider))
        self.call_timeout = float(call_timeout)
        self.max_attempts = max(1, int(max_attempts))
        self.max_content_chars = max(0, int(max_content_chars))
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, max=4)

    async def generate(self, provider: str, title: str, text: str) -> SummaryOutcome:
        content = (text or "")[: self.max_content_chars] if self.max_content_chars else (text or "")
        prompt = build_summary_prompt(title, content)
        try:
            raw = await self._complete_with_retry(provider, prompt)
        except Exception as exc:
            logger.warning("enrichment_degraded provider=%s title=%r error=%s", provider, (title or "")[:80], exc)
            return SummaryOutcome(
                summary=SUMMARY_FAILED_PLACEHOLDER,
                outline=OUTLINE_FAILED_PLACEHOLDER,
                status=STATUS_DEGRADED,
                error=str(exc) or exc.__class__.__name__,
            )

        parsed = parse_summary_response(raw)
        summary, outline = parsed.to_pair()
        if isinstance(parsed, ParseFailed):
            logger.info("enrichment_parse_failed provider=%s reason=%s", provider, parsed.reason)
            return SummaryOutcome(summary=summary, outline=outline, status=STATUS_PARSE_FAILED, error=parsed.reason)
        return SummaryOutcome(summary=summary, outline=outline)

    async def _complete_with_retry(self, provider: str, prompt: str) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_not_exception_type(UnsupportedProviderError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._complete_once(provider, prompt)
        raise LLMError("enrichment produced no attempt", provider=provider)

    async def _complete_once(self, provider: str, prompt: str) -> str:
        llm = self.llm_factory(provider)
        call = asyncio.ensure_future(llm.acomplete([Message.user(prompt)]))
        done, _ = await asyncio.wait({call}, timeout=self.call_timeout)

        if call not in done:
            # The call keeps running; its outcome is consumed and the client released later.
            call.add_done_callback(lambda fut: _release_abandoned(fut, llm))
            raise EnrichmentTimeoutError(
                f"{provider} call exceeded {self.call_timeout:g}s",
                provider=provider,
            )

        try:
            response = call.result()
        finally:
            await llm.aclose()
        return response.content


def _release_abandoned(future: "asyncio.Future", llm: BaseLLM) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("abandoned_call_failed provider=%s error=%s", llm.provider, exc)
    try:
        asyncio.ensure_future(llm.aclose())
    except RuntimeError:
        logger.debug("abandoned_call_close_skipped provider=%s", llm.provider)
