from __future__ import annotations

import asyncio
import time

import pytest
from tenacity import wait_none

from fakes import GOOD_REPLY, FakeLLM, ScriptedFactory
from intelligence.summarizer import (
    OUTLINE_FAILED_PLACEHOLDER,
    OUTLINE_PARSE_PLACEHOLDER,
    STATUS_DEGRADED,
    STATUS_OK,
    STATUS_PARSE_FAILED,
    SUMMARY_FAILED_PLACEHOLDER,
    SUMMARY_PARSE_PLACEHOLDER,
    NewsSummarizer,
    ParsedSummary,
    ParseFailed,
    build_summary_prompt,
    parse_summary_response,
)
from utils.exceptions import UnsupportedProviderError


def _summarizer(factory, **kwargs) -> NewsSummarizer:
    kwargs.setdefault("call_timeout", 1.0)
    kwargs.setdefault("max_attempts", 1)
    kwargs.setdefault("max_content_chars", 6000)
    return NewsSummarizer(llm_factory=factory, retry_wait=wait_none(), **kwargs)


def test_parse_both_sections() -> None:
    parsed = parse_summary_response(GOOD_REPLY)
    assert isinstance(parsed, ParsedSummary)
    assert parsed.summary == "A short summary."
    assert parsed.outline == "- point one\n- point two"


def test_parse_missing_outline_keeps_summary() -> None:
    parsed = parse_summary_response("Summary: only this part")
    assert isinstance(parsed, ParseFailed)
    assert parsed.reason == "missing_anchor"
    assert parsed.to_pair() == ("only this part", OUTLINE_PARSE_PLACEHOLDER)


def test_parse_free_text_and_empty() -> None:
    assert parse_summary_response("no anchors here").to_pair() == (
        SUMMARY_PARSE_PLACEHOLDER,
        OUTLINE_PARSE_PLACEHOLDER,
    )
    empty = parse_summary_response("   ")
    assert isinstance(empty, ParseFailed)
    assert empty.reason == "empty_response"


def test_prompt_carries_title_and_content() -> None:
    prompt = build_summary_prompt("Big launch", "Details of the launch")
    assert "Title: Big launch" in prompt
    assert "Content: Details of the launch" in prompt
    assert "Summary:" in prompt and "Outline:" in prompt


@pytest.mark.asyncio
async def test_generate_ok_closes_backend() -> None:
    backend = FakeLLM()
    factory = ScriptedFactory([backend])

    outcome = await _summarizer(factory).generate("deepseek", "Title", "Body")

    assert outcome.status == STATUS_OK
    assert outcome.summary == "A short summary."
    assert factory.providers == ["deepseek"]
    assert backend.closed is True


@pytest.mark.asyncio
async def test_generate_parse_failure_is_not_degraded() -> None:
    outcome = await _summarizer(ScriptedFactory([FakeLLM("just prose")])).generate("deepseek", "T", "B")
    assert outcome.status == STATUS_PARSE_FAILED
    assert outcome.degraded is False
    assert outcome.summary == SUMMARY_PARSE_PLACEHOLDER


@pytest.mark.asyncio
async def test_timeout_degrades_within_bound_and_releases_late_call() -> None:
    backend = FakeLLM(delay=0.5)
    summarizer = _summarizer(ScriptedFactory([backend]), call_timeout=0.05)

    started = time.monotonic()
    outcome = await summarizer.generate("deepseek", "Slow", "Body")
    elapsed = time.monotonic() - started

    assert elapsed < 0.4
    assert outcome.degraded
    assert (outcome.summary, outcome.outline) == (SUMMARY_FAILED_PLACEHOLDER, OUTLINE_FAILED_PLACEHOLDER)
    assert "exceeded" in outcome.error

    # The abandoned call finishes on its own and its client is released afterwards.
    await asyncio.sleep(0.6)
    assert backend.closed is True


@pytest.mark.asyncio
async def test_backend_error_degrades() -> None:
    backend = FakeLLM(error=RuntimeError("connection reset"))
    outcome = await _summarizer(ScriptedFactory([backend])).generate("grok", "T", "B")

    assert outcome.status == STATUS_DEGRADED
    assert outcome.error == "connection reset"
    assert backend.closed is True


@pytest.mark.asyncio
async def test_unsupported_provider_degrades_without_retry() -> None:
    calls = []

    def factory(provider: str):
        calls.append(provider)
        raise UnsupportedProviderError(f"Unsupported LLM provider: {provider}", provider=provider)

    outcome = await _summarizer(factory, max_attempts=3).generate("mystery", "T", "B")

    assert outcome.degraded
    assert calls == ["mystery"]


@pytest.mark.asyncio
async def test_retry_recovers_on_second_attempt() -> None:
    failing = FakeLLM(error=RuntimeError("flaky"))
    healthy = FakeLLM()
    factory = ScriptedFactory([failing, healthy])

    outcome = await _summarizer(factory, max_attempts=2).generate("deepseek", "T", "B")

    assert outcome.status == STATUS_OK
    assert factory.providers == ["deepseek", "deepseek"]


@pytest.mark.asyncio
async def test_content_is_truncated_before_prompting() -> None:
    backend = FakeLLM()
    await _summarizer(ScriptedFactory([backend]), max_content_chars=10).generate("deepseek", "T", "x" * 50 + "TAIL")

    prompt = backend.calls[0][0].content
    assert "x" * 10 in prompt
    assert "x" * 11 not in prompt
    assert "TAIL" not in prompt
