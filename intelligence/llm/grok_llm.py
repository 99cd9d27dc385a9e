"""
Grok LLM
xAI Grok through its OpenAI-compatible endpoint
"""
from .openai_llm import OpenAILLM


class GrokLLM(OpenAILLM):
    """Grok LLM backend"""

    DEFAULT_MODEL = "grok-2-latest"
    DEFAULT_BASE_URL = "https://api.x.ai/v1"

    @property
    def provider(self) -> str:
        return "grok"
