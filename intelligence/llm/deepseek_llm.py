"""
DeepSeek LLM
DeepSeek-V3 chat through its OpenAI-compatible endpoint
"""
from .openai_llm import OpenAILLM


class DeepSeekLLM(OpenAILLM):
    """
    DeepSeek LLM backend

    Supported models:
    - deepseek-chat (DeepSeek-V3, default)
    - deepseek-reasoner (DeepSeek-R1)
    """

    DEFAULT_MODEL = "deepseek-chat"
    DEFAULT_BASE_URL = "https://api.deepseek.com/v1"

    @property
    def provider(self) -> str:
        return "deepseek"
