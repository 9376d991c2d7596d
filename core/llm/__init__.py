"""LLM Module - Remote scoring services and interfaces."""
from core.llm.interfaces import LLMProvider
from core.llm.null_service import NullLLMProvider
from core.llm.openai_service import OpenAIService

__all__ = ['LLMProvider', 'NullLLMProvider', 'OpenAIService']
