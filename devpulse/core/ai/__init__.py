"""AI insight generation backed by the OpenAI API."""

from .insights_service import InsightsService
from .openai_client import OpenAIClient, get_ai_client, reset_ai_client

__all__ = ["InsightsService", "OpenAIClient", "get_ai_client", "reset_ai_client"]
