from functools import lru_cache

from deck_api.services.ai.client import AIClient


@lru_cache(maxsize=1)
def make_ai_client() -> AIClient:
    """
    Create and return a singleton AI client instance.

    Returns:
        AIClient: Client configured from settings
    """
    return AIClient()
