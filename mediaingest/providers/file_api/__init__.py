"""File processing provider adapters."""

from mediaingest.providers.file_api.gemini_provider import GeminiFileAPIProvider

__all__ = ["GeminiFileAPIProvider"]
