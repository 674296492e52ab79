"""Language model access (Ollama)."""

from inbox_assistant.llm.client import LanguageModel, OllamaClient, extract_json_object

__all__ = ["LanguageModel", "OllamaClient", "extract_json_object"]
