"""Helpers to initialize the client for the local Ollama model."""
from openai import OpenAI

OLLAMA_API_KEY = "ollama"  # required by the SDK, ignored by Ollama


def ollama_base_url(ollama_url: str) -> str:
    """Ollama serves its OpenAI-compatible API under /v1."""
    url = ollama_url.rstrip("/")
    return url if url.endswith("/v1") else f"{url}/v1"


def build_ollama_client(ollama_url: str, *, timeout: float = 120.0):
    """Return an OpenAI client pointed at Ollama, or None if initialization fails."""
    try:
        return OpenAI(base_url=ollama_base_url(ollama_url), api_key=OLLAMA_API_KEY, timeout=timeout)
    except Exception:
        return None
