"""duet: a streaming chat client for OpenAI-compatible and Gemini APIs."""

__version__ = "0.1.0"
