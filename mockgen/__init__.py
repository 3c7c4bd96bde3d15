"""mockgen: generate exam mock tests with Gemini, rotating across API keys."""

__version__ = "1.0.0"
