"""Webhook-driven chat assistant with an LLM tool-calling orchestration loop."""

__version__ = "0.1.0"
