"""Assistant package __init__.py"""
from .completion import CompletionClient

__all__ = ["CompletionClient"]
