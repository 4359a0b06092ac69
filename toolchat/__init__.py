"""
toolchat - streaming tool-calling chat engine for a cluster dashboard.

This package drives a conversation between a user and a language model,
letting the model call registered tools and feeding their results back until
it produces a final answer, while streaming every step to the caller and
persisting an append-only transcript.
"""

__version__ = "0.1.0"
