"""Summarization of raw research results."""

from .summarizer import Summarizer, GeminiSummarizer, build_prompt

__all__ = [
    "Summarizer",
    "GeminiSummarizer",
    "build_prompt",
]
