"""Summarize long transcripts with a local LLM backend using two-pass map-reduce."""

__version__ = "0.1.0"
