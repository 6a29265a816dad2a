"""Resumable multi-source repository activity collection pipeline."""

__version__ = "0.1.0"
