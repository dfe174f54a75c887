"""Toppest game integrity & reward engine."""

__version__ = "1.0.0"
