"""Utility helpers: WAV parsing, scratch directories, timing."""
