"""Transcription and analysis backends."""
