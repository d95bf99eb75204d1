"""Playback: session manager, media backend, queue, offline cache and CLI."""
