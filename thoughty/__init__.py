"""Thoughty: capture voice notes from anywhere and queue them for the notes app."""

__version__ = "0.1.0"
