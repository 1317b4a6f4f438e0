"""Innkeeper: hotel guest-stay lifecycle backend."""

__version__ = "0.4.0"
