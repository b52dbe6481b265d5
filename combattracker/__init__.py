"""Multiplayer combat tracker for tabletop sessions."""
