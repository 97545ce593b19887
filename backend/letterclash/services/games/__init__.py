"""Game domain services: lexicon, scoring, rooms and timers.

This package contains the game rules and room lifecycle. It is imported by
HTTP routes and socket handlers but never imports Flask itself, keeping
transport concerns separated from core game mechanics.
"""
