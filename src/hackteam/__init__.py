"""Hackteam: hackathon team formation and peer voting."""

__version__ = "0.1.0"
