"""Engagement and scheduling engine for the Cancheo venue-booking app."""

__version__ = "0.1.0"
