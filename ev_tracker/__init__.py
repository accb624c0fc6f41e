"""Incremental used-EV listing collection and price modelling."""

__version__ = "0.1.0"
