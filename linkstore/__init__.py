"""Linkstore sync: local-first data layer for vendor storefronts."""

__version__ = "0.1.0"
