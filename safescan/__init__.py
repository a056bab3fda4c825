"""SafeScan: cosmetic ingredient risk analysis."""

__version__ = "0.1.0"
