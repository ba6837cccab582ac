"""abfunnel: A/B experiments for funnel pages."""

__version__ = "0.1.0"
