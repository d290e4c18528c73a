"""Print RFQ engine — vendor matching and quote request lifecycle."""

__version__ = "0.1.0"
