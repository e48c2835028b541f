"""Intelligence OS - append-only intelligence ledger and its batch units."""

__version__ = "0.6.0"
