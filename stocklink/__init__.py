"""StockLink - shared catalog, per-branch stock and inter-branch transfers."""

__version__ = "1.0.0"
