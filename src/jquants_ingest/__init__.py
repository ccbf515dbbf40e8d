"""J-Quants daily ingestion pipeline."""

__version__ = "0.1.0"

__all__ = ["__version__"]
