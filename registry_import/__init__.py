"""Sequential shareholder registry bulk importer."""

__version__ = "0.1.0"
