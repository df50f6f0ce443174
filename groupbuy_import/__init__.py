"""Group-buy order workbook importer."""

__version__ = "0.1.0"
