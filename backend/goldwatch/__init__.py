"""goldwatch: precious-metal price scraping and normalization pipeline."""

__version__ = "0.1.0"
