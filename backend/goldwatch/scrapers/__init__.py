"""Scraping pipeline: fetch vendor pages, extract price tuples, normalize them.

Submodules are imported directly (``goldwatch.scrapers.scraper_service``
etc.) so that importing the package stays light.
"""
