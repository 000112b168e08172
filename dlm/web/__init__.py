"""
Web Scraping Layer.

This package contains the best-effort page-title scraper used to give queued
jobs a readable name.
"""

from .title_fetcher import extract_title, fetch_page_title

__all__ = ["extract_title", "fetch_page_title"]
