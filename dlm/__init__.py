"""dlm - a download manager that routes URLs to external downloader programs."""

__version__ = "0.3.0"
