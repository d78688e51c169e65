"""Submit local files to a Canvas assignment through the file upload API."""

__version__ = "0.1.0"
