"""githubbeat — periodic GitHub repository statistics collector."""

__version__ = "0.1.0"
