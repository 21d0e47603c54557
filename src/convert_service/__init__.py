"""
File Conversion Service package.

This module provides a FastAPI application that stores uploads, hands them
to CloudConvert and reports job status for clients to poll.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
