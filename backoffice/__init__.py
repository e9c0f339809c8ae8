"""
Back-office stock and sales service.
"""

__version__ = "1.0.0"
