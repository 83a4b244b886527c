"""
Reseet: receipt capture, write-off scoring and category filing core.
"""

__version__ = "0.1.0"
