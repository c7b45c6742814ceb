"""
gitfetch — Fetch every registered git repository in parallel.
"""

__version__ = "0.1.0"
