"""
Photo Discovery
Natural-language photo search, filtering and bulk operations.
"""

__version__ = "1.0.0"
