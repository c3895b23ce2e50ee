"""
County Harvester - Core Package

This package contains the collection engine for county property listings,
including scraping, normalization, scheduling and health monitoring.
"""

__version__ = "0.1.0"
