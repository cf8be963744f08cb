"""
Hull cleaning zone engine.

Derives allowed in-water zones from constraint polygons, land features and
a study area.
"""
__version__ = "0.1.0"
