"""
Energy Monitor core: point model, aggregation pipeline, series resolution
and vendor sync sessions.
"""

__version__ = "1.0.0"
