"""
Source Ingestion Module
"""
from .batch_loader import FileFormat, LoadResult, SourceData, SourceLoader, seed_database

__all__ = [
    "FileFormat",
    "LoadResult",
    "SourceData",
    "SourceLoader",
    "seed_database",
]
