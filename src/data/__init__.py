"""
Data Generation Module
"""
from .generators import DataGenerator, CustomerGenerator, SalesGenerator

__all__ = [
    "DataGenerator",
    "CustomerGenerator",
    "SalesGenerator",
]
