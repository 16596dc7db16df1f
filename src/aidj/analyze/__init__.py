"""
Analysis Module: Derived musical descriptors.

- key : Camelot wheel mapping for (pitch class, mode) pairs
"""

__all__ = ["key"]
