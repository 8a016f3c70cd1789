"""Mirror documentation from sibling repositories into one mdBook tree."""

__version__ = "0.1.0"
