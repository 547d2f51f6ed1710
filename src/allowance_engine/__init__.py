"""Allowance computation and wallet synchronization engine."""

__version__ = "0.1.0"
