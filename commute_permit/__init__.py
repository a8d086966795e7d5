"""Commute Permit: vehicle-commute permits issued from approved employee documents."""

__version__ = "1.0.0"
