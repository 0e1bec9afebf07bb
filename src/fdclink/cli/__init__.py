"""
fdclink Command-Line Interface
==============================

- **fdclink**: issue STAT, READ and WRIT transactions to an FDC+ serial
  drive server

Implemented as a Click-based CLI application.
"""

__all__ = ["fdclink"]
