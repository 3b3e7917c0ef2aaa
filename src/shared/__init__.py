"""
Shared Kernel Module
====================

This module contains shared infrastructure used across the SLA bounded
context: structured logging and generic helpers.

DO NOT add SLA business logic to the shared kernel.
"""

__version__ = "1.0.0"
