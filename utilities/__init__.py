"""
Shared utilities for the Bookworm API.
"""
