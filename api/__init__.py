"""
FastAPI RESTful API for the Bookworm book recommendation service.

This module provides:
- Bearer token authentication resolved against stored users
- Book creation with hosted cover images
- Paginated and per-user book listings
- Owner-only book deletion
"""
