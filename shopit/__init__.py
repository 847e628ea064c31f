"""
Catalog backend for the shop storefront and admin panel.

This package provides a FastAPI application with media storage and catalog
abstractions so the product image lifecycle can be exercised against either
real backends (S3-compatible object storage, SQL database) or in-memory
doubles.
"""
