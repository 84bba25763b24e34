"""
Mainstream - API Package
========================

FastAPI routers, one module per resource.
"""
