"""
API layer - FastAPI application, routes and request/response models.
"""
