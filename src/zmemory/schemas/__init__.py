"""Pydantic request, response and stored-map schemas."""
