"""
Pydantic schema definitions for API payloads.

Each domain (service requests, service offers, users) defines its own
Pydantic models for request and response bodies.  Schemas are kept
separate from the SQL in the service layer so that the API
representation does not leak table layout.
"""
