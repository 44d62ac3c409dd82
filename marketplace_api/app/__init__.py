"""
Application package for the Community Marketplace API.

``main`` builds the FastAPI app, ``core`` holds configuration, logging,
database and security plumbing, ``schemas`` the Pydantic models,
``services`` the business logic and ``api`` the versioned routers.
"""
