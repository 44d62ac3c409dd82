"""
Version 1 of the API.

Breaking changes belong in a new version subpackage so that existing
clients keep working.
"""
