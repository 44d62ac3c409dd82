"""
Service layer.

Each service encapsulates the business logic of one marketplace
component.  Services receive the acting user explicitly as an
``Actor`` and raise errors from ``core.exceptions``; they know nothing
about HTTP.  All SQL lives in ``store.EntityStore``.
"""
