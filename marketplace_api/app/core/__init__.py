"""
Cross-cutting plumbing: settings, logging, SQLite access, the error
taxonomy and bearer-token verification.
"""
