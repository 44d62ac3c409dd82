"""Mint a bearer token for local development.

Usage:
    python create_token.py user@example.com [days]

The email must belong to an active row in ``users``.  The token is
signed with ``SECRET_KEY`` and defaults to a 30 day lifetime.
"""
import sys

from marketplace_api.app.core.security import create_access_token

if len(sys.argv) < 2:
    sys.exit("usage: python create_token.py <email> [days]")

days = int(sys.argv[2]) if len(sys.argv) > 2 else 30
token = create_access_token({"sub": sys.argv[1]}, expires_delta=days * 24 * 60 * 60)
print(token)
