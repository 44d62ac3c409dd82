"""Community Marketplace API package."""
