"""sven - encrypted local secrets with an optional in-memory cache daemon."""

__version__ = "0.1.0"
