"""
Core utilities — shared error hierarchy and cross-cutting concerns.

Used by the registry, router, module services, API server, and CLI.
"""
