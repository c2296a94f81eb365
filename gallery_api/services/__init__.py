"""
Service layer: data access, storage layout, image processing, archives and
third-party clients.
"""
