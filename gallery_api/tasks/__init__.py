"""
Scheduled tasks. Every Task subclass defined in this package is started by
the server at boot.
"""
