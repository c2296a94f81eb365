"""
Utility modules: logging, metrics, security helpers, client IP resolution.
"""
