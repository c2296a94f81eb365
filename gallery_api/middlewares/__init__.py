"""
HTTP middlewares: request logging and rate limiting.
"""
