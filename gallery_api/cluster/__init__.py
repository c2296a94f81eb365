"""
Multi-process serving: a supervisor process owning the listening socket and
uvicorn worker processes reporting back to it.
"""
