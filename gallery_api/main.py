"""
ASGI entry point for single-process runs:

    uvicorn gallery_api.main:app
"""
from gallery_api.server import create_app
from gallery_api.utils.logger import setup_logging

setup_logging()

app = create_app()
