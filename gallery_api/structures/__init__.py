"""
Building blocks discovered by the server: routes and scheduled tasks.
"""
from gallery_api.structures.route import Route, is_public, public
from gallery_api.structures.task import Task

__all__ = ["Route", "Task", "public", "is_public"]
