"""
Route modules. Each module exposes a ``route`` (gallery_api.structures.Route)
collected by the server; modules in sub-packages are mounted under the
sub-package name.
"""
