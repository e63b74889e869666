"""extbuild - incremental builds for native extension modules.

Compiles a shared-library extension module from generated sources, object
files and static support archives, rebuilding only what changed.
"""

__version__ = "0.1.0"
