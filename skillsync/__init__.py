"""skillsync - install, audit and synchronize skill packages from GitHub."""

__version__ = "0.3.0"
