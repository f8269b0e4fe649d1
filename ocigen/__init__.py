"""Generate and edit OCI runtime configuration documents and seccomp profiles."""

__version__ = "0.1.0"