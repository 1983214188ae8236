"""Build, sign, load and verify provider archives of per-target native libraries."""

__version__ = "0.1.0"
__all__ = ["archive", "claims", "keys"]