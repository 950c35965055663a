"""Mason - build-or-reuse orchestration for cross-compiled binaries.

This package turns a (label, version) pair into a locally cached binary
for the host OS/architecture, building it with a cross-compilation
toolchain when it is not cached yet.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
