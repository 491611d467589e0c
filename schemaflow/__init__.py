"""schemaflow — versioned, ordered, tracked schema migrations."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("schemaflow")
except PackageNotFoundError:
    __version__ = "0.1.0"  # fallback for development
