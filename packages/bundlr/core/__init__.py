"""bundlr core library: package, back up and reinstall application bundles."""

from bundlr.core.errors import BundlrError

__version__ = "0.1.0"

__all__ = ["BundlrError", "__version__"]
