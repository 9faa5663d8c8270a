"""
zigd: staged bootstrap builds of the zig compiler
from a local source tree.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
