"""
BTK Block Check
Checks whether a domain is blocked by resolving it through the regulator's
DNS resolvers and looking for block-page addresses in the answer
"""

from .version import __author__, __version__

__all__ = ["__author__", "__version__"]
