"""
Storage backends for txtrie node storage.
"""

from .local import LocalNodeBackend

__all__ = ["LocalNodeBackend"]
