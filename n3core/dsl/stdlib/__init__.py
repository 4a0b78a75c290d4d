"""Standard library of layer types."""

from .layers import STANDARD_GROUPS, STANDARD_LAYERS, install_standard_library

__all__ = ["STANDARD_GROUPS", "STANDARD_LAYERS", "install_standard_library"]
