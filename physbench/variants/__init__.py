"""
Physical-design variants and their lifecycle.
"""

from physbench.variants.manager import Transition, VariantManager

__all__ = ["Transition", "VariantManager"]
