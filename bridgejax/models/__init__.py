from . import hierarchical_normal

__all__ = ["hierarchical_normal"]
