from .self_destruct import SelfDestruct

__all__ = ["SelfDestruct"]
