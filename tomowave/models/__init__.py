from .rbm import BinaryRBM, check_binary

__all__ = ["BinaryRBM", "check_binary"]
