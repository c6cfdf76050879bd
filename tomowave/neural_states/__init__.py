from .complex_rbm import ComplexWaveFunction
from .pauli import create_dict, as_complex_unitary

__all__ = ["ComplexWaveFunction", "create_dict", "as_complex_unitary"]
