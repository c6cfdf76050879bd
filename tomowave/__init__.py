import logging

from .config import DEVICE, DTYPE, CDTYPE, DEFAULT_SEED, WaveFunctionConfig
from .errors import TomowaveError, ConfigurationError, DegenerateAmplitudeError, DomainViolationError

from .models.rbm import BinaryRBM

from .neural_states.complex_rbm import ComplexWaveFunction
from .neural_states.pauli import create_dict, as_complex_unitary

from .utils.functional import logistic, ln1pexp
from .utils.rng import RandomStream

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    # config
    "DEVICE", "DTYPE", "CDTYPE", "DEFAULT_SEED", "WaveFunctionConfig",
    # errors
    "TomowaveError", "ConfigurationError", "DegenerateAmplitudeError", "DomainViolationError",
    # models
    "BinaryRBM",
    # neural states & physics
    "ComplexWaveFunction", "create_dict", "as_complex_unitary",
    # utils
    "logistic", "ln1pexp", "RandomStream",
]
