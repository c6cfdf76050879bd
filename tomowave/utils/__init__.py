from .functional import logistic, ln1pexp
from .rng import RandomStream

__all__ = ["logistic", "ln1pexp", "RandomStream"]
