import math

import torch

_LINEAR_REGIME = 30.0  # log(1 + e^x) == x to double precision above this


def logistic(x: torch.Tensor, out: torch.Tensor = None) -> torch.Tensor:
    """Elementwise 1 / (1 + exp(-x)) for vectors and matrices alike."""
    res = torch.reciprocal(1.0 + torch.exp(-x))
    if out is not None:
        out.copy_(res)
        return out
    return res


def ln1pexp(x):
    """
    Softplus log(1 + e^x) that returns x unchanged for x > 30.
    Accepts a python float or a tensor (applied elementwise).
    """
    if not torch.is_tensor(x):
        x = float(x)
        if x > _LINEAR_REGIME:
            return x
        return math.log1p(math.exp(x))
    # exp may overflow on the discarded branch; where() drops it
    return torch.where(x > _LINEAR_REGIME, x, torch.log1p(torch.exp(x)))
