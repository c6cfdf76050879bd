from math import sqrt

import numpy as np
import torch

from ..config import CDTYPE, DEVICE


def create_dict(device: torch.device = DEVICE, **overrides):
    """
    Build the {X, Y, Z} single-qubit unitary table as cdouble, indexed
    [measured, computational]. "Z" is the identity and marks unrotated sites.
    Y uses [[1,-i],[1,i]]/sqrt2 so branch orientation matches our measurement convention.
    """
    inv_sqrt2 = 1.0 / sqrt(2.0)

    X = inv_sqrt2 * torch.tensor([[1.0+0.0j,  1.0+0.0j],
                                  [1.0+0.0j, -1.0+0.0j]],
                                 dtype=CDTYPE, device=device)

    Y = inv_sqrt2 * torch.tensor([[1.0+0.0j,  0.0-1.0j],
                                  [1.0+0.0j,  0.0+1.0j]],
                                 dtype=CDTYPE, device=device)

    Z = torch.eye(2, dtype=CDTYPE, device=device)

    U = {"X": X.contiguous(), "Y": Y.contiguous(), "Z": Z.contiguous()}
    for name, mat in overrides.items():  # normalize overrides once
        U[name] = as_complex_unitary(mat, device)
    return U


def as_complex_unitary(U, device: torch.device = DEVICE):
    """Return a (2,2) complex (cdouble) matrix on `device`."""
    if torch.is_tensor(U):
        U_t = U
    elif isinstance(U, np.ndarray):
        U_t = torch.from_numpy(U.astype(np.complex128))
    else:
        U_t = torch.tensor(U, dtype=CDTYPE)
    if U_t.dim() != 2 or U_t.shape != (2, 2):
        raise ValueError(f"as_complex_unitary expects (2,2), got {tuple(U_t.shape)}")
    return U_t.to(device=device, dtype=CDTYPE).contiguous()
