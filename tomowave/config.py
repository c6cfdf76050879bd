from dataclasses import dataclass, field
from typing import Optional

import torch

from .errors import ConfigurationError

# Device & dtypes (shared)
DEVICE = torch.device("cuda" if torch.cuda.is_available() else "cpu")
DTYPE = torch.double    # real-valued RBM parameters and energies
CDTYPE = torch.cdouble  # wavefunction values and rotated gradients

DEFAULT_SEED = 13579        # fixed on purpose, runs must replay
MAX_ROTATED_SITES = 20      # 2^t completions per rotated gradient
MAX_ROTATED_SITES_LIMIT = 62  # completion indices are int64
COMPLETION_CHUNK = 4096      # completions evaluated per batch
MAX_HILBERT_SIZE = 20       # exact enumeration of the full space
DEGENERACY_TOL = 1e-12      # relative, see ComplexWaveFunction.rotated_gradient


@dataclass(frozen=True)
class WaveFunctionConfig:
    """Everything needed to build a ComplexWaveFunction and its two RBMs."""
    num_visible: int
    num_hidden: Optional[int] = None
    num_chains: int = 100

    seed: int = DEFAULT_SEED            # sampling stream
    init_seed: Optional[int] = None     # parameter init; None keeps the default init
    sigma: Optional[float] = None

    max_rotated_sites: int = MAX_ROTATED_SITES
    completion_chunk: int = COMPLETION_CHUNK
    degeneracy_tol: float = DEGENERACY_TOL
    device: torch.device = field(default=DEVICE, compare=False)

    def __post_init__(self):
        if int(self.num_visible) < 1:
            raise ConfigurationError(f"num_visible must be >= 1, got {self.num_visible}")
        if self.num_hidden is not None and int(self.num_hidden) < 1:
            raise ConfigurationError(f"num_hidden must be >= 1, got {self.num_hidden}")
        if int(self.num_chains) < 1:
            raise ConfigurationError(f"num_chains must be >= 1, got {self.num_chains}")
        if self.sigma is not None and self.sigma <= 0:
            raise ConfigurationError(f"sigma must be positive, got {self.sigma}")
        if not 0 <= int(self.max_rotated_sites) <= MAX_ROTATED_SITES_LIMIT:
            raise ConfigurationError(f"max_rotated_sites must lie in [0, {MAX_ROTATED_SITES_LIMIT}]")
        if int(self.completion_chunk) < 1:
            raise ConfigurationError("completion_chunk must be >= 1")
        if not self.degeneracy_tol >= 0:
            raise ConfigurationError("degeneracy_tol must be non-negative")

    @property
    def hidden(self) -> int:
        return int(self.num_hidden) if self.num_hidden else int(self.num_visible)
