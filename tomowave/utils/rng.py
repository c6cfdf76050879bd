import logging

import torch

from ..config import DEFAULT_SEED, DEVICE, DTYPE
from ..errors import DomainViolationError

logger = logging.getLogger(__name__)


class RandomStream:
    """
    Seeded source of uniform draws shared by everything that samples.

    Every Bernoulli outcome consumes exactly one uniform draw, in row-major
    order of the target, so a run replays bit-for-bit from the seed as long
    as the batch layout and sweep order are unchanged.
    """

    def __init__(self, seed: int = DEFAULT_SEED, device: torch.device = DEVICE):
        self.device = torch.device(device)
        self.seed = int(seed)
        self.generator = torch.Generator(device=self.device)
        self.generator.manual_seed(self.seed)

    @classmethod
    def from_entropy(cls, device: torch.device = DEVICE):
        """Non-reproducible stream seeded from system entropy (opt-in only)."""
        seed = torch.Generator().seed()
        logger.debug("RandomStream seeded from entropy: %d", seed)
        return cls(seed, device=device)

    def __repr__(self):
        return f"RandomStream(seed={self.seed}, device='{self.device}')"

    def reset(self):
        """Rewind to the initial seed."""
        self.generator.manual_seed(self.seed)

    def uniform(self, *shape) -> torch.Tensor:
        """Uniform draws in [0, 1)."""
        return torch.rand(*shape, generator=self.generator, dtype=DTYPE, device=self.device)

    def sample_layer(self, target: torch.Tensor, probs: torch.Tensor) -> torch.Tensor:
        """
        Overwrite `target` with Bernoulli(probs) outcomes: 1 where draw < prob.
        Shapes must match; probabilities must lie in [0, 1].
        """
        if target.shape != probs.shape:
            raise ValueError(f"sample_layer: target {tuple(target.shape)} != probs {tuple(probs.shape)}")
        if probs.numel() and (probs.min() < 0 or probs.max() > 1 or torch.isnan(probs).any()):
            raise DomainViolationError("sample_layer: probabilities must lie in [0, 1]")
        draws = self.uniform(*probs.shape)
        target.copy_((draws < probs.to(draws)).to(target.dtype))
        return target
