import logging

import numpy as np
import torch
from torch import nn
from torch.nn import functional as F
from torch.nn.utils import parameters_to_vector, vector_to_parameters

from ..config import DEVICE, DTYPE
from ..errors import ConfigurationError, DomainViolationError
from ..utils.functional import logistic, ln1pexp
from ..utils.rng import RandomStream

logger = logging.getLogger(__name__)


def check_binary(v: torch.Tensor, name: str = "v") -> torch.Tensor:
    """Raise DomainViolationError unless every entry of `v` is exactly 0 or 1."""
    if v.numel() and not bool(torch.all((v == 0) | (v == 1))):
        raise DomainViolationError(f"{name}: visible configurations must be binary (0/1)")
    return v


class BinaryRBM(nn.Module):
    """
    Bernoulli/Bernoulli RBM, used twice by ComplexWaveFunction: amplitude and phase.

    Parameters are float64 with requires_grad=False; gradients are explicit
    (effective_energy_gradient) and laid out as [W (H*V), a (V), b (H)], the
    same order as parameters_to_vector(self.parameters()).

    The chain state (num_chains, V) is created lazily from fair-coin draws of
    `stream`, so a model that is never sampled never consumes random numbers.
    """

    def __init__(self, num_visible, num_hidden=None, num_chains=100, stream=None,
                 zero_weights=False, device: torch.device = DEVICE):
        super().__init__()
        self.num_visible = int(num_visible)
        self.num_hidden = int(num_hidden) if num_hidden else self.num_visible
        self.num_pars = (self.num_visible * self.num_hidden) + self.num_visible + self.num_hidden
        self.num_chains = int(num_chains)
        self.device = device
        self.stream = stream if stream is not None else RandomStream(device=device)

        self._visible_state = None
        self._hidden_state = None
        self.initialize_parameters(zero_weights=zero_weights)

    def __repr__(self):
        return (f"BinaryRBM(num_visible={self.num_visible}, num_hidden={self.num_hidden}, "
                f"num_chains={self.num_chains}, device='{self.device}')")

    # parameters
    def initialize_parameters(self, seed=None, sigma=None, zero_weights=False):
        """
        Without a seed: W ~ N(0, 1/V) (or zeros), biases zero.
        With a seed: every parameter ~ N(0, sigma^2) from a private generator,
        so two models initialized with the same seed end up identical.
        """
        H, V = self.num_hidden, self.num_visible
        if seed is None:
            gen_tensor = torch.zeros if zero_weights else torch.randn
            W = gen_tensor(H, V, device=self.device, dtype=DTYPE) / np.sqrt(V)
            a = torch.zeros(V, device=self.device, dtype=DTYPE)
            b = torch.zeros(H, device=self.device, dtype=DTYPE)
        else:
            sigma = 0.01 if sigma is None else float(sigma)
            if sigma <= 0:
                raise ConfigurationError(f"sigma must be positive, got {sigma}")
            gen = torch.Generator().manual_seed(int(seed))
            flat = torch.randn(self.num_pars, generator=gen, dtype=DTYPE) * sigma
            flat = flat.to(self.device)
            W = flat[: H * V].reshape(H, V)
            a = flat[H * V: H * V + V]
            b = flat[H * V + V:]

        self.weights = nn.Parameter(W.clone(), requires_grad=False)
        self.visible_bias = nn.Parameter(a.clone(), requires_grad=False)
        self.hidden_bias = nn.Parameter(b.clone(), requires_grad=False)

    def get_parameters(self) -> torch.Tensor:
        return parameters_to_vector(self.parameters()).detach().clone()

    def set_parameters(self, vec: torch.Tensor):
        vec = torch.as_tensor(vec, dtype=DTYPE).reshape(-1)
        if vec.numel() != self.num_pars:
            raise ConfigurationError(f"set_parameters: expected {self.num_pars} values, got {vec.numel()}")
        # clone: vector_to_parameters aliases the slices it assigns
        vector_to_parameters(vec.detach().to(self.device).clone(), self.parameters())

    # energies
    def effective_energy(self, v):
        """
        E(v) = -v.a - sum_j ln(1 + exp(b_j + W_j.v))
        Return shape matches input batch rank.
        """
        unsq = False
        if v.dim() < 2:
            v = v.unsqueeze(0)
            unsq = True
        v = v.to(self.weights)
        visible_bias_term = torch.matmul(v, self.visible_bias)
        hid_bias_term = ln1pexp(F.linear(v, self.weights, self.hidden_bias)).sum(-1)
        out = -(visible_bias_term + hid_bias_term)
        return out.squeeze(0) if unsq else out

    def log_prob(self, v):
        """Unnormalized log-probability, -E(v)."""
        return -self.effective_energy(v)

    def prob(self, v):
        """Unnormalized marginal probability exp(-E(v)) >= 0."""
        return self.log_prob(v).exp()

    def effective_energy_gradient(self, v, reduce=True):
        """
        Gradients of E(v) w.r.t. parameters.
          - reduce=True: batch-summed flat vector (num_pars,)
          - reduce=False: per-sample grads with trailing grad-dim (..., num_pars)
        """
        v = (v.unsqueeze(0) if v.dim() < 2 else v).to(self.weights)  # (..., V)
        prob = self.prob_h_given_v(v)                                # (..., H)

        if reduce:
            v2 = v.reshape(-1, self.num_visible)
            p2 = prob.reshape(-1, self.num_hidden)
            W_grad = -torch.matmul(p2.t(), v2)                       # (H, V)
            vb_grad = -torch.sum(v2, dim=0)                          # (V,)
            hb_grad = -torch.sum(p2, dim=0)                          # (H,)
            return torch.cat([W_grad.reshape(-1), vb_grad, hb_grad], dim=0)

        W_grad = -torch.einsum("...h,...v->...hv", prob, v)          # (..., H, V)
        vb_grad = -v                                                 # (..., V)
        hb_grad = -prob                                              # (..., H)
        vec = [W_grad.reshape(*v.shape[:-1], -1), vb_grad, hb_grad]
        return torch.cat(vec, dim=-1)                                # (..., num_pars)

    # conditionals
    def prob_v_given_h(self, h, out=None):
        unsq = False
        if h.dim() < 2:
            h = h.unsqueeze(0)
            unsq = True
        res = logistic(torch.matmul(h.to(self.weights), self.weights.data).add_(self.visible_bias.data)).clamp_(0, 1)
        if out is not None:
            out.copy_(res.squeeze(0) if unsq and out.dim() == 1 else res)
            return out
        return res.squeeze(0) if unsq else res

    def prob_h_given_v(self, v, out=None):
        unsq = False
        if v.dim() < 2:
            v = v.unsqueeze(0)
            unsq = True
        res = logistic(torch.matmul(v.to(self.weights), self.weights.data.t()).add_(self.hidden_bias.data)).clamp_(0, 1)
        if out is not None:
            out.copy_(res.squeeze(0) if unsq and out.dim() == 1 else res)
            return out
        return res.squeeze(0) if unsq else res

    # chains
    @property
    def visible_state(self) -> torch.Tensor:
        if self._visible_state is None:
            v = torch.empty(self.num_chains, self.num_visible, device=self.device, dtype=DTYPE)
            self._visible_state = self.stream.sample_layer(v, torch.full_like(v, 0.5))
        return self._visible_state

    @property
    def hidden_state(self) -> torch.Tensor:
        if self._hidden_state is None:
            self._hidden_state = torch.zeros(self.num_chains, self.num_hidden, device=self.device, dtype=DTYPE)
        return self._hidden_state

    def visible_state_row(self, s: int) -> torch.Tensor:
        return self.visible_state[s].clone()

    def set_visible_layer(self, v):
        """Replace the chain state; the number of rows becomes num_chains."""
        v = torch.as_tensor(v, dtype=DTYPE, device=self.device)
        if v.dim() != 2 or v.shape[1] != self.num_visible:
            raise ValueError(f"set_visible_layer: expected (chains, {self.num_visible}), got {tuple(v.shape)}")
        check_binary(v, "set_visible_layer")
        self.num_chains = int(v.shape[0])
        self._visible_state = v.clone()
        self._hidden_state = None

    def sample(self, steps: int) -> torch.Tensor:
        """`steps` block-Gibbs sweeps v -> h -> v over all chains, in place."""
        v = self.visible_state
        h = self.hidden_state
        ph = torch.empty_like(h)
        pv = torch.empty_like(v)
        for _ in range(int(steps)):
            self.prob_h_given_v(v, out=ph)
            self.stream.sample_layer(h, ph)
            self.prob_v_given_h(h, out=pv)
            self.stream.sample_layer(v, pv)
        logger.debug("%d Gibbs sweeps over %d chains", int(steps), self.num_chains)
        return v
