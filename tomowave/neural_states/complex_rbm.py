import logging
import math

import torch

from ..config import CDTYPE, DTYPE, MAX_HILBERT_SIZE, WaveFunctionConfig
from ..errors import ConfigurationError, DegenerateAmplitudeError
from ..models.rbm import BinaryRBM, check_binary
from ..utils.rng import RandomStream
from .pauli import as_complex_unitary, create_dict

logger = logging.getLogger(__name__)


class ComplexWaveFunction:
    """
    Two real RBMs define magnitude and phase over bitstrings:
      psi(v) = sqrt(p_am(v)) * exp(i * ln(p_ph(v)) / 2)

    Only the amplitude RBM is ever sampled, |psi(v)|^2 is proportional to p_am(v).
    Both RBMs must carry the same number of parameters; the flat parameter
    vector is [amplitude][phase].
    """

    def __init__(self, config, unitary_dict=None, rbm_am=None, rbm_ph=None, stream=None):
        if not isinstance(config, WaveFunctionConfig):
            config = WaveFunctionConfig(num_visible=int(config))
        self.config = config
        self.device = config.device

        if stream is None:
            stream = rbm_am.stream if rbm_am is not None else RandomStream(config.seed, device=self.device)
        self.stream = stream

        if rbm_am is None:
            rbm_am = BinaryRBM(config.num_visible, config.hidden, config.num_chains,
                               stream=stream, device=self.device)
        if rbm_ph is None:
            rbm_ph = BinaryRBM(config.num_visible, config.hidden, config.num_chains,
                               stream=stream, device=self.device)
        rbm_am.stream = stream
        self.rbm_am = rbm_am
        self.rbm_ph = rbm_ph

        if rbm_am.num_visible != rbm_ph.num_visible:
            raise ConfigurationError(
                f"amplitude RBM has {rbm_am.num_visible} visible units, phase RBM {rbm_ph.num_visible}")
        if rbm_am.num_pars != rbm_ph.num_pars:
            raise ConfigurationError(
                f"amplitude and phase RBMs need equal parameter counts, got {rbm_am.num_pars} and {rbm_ph.num_pars}")
        self._split = rbm_am.num_pars

        raw = unitary_dict if unitary_dict is not None else create_dict(device=self.device)
        self.U = {k: as_complex_unitary(v, self.device) for k, v in raw.items()}

        self.max_rotated_sites = int(config.max_rotated_sites)
        self.degeneracy_tol = float(config.degeneracy_tol)
        self.completion_chunk = int(config.completion_chunk)
        self._max_size = MAX_HILBERT_SIZE

        if config.init_seed is not None:
            self.initialize_parameters(config.init_seed, config.sigma)

    def __repr__(self):
        return (f"ComplexWaveFunction(num_visible={self.num_visible}, num_hidden={self.num_hidden}, "
                f"num_pars={self.num_pars}, device='{self.device}')")

    # sizes
    @property
    def num_visible(self):
        return self.rbm_am.num_visible

    @property
    def num_hidden(self):
        return self.rbm_am.num_hidden

    @property
    def num_pars(self):
        return self.rbm_am.num_pars + self.rbm_ph.num_pars

    @property
    def num_chains(self):
        return self.rbm_am.num_chains

    @property
    def max_size(self):
        return self._max_size

    def _as_visible(self, v):
        v = torch.as_tensor(v, dtype=DTYPE, device=self.device)
        if v.dim() == 0 or v.shape[-1] != self.num_visible:
            raise ValueError(f"expected configurations of width {self.num_visible}, got shape {tuple(v.shape)}")
        return check_binary(v)

    # amplitudes/phases
    def amplitude(self, v):
        """|psi(v)| = sqrt(p_am(v))."""
        return self.rbm_am.prob(self._as_visible(v)).sqrt()

    def phase(self, v):
        """ln(p_ph(v)); psi carries half of it as its angle."""
        return self.rbm_ph.log_prob(self._as_visible(v))

    def psi(self, v):
        """psi(v) as complex tensor (cdouble)."""
        v = self._as_visible(v)
        amp = self.rbm_am.prob(v).sqrt()
        ph = self.rbm_ph.log_prob(v)
        return amp.to(CDTYPE) * torch.exp(0.5j * ph.to(CDTYPE))

    def psi_normalized(self, v, space=None):
        """psi normalized by the exact amplitude partition function."""
        v = self._as_visible(v)
        space = self.generate_hilbert_space() if space is None else space
        logZ = torch.logsumexp(self.rbm_am.log_prob(space), dim=0)
        log_amp = 0.5 * (self.rbm_am.log_prob(v) - logZ)
        return torch.exp(log_amp.to(CDTYPE) + 0.5j * self.rbm_ph.log_prob(v).to(CDTYPE))

    def generate_hilbert_space(self, size=None, device=None):
        """Enumerate computational basis as a (2^size, size) bit-matrix, MSB first."""
        device = self.device if device is None else device
        size = self.num_visible if size is None else int(size)
        if size > self.max_size:
            raise ConfigurationError(f"Hilbert space of {size} sites too large (max {self.max_size})")
        n = 1 << size
        ar = torch.arange(n, device=device, dtype=torch.long)
        shifts = torch.arange(size - 1, -1, -1, device=device, dtype=torch.long)
        return ((ar.unsqueeze(1) >> shifts) & 1).to(DTYPE)

    # sampling (amplitude RBM only)
    def prob_h_given_v(self, v, out=None):
        return self.rbm_am.prob_h_given_v(v, out=out)

    def prob_v_given_h(self, h, out=None):
        return self.rbm_am.prob_v_given_h(h, out=out)

    def sample_layer(self, target, probs):
        return self.stream.sample_layer(target, probs)

    def sample(self, steps):
        return self.rbm_am.sample(steps)

    def visible_state_row(self, s):
        return self.rbm_am.visible_state_row(s)

    def set_visible_layer(self, v):
        self.rbm_am.set_visible_layer(v)

    # gradients of the effective energies
    @staticmethod
    def _per_sample_grads(rbm, v):
        g = rbm.effective_energy_gradient(v, reduce=False)
        return g.squeeze(0) if v.dim() < 2 else g

    def am_grads(self, v):
        return self._per_sample_grads(self.rbm_am, self._as_visible(v))

    def ph_grads(self, v):
        return self._per_sample_grads(self.rbm_ph, self._as_visible(v))

    def gradient(self, v):
        """[am_grads(v), ph_grads(v)], shape (..., num_pars)."""
        v = self._as_visible(v)
        return torch.cat([self._per_sample_grads(self.rbm_am, v),
                          self._per_sample_grads(self.rbm_ph, v)], dim=-1)

    # rotated measurement bases
    def _rotated_sites(self, basis, table):
        basis = list(basis)
        if len(basis) != self.num_visible:
            raise ConfigurationError(f"basis length {len(basis)} != num_visible {self.num_visible}")
        sites = [j for j, b in enumerate(basis) if b != "Z"]
        if len(sites) > self.max_rotated_sites:
            raise ConfigurationError(
                f"{len(sites)} rotated sites exceed the enumeration limit of {self.max_rotated_sites}")
        missing = sorted({basis[j] for j in sites if basis[j] not in table})
        if missing:
            raise ConfigurationError(f"no unitary for basis labels {missing}")
        return basis, sites

    def _site_unitaries(self, basis, sites, table):
        """(t, 2, 2) stack of the unitaries of the rotated sites, one lookup per site."""
        if not sites:
            return torch.empty(0, 2, 2, dtype=CDTYPE, device=self.device)
        return torch.stack([as_complex_unitary(table[basis[j]], self.device) for j in sites], dim=0)

    def _completion_chunks(self, sites, state, Uc):
        """
        Yield (v, Ut) over the 2^t completions of the rotated sites of `state`,
        at most `completion_chunk` rows at a time. Completion i puts bit k of i
        on the k-th rotated site; Ut is the product of U[measured, completed].
        """
        t = len(sites)
        site_idx = torch.tensor(sites, dtype=torch.long, device=self.device)
        measured = state[site_idx].long()                                   # (t,)
        k = torch.arange(t, dtype=torch.long, device=self.device)
        C = 1 << t
        for start in range(0, C, self.completion_chunk):
            idx = torch.arange(start, min(start + self.completion_chunk, C), dtype=torch.long, device=self.device)
            bits = (idx.unsqueeze(1) >> k) & 1                              # (c, t)
            v = state.repeat(idx.numel(), 1)
            v[:, site_idx] = bits.to(DTYPE)
            Ut = Uc[k, measured, bits].prod(dim=1)                          # (c,)
            yield v, Ut

    def _rotated_sums(self, basis, state, unitaries, with_gradient):
        """
        Accumulate sum U psi (and sum U psi Grad) over all completions with
        every term scaled by exp(-shift), shift being the running maximum of
        ln|psi|. Returns basis, state, shift, den, sum |terms|, num.
        """
        table = self.U if unitaries is None else unitaries
        basis, sites = self._rotated_sites(basis, table)
        state = self._as_visible(state)
        if state.dim() != 1:
            raise ValueError(f"expected a single configuration, got shape {tuple(state.shape)}")
        logger.debug("rotated basis %s: %d sites, %d completions", "".join(basis), len(sites), 1 << len(sites))
        Uc = self._site_unitaries(basis, sites, table)

        shift = -math.inf
        den = torch.zeros((), dtype=CDTYPE, device=self.device)
        scale = torch.zeros((), dtype=DTYPE, device=self.device)
        num = torch.zeros(self.num_pars, dtype=CDTYPE, device=self.device) if with_gradient else None
        for v, Ut in self._completion_chunks(sites, state, Uc):
            log_psi = (0.5 * self.rbm_am.log_prob(v)).to(CDTYPE) + 0.5j * self.rbm_ph.log_prob(v).to(CDTYPE)
            chunk_max = float(log_psi.real.max())
            if chunk_max > shift:
                if math.isfinite(shift):
                    rescale = math.exp(shift - chunk_max)
                    den, scale = den * rescale, scale * rescale
                    if with_gradient:
                        num = num * rescale
                shift = chunk_max
            terms = Ut * torch.exp(log_psi - shift)
            den = den + terms.sum()
            scale = scale + terms.abs().sum()
            if with_gradient:
                num = num + torch.einsum("c,cg->g", terms, self.gradient(v).to(CDTYPE))
        return basis, state, shift, den, float(scale), num

    def rotated_amplitude(self, basis, state, unitaries=None):
        """<state| (x)U |psi> for an outcome `state` measured in `basis`."""
        _, _, shift, den, _, _ = self._rotated_sums(basis, state, unitaries, with_gradient=False)
        return den * math.exp(shift)

    def rotated_gradient(self, basis, state, unitaries=None):
        """
        Energy gradient of both RBMs for an outcome measured in `basis`:

            sum_v U(state, v) psi(v) Grad(v) / sum_v U(state, v) psi(v)

        where v runs over the 2^t completions of the t rotated sites. Both sums
        are taken on psi rescaled by its largest modulus, which cancels in the
        ratio. Returns a complex (num_pars,) vector. Raises
        DegenerateAmplitudeError when the denominator vanishes relative to the
        size of its terms.
        """
        basis, state, shift, den, scale, num = self._rotated_sums(basis, state, unitaries, with_gradient=True)
        mag = float(den.abs())
        if not (math.isfinite(mag) and math.isfinite(scale)) or mag <= self.degeneracy_tol * scale:
            raise DegenerateAmplitudeError(
                f"outcome {state.long().tolist()} has vanishing amplitude in basis {''.join(basis)}",
                basis=tuple(basis), state=state.clone(), denominator=complex(den), log_scale=shift)
        return num / den

    def rotated_energy_gradient(self, basis, state, unitaries=None):
        """
        Real gradient of -ln|<state|(x)U|psi>|^2, split per RBM:
        [Re(amplitude block), -Im(phase block)] of rotated_gradient.
        """
        g = self.rotated_gradient(basis, state, unitaries)
        n = self._split
        return torch.cat([g[:n].real, -g[n:].imag]).to(DTYPE)

    def positive_phase_gradient(self, samples, bases=None):
        """
        Data-averaged energy gradient (num_pars,). Without `bases` all samples
        are computational-basis outcomes. Rows sharing a basis are grouped;
        degenerate rows are skipped and excluded from the average.
        """
        samples = self._as_visible(samples)
        if samples.dim() < 2:
            samples = samples.unsqueeze(0)
        if samples.shape[0] == 0:
            raise ValueError("positive_phase_gradient: empty samples batch.")
        n = self._split
        G = torch.zeros(self.num_pars, dtype=DTYPE, device=self.device)

        if bases is None:
            G[:n] = self.rbm_am.effective_energy_gradient(samples)
            return G / float(samples.shape[0])

        try:
            bases_seq = [tuple(row) for row in bases]
        except TypeError as e:
            raise ValueError("positive_phase_gradient: `bases` must be an iterable of label rows.") from e
        if len(bases_seq) != samples.shape[0]:
            raise ValueError(f"positive_phase_gradient: samples batch {samples.shape[0]} != bases rows {len(bases_seq)}.")
        if any(len(row) != self.num_visible for row in bases_seq):
            raise ConfigurationError(f"positive_phase_gradient: basis rows must have width {self.num_visible}.")

        # Bucketize identical basis rows
        buckets = {}
        for i, row in enumerate(bases_seq):
            buckets.setdefault(row, []).append(i)

        used = 0
        for basis_t, idxs in buckets.items():
            if all(ch == "Z" for ch in basis_t):
                idxs_t = torch.tensor(idxs, device=samples.device)
                G[:n] += self.rbm_am.effective_energy_gradient(samples[idxs_t, :])
                used += len(idxs)
                continue
            for i in idxs:
                try:
                    G += self.rotated_energy_gradient(basis_t, samples[i])
                except DegenerateAmplitudeError as err:
                    logger.warning("skipping sample %d: vanishing amplitude in basis %s (|den| = %.3e)",
                                   i, "".join(basis_t), abs(err.denominator))
                    continue
                used += 1

        if used == 0:
            raise DegenerateAmplitudeError("positive_phase_gradient: every sample has vanishing amplitude")
        return G / float(used)

    def negative_phase_gradient(self, k):
        """Chain-averaged amplitude energy gradient after k Gibbs sweeps."""
        vk = self.sample(k)
        G = torch.zeros(self.num_pars, dtype=DTYPE, device=self.device)
        G[:self._split] = self.rbm_am.effective_energy_gradient(vk) / float(vk.shape[0])
        return G

    def compute_batch_gradients(self, k, samples, bases=None):
        """Positive minus negative phase, ready to be fed to an optimizer."""
        return self.positive_phase_gradient(samples, bases) - self.negative_phase_gradient(k)

    # parameters
    def initialize_parameters(self, seed, sigma=None):
        self.rbm_am.initialize_parameters(seed=seed, sigma=sigma)
        self.rbm_ph.initialize_parameters(seed=seed, sigma=sigma)

    def get_parameters(self):
        return torch.cat([self.rbm_am.get_parameters(), self.rbm_ph.get_parameters()])

    def set_parameters(self, pars):
        pars = torch.as_tensor(pars, dtype=DTYPE).reshape(-1)
        if pars.numel() != self.num_pars:
            raise ConfigurationError(f"set_parameters: expected {self.num_pars} values, got {pars.numel()}")
        self.rbm_am.set_parameters(pars[:self._split])
        self.rbm_ph.set_parameters(pars[self._split:])
