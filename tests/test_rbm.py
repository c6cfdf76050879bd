from __future__ import annotations

import math

import pytest
import torch

from tomowave import BinaryRBM, ConfigurationError, DomainViolationError, RandomStream

CPU = torch.device("cpu")


def make_rbm(num_visible: int = 3, num_hidden: int = 2, seed: int = 5, **kwargs) -> BinaryRBM:
    rbm = BinaryRBM(num_visible, num_hidden, stream=RandomStream(seed, device=CPU), device=CPU, **kwargs)
    rbm.initialize_parameters(seed=seed, sigma=0.4)
    return rbm


def all_configs(n: int) -> torch.Tensor:
    ar = torch.arange(1 << n)
    return ((ar.unsqueeze(1) >> torch.arange(n - 1, -1, -1)) & 1).double()


def test_parameter_count_and_layout() -> None:
    rbm = make_rbm(4, 3)

    assert rbm.num_pars == 4 * 3 + 4 + 3
    pars = rbm.get_parameters()
    assert pars.shape == (rbm.num_pars,)
    torch.testing.assert_close(pars[:12], rbm.weights.reshape(-1))
    torch.testing.assert_close(pars[12:16], rbm.visible_bias)
    torch.testing.assert_close(pars[16:], rbm.hidden_bias)


def test_set_parameters_copies_and_validates_length() -> None:
    rbm = make_rbm()
    pars = torch.arange(rbm.num_pars, dtype=torch.double)

    rbm.set_parameters(pars)
    pars += 100.0

    torch.testing.assert_close(rbm.get_parameters(), torch.arange(rbm.num_pars, dtype=torch.double))
    with pytest.raises(ConfigurationError):
        rbm.set_parameters(torch.zeros(rbm.num_pars + 1))


def test_same_seed_gives_same_parameters() -> None:
    torch.testing.assert_close(make_rbm(seed=9).get_parameters(), make_rbm(seed=9).get_parameters())
    assert not torch.equal(make_rbm(seed=9).get_parameters(), make_rbm(seed=10).get_parameters())


def test_zero_parameters_energy_and_conditionals() -> None:
    rbm = BinaryRBM(3, 4, zero_weights=True, device=CPU)
    v = all_configs(3)

    torch.testing.assert_close(rbm.effective_energy(v), torch.full((8,), -4 * math.log(2.0), dtype=torch.double))
    torch.testing.assert_close(rbm.prob(v), torch.full((8,), 16.0, dtype=torch.double))
    torch.testing.assert_close(rbm.prob_h_given_v(v), torch.full((8, 4), 0.5, dtype=torch.double))


def test_effective_energy_single_and_batch_agree() -> None:
    rbm = make_rbm()
    v = all_configs(3)

    batch = rbm.effective_energy(v)
    single = torch.stack([rbm.effective_energy(row) for row in v])

    torch.testing.assert_close(batch, single)
    torch.testing.assert_close(rbm.log_prob(v), -batch)


def test_effective_energy_gradient_matches_finite_differences() -> None:
    rbm = make_rbm()
    v = torch.tensor([1.0, 0.0, 1.0], dtype=torch.double)
    pars = rbm.get_parameters()
    grad = rbm.effective_energy_gradient(v, reduce=False).squeeze(0)
    eps = 1e-6

    fd = torch.empty_like(pars)
    for k in range(rbm.num_pars):
        shift = torch.zeros_like(pars)
        shift[k] = eps
        rbm.set_parameters(pars + shift)
        up = rbm.effective_energy(v).item()
        rbm.set_parameters(pars - shift)
        down = rbm.effective_energy(v).item()
        fd[k] = (up - down) / (2 * eps)
    rbm.set_parameters(pars)

    torch.testing.assert_close(grad, fd, atol=1e-7, rtol=1e-6)


def test_reduced_gradient_is_sum_of_per_sample() -> None:
    rbm = make_rbm()
    v = all_configs(3)

    torch.testing.assert_close(rbm.effective_energy_gradient(v),
                               rbm.effective_energy_gradient(v, reduce=False).sum(0))


def test_sampling_keeps_chains_binary_and_replays() -> None:
    a = make_rbm(num_chains=16, seed=3)
    b = make_rbm(num_chains=16, seed=3)

    va = a.sample(5).clone()
    vb = b.sample(5).clone()

    assert va.shape == (16, 3)
    assert torch.all((va == 0) | (va == 1))
    torch.testing.assert_close(va, vb)
    torch.testing.assert_close(a.visible_state_row(2), va[2])


def test_unsampled_model_consumes_no_draws() -> None:
    stream = RandomStream(11, device=CPU)
    rbm = BinaryRBM(3, 2, stream=stream, device=CPU)
    rbm.prob(torch.ones(3, dtype=torch.double))

    torch.testing.assert_close(stream.uniform(4), RandomStream(11, device=CPU).uniform(4))


def test_set_visible_layer() -> None:
    rbm = make_rbm(num_chains=4)
    new = torch.tensor([[1.0, 1.0, 0.0], [0.0, 0.0, 1.0]], dtype=torch.double)

    rbm.set_visible_layer(new)

    assert rbm.num_chains == 2
    torch.testing.assert_close(rbm.visible_state, new)
    assert rbm.hidden_state.shape == (2, 2)
    with pytest.raises(DomainViolationError):
        rbm.set_visible_layer(torch.full((2, 3), 0.5, dtype=torch.double))
    with pytest.raises(ValueError):
        rbm.set_visible_layer(torch.zeros(2, 4, dtype=torch.double))
