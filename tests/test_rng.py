from __future__ import annotations

import pytest
import torch

from tomowave import DomainViolationError, RandomStream

CPU = torch.device("cpu")


def test_sample_layer_is_binary() -> None:
    stream = RandomStream(7, device=CPU)
    probs = torch.rand(50, 6, dtype=torch.double)
    target = torch.full_like(probs, 3.0)

    stream.sample_layer(target, probs)

    assert torch.all((target == 0) | (target == 1))


def test_sample_layer_frequency_converges_to_probability() -> None:
    stream = RandomStream(13579, device=CPU)
    probs = torch.tensor([0.1, 0.5, 0.9], dtype=torch.double).repeat(20000, 1)
    target = torch.empty_like(probs)

    stream.sample_layer(target, probs)

    torch.testing.assert_close(target.mean(0), probs[0], atol=0.015, rtol=0.0)


def test_sample_layer_extremes() -> None:
    stream = RandomStream(1, device=CPU)
    target = torch.empty(100, 2, dtype=torch.double)
    probs = torch.zeros_like(target)
    probs[:, 1] = 1.0

    stream.sample_layer(target, probs)

    assert target[:, 0].sum() == 0
    assert target[:, 1].sum() == 100


def test_same_seed_replays_and_reset_rewinds() -> None:
    a, b = RandomStream(42, device=CPU), RandomStream(42, device=CPU)
    first = a.uniform(10)

    torch.testing.assert_close(first, b.uniform(10))
    a.reset()
    torch.testing.assert_close(a.uniform(10), first)


def test_default_seed_is_fixed() -> None:
    torch.testing.assert_close(RandomStream(device=CPU).uniform(4), RandomStream(13579, device=CPU).uniform(4))


def test_from_entropy_builds_a_stream() -> None:
    stream = RandomStream.from_entropy(device=CPU)
    draws = stream.uniform(3)

    assert ((draws >= 0) & (draws < 1)).all()


@pytest.mark.parametrize("bad", [-0.1, 1.5, float("nan")])
def test_sample_layer_rejects_invalid_probabilities(bad: float) -> None:
    stream = RandomStream(device=CPU)
    probs = torch.full((2, 2), 0.5, dtype=torch.double)
    probs[1, 1] = bad

    with pytest.raises(DomainViolationError):
        stream.sample_layer(torch.empty_like(probs), probs)


def test_sample_layer_rejects_shape_mismatch() -> None:
    stream = RandomStream(device=CPU)

    with pytest.raises(ValueError):
        stream.sample_layer(torch.empty(2, 3, dtype=torch.double), torch.zeros(3, 2, dtype=torch.double))
