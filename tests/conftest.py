from __future__ import annotations

import pytest
import torch

from tomowave import ComplexWaveFunction, WaveFunctionConfig

CPU = torch.device("cpu")


@pytest.fixture
def config() -> WaveFunctionConfig:
    return WaveFunctionConfig(num_visible=3, num_hidden=2, num_chains=8,
                              init_seed=1234, sigma=0.5, device=CPU)


@pytest.fixture
def wavefunction(config: WaveFunctionConfig) -> ComplexWaveFunction:
    return ComplexWaveFunction(config)


@pytest.fixture
def zero_wavefunction() -> ComplexWaveFunction:
    wf = ComplexWaveFunction(WaveFunctionConfig(num_visible=2, num_hidden=2, num_chains=4, device=CPU))
    wf.set_parameters(torch.zeros(wf.num_pars, dtype=torch.double))
    return wf
