import pytest
import torch

from torch_ekf import set_dtype


@pytest.fixture(autouse=True)
def deterministic():
    torch.manual_seed(0)
    torch.cuda.manual_seed_all(0)
    torch.use_deterministic_algorithms(True)
    set_dtype(torch.float64)
    yield
    set_dtype(torch.float64)
