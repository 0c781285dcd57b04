"""
Small torch modules that back layers with no direct torch.nn equivalent.
"""

from typing import Callable, Optional

import numpy as np
import torch
import torch.nn as nn


def _buffer(value: Optional[np.ndarray]) -> Optional[torch.Tensor]:
    if value is None:
        return None
    return torch.from_numpy(np.ascontiguousarray(value))


class SequenceNormalization(nn.Module):
    """
    Input normalization for feature-last sequences (batch, time, *input_size).

    Statistics broadcast against the trailing input dimensions. Missing
    statistics are skipped, so an un-fitted layer acts as identity.
    """

    def __init__(
        self,
        mode: str,
        mean: Optional[np.ndarray] = None,
        std: Optional[np.ndarray] = None,
        min_value: Optional[np.ndarray] = None,
        max_value: Optional[np.ndarray] = None,
        target_range=(0.0, 1.0),
        function: Optional[Callable] = None,
    ):
        super().__init__()
        self.mode = mode
        self.target_range = target_range
        self.function = function
        for name, value in (
            ("mean", mean),
            ("std", std),
            ("min_value", min_value),
            ("max_value", max_value),
        ):
            self.register_buffer(name, _buffer(value))

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        if self.mode == "custom":
            return self.function(x)
        if self.mode in ("zerocenter", "zscore") and self.mean is not None:
            x = x - self.mean
        if self.mode == "zscore" and self.std is not None:
            x = x / self.std
        if self.mode.startswith("rescale") and self.min_value is not None:
            lo, hi = self.target_range
            span = self.max_value - self.min_value
            x = (x - self.min_value) / span * (hi - lo) + lo
        return x


class LSTMBlock(nn.Module):
    """
    Wraps nn.LSTM (batch_first) and applies the output mode.

    output_mode "last" returns only the final time step, which is what
    the sequence-to-label classifier consumes.
    """

    def __init__(
        self,
        lstm: nn.LSTM,
        return_sequence: bool,
        initial_hidden: Optional[torch.Tensor] = None,
        initial_cell: Optional[torch.Tensor] = None,
    ):
        super().__init__()
        self.lstm = lstm
        self.return_sequence = return_sequence
        self.register_buffer("initial_hidden", initial_hidden)
        self.register_buffer("initial_cell", initial_cell)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        state = None
        if self.initial_hidden is not None and self.initial_cell is not None:
            batch = x.shape[0]
            h0 = self.initial_hidden.to(x.dtype).reshape(1, 1, -1).expand(1, batch, -1)
            c0 = self.initial_cell.to(x.dtype).reshape(1, 1, -1).expand(1, batch, -1)
            state = (h0.contiguous(), c0.contiguous())
        out, _ = self.lstm(x, state)
        if self.return_sequence:
            return out
        return out[:, -1, :]


class ProbabilityCrossEntropy(nn.Module):

    def __init__(self, weight: Optional[torch.Tensor] = None, eps: float = 1e-12):
        super().__init__()
        self.eps = eps
        self.nll = nn.NLLLoss(weight=weight)

    def forward(self, probabilities: torch.Tensor, target: torch.Tensor) -> torch.Tensor:
        return self.nll(torch.log(probabilities.clamp_min(self.eps)), target)
