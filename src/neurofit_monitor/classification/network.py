"""Feed-forward mood network (PyTorch)."""

from __future__ import annotations

from dataclasses import asdict, dataclass

import torch
from torch import nn


@dataclass(frozen=True)
class NetworkConfig:
    """Architecture and optimiser hyper-parameters."""

    input_size: int = 8
    hidden_layers: tuple[int, ...] = (32, 16, 8)
    output_size: int = 6
    first_dropout: float = 0.3
    hidden_dropout: float = 0.2
    learning_rate: float = 0.001
    batch_size: int = 32
    epochs: int = 50

    def to_dict(self) -> dict:
        data = asdict(self)
        data["hidden_layers"] = list(self.hidden_layers)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> NetworkConfig:
        data = dict(data)
        data["hidden_layers"] = tuple(data.get("hidden_layers", (32, 16, 8)))
        return cls(**data)


class MoodNetwork(nn.Module):
    """Dense ReLU stack with dropout; ``forward`` returns logits.

    Softmax is applied in :meth:`predict_proba` so that training can use
    :class:`torch.nn.CrossEntropyLoss` on raw logits.
    """

    def __init__(self, config: NetworkConfig) -> None:
        super().__init__()
        self.config = config

        layers: list[nn.Module] = []
        width = config.input_size
        for i, units in enumerate(config.hidden_layers):
            dense = nn.Linear(width, units)
            nn.init.kaiming_normal_(dense.weight, nonlinearity="relu")
            nn.init.zeros_(dense.bias)
            layers += [
                dense,
                nn.ReLU(),
                nn.Dropout(config.first_dropout if i == 0 else config.hidden_dropout),
            ]
            width = units
        layers.append(nn.Linear(width, config.output_size))
        self.layers = nn.Sequential(*layers)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.layers(x)

    @torch.no_grad()
    def predict_proba(self, x: torch.Tensor) -> torch.Tensor:
        """Class probabilities for a ``(batch, input_size)`` tensor."""
        return torch.softmax(self.forward(x), dim=-1)
