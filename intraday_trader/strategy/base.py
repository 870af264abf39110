"""
Signal source interface.

Every strategy turns the current bar plus a rolling window of earlier
bars into a `Signal`.  The engines never look inside a strategy; they
only rely on this contract, so strategies can be swapped by name in the
configuration.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Sequence

from ..execution.models import Bar, Signal


class SignalSource(ABC):
    """Base class for all signal sources."""

    name: str = "base"

    def initialize(self) -> None:
        """Validate parameters.  Raise `ValueError` on invalid values."""

    @abstractmethod
    def generate_signal(self, current_bar: Bar, historical_bars: Sequence[Bar]) -> Signal:
        """Return the decision for `current_bar`.

        `historical_bars` holds earlier bars in ascending time order and
        never includes `current_bar`.
        """

    @abstractmethod
    def get_parameters(self) -> Dict[str, Any]:
        ...

    @abstractmethod
    def set_parameters(self, parameters: Dict[str, Any]) -> None:
        ...
