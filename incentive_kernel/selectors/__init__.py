"""Read-only query selectors."""

from incentive_kernel.selectors.base import BaseSelector
from incentive_kernel.selectors.calculation_selector import CalculationSelector

__all__ = ["BaseSelector", "CalculationSelector"]
