"""Branch tree reconstruction and tree view state."""

from .builder import BranchCycleError, BranchTree, BranchTreeError
from .state import BranchViewState

__all__ = [
    "BranchCycleError",
    "BranchTree",
    "BranchTreeError",
    "BranchViewState",
]
