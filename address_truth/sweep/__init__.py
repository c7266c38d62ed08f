"External sweep, human adjudication and the effective classification view."

from .adjudications import AdjudicationStore, BulkAction
from .discovery import CandidateDiscovery
from .effective import EffectiveMaterializer, materialize_effective
from .runner import SweepRunner, run_sweep

__all__ = [
    "AdjudicationStore",
    "BulkAction",
    "CandidateDiscovery",
    "EffectiveMaterializer",
    "SweepRunner",
    "materialize_effective",
    "run_sweep",
]
