from __future__ import annotations

import logging
from dataclasses import dataclass

from .brands import BrandRegistry
from .config import Settings
from .facilities import FacilityResolver
from .store import DataLayout, DocumentStore
from .sweep.adjudications import AdjudicationStore
from .sweep.discovery import CandidateDiscovery
from .sweep.effective import EffectiveMaterializer
from .sweep.runner import SweepRunner

logger = logging.getLogger(__name__)


@dataclass
class AddressTruthApp:
    settings: Settings
    store: DocumentStore
    layout: DataLayout
    brands: BrandRegistry
    discovery: CandidateDiscovery
    _facilities: FacilityResolver | None = None
    _adjudications: AdjudicationStore | None = None

    @classmethod
    def create(cls, settings: Settings) -> "AddressTruthApp":
        store = DocumentStore(settings.data.root)
        brands = BrandRegistry.load(settings.brands.registry_path)
        logger.debug("Loaded %d brand rules", len(brands))
        return cls(
            settings=settings,
            store=store,
            layout=DataLayout(),
            brands=brands,
            discovery=CandidateDiscovery.from_settings(settings.providers),
        )

    def facilities(self) -> FacilityResolver:
        if self._facilities is None:
            self._facilities = FacilityResolver(self.store, self.layout)
        return self._facilities

    def adjudications(self) -> AdjudicationStore:
        if self._adjudications is None:
            self._adjudications = AdjudicationStore(self.store, self.layout)
        return self._adjudications

    def sweep_runner(self) -> SweepRunner:
        return SweepRunner(self.store, self.layout, self.settings, self.discovery)

    def effective(self) -> EffectiveMaterializer:
        return EffectiveMaterializer(self.store, self.layout)

    def close(self) -> None:
        self.discovery.reset()
