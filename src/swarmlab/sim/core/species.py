from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Species:
    """A category of entities sharing constants.

    Species are keys of every rule's interaction weight table, so equality and
    hashing go through ``name`` only. ``max_speed`` may be edited between ticks
    and is read fresh by the rules on every force evaluation.
    """

    name: str
    max_speed: float = field(default=5.0, compare=False)
    prefab: Optional[str] = field(default=None, compare=False)

    def __hash__(self) -> int:
        return hash(self.name)


class SpeciesRegistry:
    def __init__(self) -> None:
        self._species: Dict[str, Species] = {}

    def register(self, species: Species) -> Species:
        existing = self._species.get(species.name)
        if existing is not None:
            if existing is not species:
                logger.warning("Duplicate species %r ignored; keeping first definition", species.name)
            return existing
        self._species[species.name] = species
        return species

    def get(self, name: str) -> Optional[Species]:
        return self._species.get(name)

    def names(self) -> List[str]:
        return list(self._species)

    def __contains__(self, item: Union[Species, str]) -> bool:
        name = item.name if isinstance(item, Species) else item
        return name in self._species

    def __iter__(self) -> Iterator[Species]:
        return iter(self._species.values())

    def __len__(self) -> int:
        return len(self._species)
