"""
Tier catalog with declared-order ranking.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from shared.errors import TierError
from .config import PremiumConfig

ALL_FEATURES = "all"
UNKNOWN_RANK = -1


@dataclass(frozen=True)
class Tier:
    """A configured tier with its rank and features."""
    name: str
    rank: int
    features: Tuple[str, ...] = ()

    def grants(self, feature: str) -> bool:
        return ALL_FEATURES in self.features or feature in self.features


@dataclass
class TierCatalog:
    """Ordered tiers; a tier declared later ranks higher."""
    tiers: List[Tier] = field(default_factory=list)

    def __post_init__(self):
        self._by_name: Dict[str, Tier] = {tier.name: tier for tier in self.tiers}

    @classmethod
    def from_config(cls, config: PremiumConfig) -> "TierCatalog":
        tiers = [
            Tier(name=name, rank=index, features=tuple(config.features.get(name, ())))
            for index, name in enumerate(config.tiers)
        ]
        return cls(tiers=tiers)

    @property
    def names(self) -> List[str]:
        return [tier.name for tier in self.tiers]

    def is_valid_tier(self, tier: str) -> bool:
        return tier in self._by_name

    def is_valid_feature(self, feature: str) -> bool:
        return any(tier.grants(feature) for tier in self.tiers)

    def rank(self, tier: str) -> int:
        """Rank of ``tier``; unknown tiers rank below every configured tier."""
        found = self._by_name.get(tier)
        return found.rank if found else UNKNOWN_RANK

    def get(self, tier: str) -> Tier:
        try:
            return self._by_name[tier]
        except KeyError:
            raise TierError(tier) from None

    def features_for(self, tier: str) -> List[str]:
        return list(self.get(tier).features)
