"""
Provider ranking for CareRoute.
Implements weighted multi-criteria scoring of candidate providers.
"""

import logging
from functools import cmp_to_key
from typing import Dict, List, Optional, TYPE_CHECKING

from careroute.core.config import AvailabilityThresholds, Config, RankingWeights
from careroute.models.provider import (
    AvailabilityStatus,
    Provider,
    RankedResult,
    SearchCriteria,
)
from careroute.reasoning.availability import determine_availability_status
from careroute.utils.geo import calculate_distance
from careroute.utils.numbers import round_half_up

if TYPE_CHECKING:
    from careroute.services.capacity import ProviderCapacityService

logger = logging.getLogger(__name__)

# Load bands for the availability factor: (load below, share of weight)
AVAILABILITY_BANDS = [(50, 1.0), (70, 0.75), (85, 0.5), (95, 0.25)]

# Wait time multipliers: (load at or above, multiplier), checked in order
WAIT_TIME_MULTIPLIERS = [(85, 2.0), (70, 1.5), (50, 1.2)]

# availableNow excludes providers at or above this load
AVAILABLE_NOW_MAX_LOAD = 90


def _match_ratio(offered: List[str], requested: List[str]) -> float:
    """Share of requested items the provider offers, case-insensitive."""
    offered_lower = {item.lower() for item in offered}
    matched = [item for item in requested if item.lower() in offered_lower]
    return len(matched) / len(requested)


class ProviderRankingService:
    """
    Scores and orders candidate providers against a search.

    Factors and their default weights (points out of 100):
    - Active flag (10), quality rating (25), availability (20)
    - Specialty (15), cost (10), insurance (10), language (5), distance (5)

    A facet missing from the search earns its full weight, so an
    unconstrained search never penalizes a provider.
    """

    def __init__(
        self,
        capacity_service: Optional["ProviderCapacityService"] = None,
        weights: Optional[RankingWeights] = None,
        thresholds: Optional[AvailabilityThresholds] = None
    ):
        """
        Initialize the ranking service.

        Args:
            capacity_service: Source of live load figures; when omitted the
                capacity carried on each provider record is used as-is
            weights: Custom factor weights, or use defaults from config
            thresholds: Availability bands, or use defaults from config
        """
        self.capacity_service = capacity_service
        self.weights = weights or Config.get_ranking_weights()
        self.thresholds = thresholds or Config.get_availability_thresholds()

        logger.info(f"Ranking service initialized with weights: {self.weights.to_dict()}")

    async def rank_providers(
        self,
        providers: List[Provider],
        criteria: Optional[SearchCriteria] = None,
        eligible_only: bool = False
    ) -> List[RankedResult]:
        """
        Rank providers for a search, refreshing their load first.

        Args:
            providers: Candidate providers
            criteria: Search facets (all optional)
            eligible_only: Drop providers failing hard constraints first

        Returns:
            Results ordered by match score, then distance
        """
        if self.capacity_service is not None and providers:
            providers = await self._with_live_capacity(providers)
        return self.rank(providers, criteria, eligible_only=eligible_only)

    async def _with_live_capacity(self, providers: List[Provider]) -> List[Provider]:
        """Overlay current load and beds from the capacity service."""
        infos = await self.capacity_service.check_capacity([p.provider_id for p in providers])
        by_id = {info.provider_id: info for info in infos}

        refreshed = []
        for provider in providers:
            info = by_id.get(provider.provider_id)
            if info is None:
                refreshed.append(provider)
                continue
            capacity = provider.capacity.model_copy(update={
                "current_load": info.current_load,
                "available_beds": info.available_beds,
                "last_updated": info.last_updated,
            })
            refreshed.append(provider.model_copy(update={"capacity": capacity}))

        logger.debug(f"Refreshed capacity for {len(by_id)}/{len(providers)} providers")
        return refreshed

    def rank(
        self,
        providers: List[Provider],
        criteria: Optional[SearchCriteria] = None,
        eligible_only: bool = False
    ) -> List[RankedResult]:
        """Score and sort providers without any I/O."""
        criteria = criteria or SearchCriteria()

        if eligible_only:
            providers = [p for p in providers if self.is_eligible(p, criteria)]

        results = []
        for provider in providers:
            distance = self._distance(provider, criteria)
            breakdown = self.calculate_score_breakdown(provider, criteria, distance)
            results.append(RankedResult(
                provider=provider,
                match_score=self._to_match_score(breakdown),
                availability_status=self.determine_availability_status(provider),
                distance=distance,
                estimated_wait_time=self.calculate_estimated_wait_time(provider),
                score_breakdown=breakdown
            ))

        results.sort(key=cmp_to_key(self._compare))

        logger.info(f"Ranked {len(results)} providers")
        return results

    @staticmethod
    def _compare(a: RankedResult, b: RankedResult) -> int:
        if a.match_score != b.match_score:
            return b.match_score - a.match_score
        if a.distance is not None and b.distance is not None:
            return (a.distance > b.distance) - (a.distance < b.distance)
        return 0

    def _to_match_score(self, breakdown: Dict[str, float]) -> int:
        max_possible = self.weights.total()
        if max_possible <= 0:
            return 0
        score = round_half_up(sum(breakdown.values()) / max_possible * 100)
        return max(0, min(100, score))

    @staticmethod
    def _distance(provider: Provider, criteria: SearchCriteria) -> Optional[float]:
        if criteria.location is None:
            return None
        origin = criteria.location.coordinates
        target = provider.location.coordinates
        return calculate_distance(origin.lat, origin.lng, target.lat, target.lng)

    # ========================
    # Scoring factors
    # ========================

    def calculate_score_breakdown(
        self,
        provider: Provider,
        criteria: SearchCriteria,
        distance: Optional[float] = None
    ) -> Dict[str, float]:
        """Points earned per factor."""
        w = self.weights

        if criteria.specialties:
            specialty = w.specialty * _match_ratio(provider.capabilities.specialties, criteria.specialties)
        else:
            specialty = w.specialty

        if criteria.accepts_insurance:
            insurance = w.insurance * _match_ratio(
                provider.cost_structure.insurance_accepted, criteria.accepts_insurance
            )
        else:
            insurance = w.insurance

        if criteria.languages:
            language = w.language * _match_ratio(provider.capabilities.languages, criteria.languages)
        else:
            language = w.language

        if criteria.location is not None:
            if distance is None:
                distance = self._distance(provider, criteria)
            distance_points = self.calculate_distance_score(distance, criteria.location.max_distance)
        else:
            distance_points = w.distance

        return {
            "active": w.active if provider.is_active else 0.0,
            "quality": (provider.quality_metrics.rating / 5) * w.quality,
            "availability": self.calculate_availability_score(provider.capacity.current_load),
            "specialty": specialty,
            "cost": self.calculate_cost_score(provider, criteria.max_cost),
            "insurance": insurance,
            "language": language,
            "distance": distance_points,
        }

    def calculate_availability_score(self, current_load: float) -> float:
        """Banded points: <50 full, <70 3/4, <85 half, <95 quarter, else 0."""
        for load_below, share in AVAILABILITY_BANDS:
            if current_load < load_below:
                return self.weights.availability * share
        return 0.0

    def calculate_cost_score(self, provider: Provider, max_cost: Optional[float]) -> float:
        """Cheaper relative to the budget scores higher; over budget scores 0."""
        if max_cost is None:
            return self.weights.cost

        fee = provider.cost_structure.consultation_fee
        if fee > max_cost:
            return 0.0
        if max_cost == 0:
            return self.weights.cost
        return self.weights.cost * (1 - fee / max_cost)

    def calculate_distance_score(self, distance: float, max_distance: float) -> float:
        """Linear falloff from full points at 0 km to none at max_distance."""
        if max_distance <= 0:
            return self.weights.distance if distance <= 0 else 0.0
        return max(0.0, self.weights.distance - (distance / max_distance) * self.weights.distance)

    # ========================
    # Availability and wait time
    # ========================

    def determine_availability_status(self, provider: Provider) -> AvailabilityStatus:
        return determine_availability_status(
            provider.capacity.current_load, provider.is_active, self.thresholds
        )

    def calculate_estimated_wait_time(self, provider: Provider) -> Optional[int]:
        """
        Expected wait in minutes, scaled up as the provider gets busier.

        None when the provider is inactive or at/above the unavailable band.
        """
        current_load = provider.capacity.current_load
        if not provider.is_active or current_load >= self.thresholds.unavailable_at:
            return None

        multiplier = 1.0
        for load_at_least, factor in WAIT_TIME_MULTIPLIERS:
            if current_load >= load_at_least:
                multiplier = factor
                break

        return round_half_up(provider.quality_metrics.average_wait_time * multiplier)

    def is_eligible(self, provider: Provider, criteria: SearchCriteria) -> bool:
        """Hard constraints applied before scoring when eligible_only is set."""
        if criteria.type is not None and provider.type != criteria.type:
            return False
        if criteria.min_rating is not None and provider.quality_metrics.rating < criteria.min_rating:
            return False
        if criteria.available_now and provider.capacity.current_load >= AVAILABLE_NOW_MAX_LOAD:
            return False
        if criteria.location is not None:
            if self._distance(provider, criteria) > criteria.location.max_distance:
                return False
        return True
