"""
Route acquisition.

A search walks an explicit state machine:

    Idle → Validating → ClientAttempt → ScoringCandidates → Done
                             │                 │
                             └──── failure ────┴──→ ServerFallback → Done | Failed

The client attempt asks a mapping provider for alternative geometries and
scores each one against the risk backend in parallel. Scoring is
all-or-nothing: if any call fails the whole batch is dropped and the
backend's own directions endpoint is used instead.

Every search gets a generation number. Only the newest generation may
publish to RouteSearch.state; a slower, superseded search finishes quietly
without overwriting anything.
"""

import asyncio
import logging
from typing import List, Optional

from . import config
from .clients import ProviderRoute, RiskBackend, UnavailableProvider
from .endpoints import DeviceLocation, resolve_endpoints
from .errors import DecodeError, SafeRouteError, ValidationError
from .models import (
    EndpointInput,
    Endpoints,
    RouteCandidate,
    RouteSource,
    SearchPhase,
    SearchState,
    safety_label,
)
from .polyline import decode

logger = logging.getLogger(__name__)

__all__ = ["RouteSearch", "safety_label"]


class RouteSearch:
    def __init__(
        self,
        backend: RiskBackend,
        provider=None,
        lookback_days: int = config.LOOKBACK_DAYS,
        max_alternatives: int = config.MAX_ALTERNATIVES,
        force_server: bool = config.FORCE_SERVER_DIRECTIONS,
    ):
        self.backend = backend
        self.provider = provider or UnavailableProvider()
        self.lookback_days = lookback_days
        self.max_alternatives = max_alternatives
        self.force_server = force_server
        self._generation = 0
        self.state = SearchState()

    # ---- generation bookkeeping ----

    def _begin(self) -> SearchState:
        self._generation += 1
        state = SearchState(generation=self._generation)
        self.state = state
        return state

    def is_current(self, state: SearchState) -> bool:
        return state.generation == self._generation

    def _advance(self, state: SearchState, phase: SearchPhase, **updates) -> SearchState:
        new_state = state.model_copy(update={"phase": phase, **updates})
        if self.is_current(new_state):
            self.state = new_state
        else:
            logger.info(f"[SEARCH] Discarding stale result of search #{state.generation}")
        return new_state

    # ---- public operations ----

    def reset(self) -> SearchState:
        """Forget any results and supersede in-flight searches."""
        return self._begin()

    async def run(self, form: EndpointInput, device: Optional[DeviceLocation] = None) -> SearchState:
        """Validate and resolve the form, then search. Never raises for search-scoped errors."""
        state = self._advance(self._begin(), SearchPhase.VALIDATING)
        try:
            endpoints = await resolve_endpoints(form, device)
        except ValidationError as e:
            return self._advance(state, SearchPhase.FAILED, error=e.reason)
        except SafeRouteError as e:
            logger.error(f"[LOCATION] {e.message}")
            return self._advance(state, SearchPhase.FAILED, error=e.message)
        if not self.is_current(state):
            return state
        return await self._acquire(state, endpoints)

    async def search(self, endpoints: Endpoints) -> SearchState:
        """Search between already validated endpoints."""
        state = self._advance(self._begin(), SearchPhase.VALIDATING)
        return await self._acquire(state, endpoints)

    def select(self, candidate_id: int) -> SearchState:
        """Switch the selected candidate. No network call."""
        for candidate in self.state.candidates:
            if candidate.id == candidate_id:
                self.state = self.state.model_copy(
                    update={"selected": candidate, "center": _first_vertex(candidate)}
                )
                return self.state
        raise ValueError(f"No candidate with id {candidate_id}")

    # ---- transitions ----

    async def _acquire(self, state: SearchState, endpoints: Endpoints) -> SearchState:
        if not self.force_server:
            state = self._advance(state, SearchPhase.CLIENT_ATTEMPT)
            try:
                candidates = await self._client_candidates(endpoints)
                if not self.is_current(state):
                    return state
                state = self._advance(state, SearchPhase.SCORING_CANDIDATES, candidates=candidates)
                scored = await self._score_all(candidates)
            except SafeRouteError as e:
                logger.warning(f"[SEARCH] Client path failed, falling back to server directions: {e.message}")
            else:
                if not self.is_current(state):
                    return state
                return self._done(state, scored, RouteSource.CLIENT)
            if not self.is_current(state):
                return state

        state = self._advance(state, SearchPhase.SERVER_FALLBACK, candidates=[])
        try:
            routes = await self.backend.fetch_directions(endpoints.start, endpoints.end, self.lookback_days)
        except SafeRouteError as e:
            logger.error(f"[FALLBACK] Server directions failed: {e.message}")
            return self._advance(state, SearchPhase.FAILED, candidates=[], selected=None, error=e.message)

        candidates = [
            RouteCandidate(
                id=idx,
                geometry=r.geometry,
                label=r.summary,
                score=r.score,
                tiles_evaluated=r.tiles_evaluated,
                source=RouteSource.SERVER,
            )
            for idx, r in enumerate(routes)
        ]
        return self._done(state, candidates, RouteSource.SERVER)

    def _done(self, state: SearchState, candidates: List[RouteCandidate], source: RouteSource) -> SearchState:
        selected = candidates[0] if candidates else None
        logger.info(f"[SEARCH] {len(candidates)} route(s) from {source.value}")
        return self._advance(
            state,
            SearchPhase.DONE,
            candidates=candidates,
            selected=selected,
            source=source,
            center=_first_vertex(selected),
            error=None,
        )

    async def _client_candidates(self, endpoints: Endpoints) -> List[RouteCandidate]:
        logger.info(
            f"[DIRECTIONS] {endpoints.start.to_param()} → {endpoints.end.to_param()} (alternatives)"
        )
        routes: List[ProviderRoute] = await self.provider.route(
            endpoints.start, endpoints.end, mode="driving", alternatives=True
        )
        if not routes:
            raise SafeRouteError("Mapping provider returned no routes")

        candidates = []
        for idx, r in enumerate(routes[: self.max_alternatives]):
            try:
                geometry = decode(r.encoded_geometry)
            except DecodeError as e:
                logger.warning(f"[DIRECTIONS] Route {idx} geometry unreadable, treating as empty: {e}")
                geometry = []
            candidates.append(
                RouteCandidate(id=idx, geometry=geometry, label=r.summary or f"route-{idx}", source=RouteSource.CLIENT)
            )
        return candidates

    async def _score_one(self, candidate: RouteCandidate) -> RouteCandidate:
        if not candidate.geometry:
            return candidate.model_copy(update={"score": 0.0, "tiles_evaluated": 0})
        score, tiles = await self.backend.score_geometry(candidate.geometry, self.lookback_days)
        return candidate.model_copy(update={"score": score, "tiles_evaluated": tiles})

    async def _score_all(self, candidates: List[RouteCandidate]) -> List[RouteCandidate]:
        """Score every candidate concurrently. The first failure cancels the rest and propagates."""
        logger.info(f"[SCORING] Scoring {len(candidates)} candidate(s) in parallel")
        tasks = [asyncio.ensure_future(self._score_one(c)) for c in candidates]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


def _first_vertex(candidate: Optional[RouteCandidate]):
    if candidate is None or not candidate.geometry:
        return None
    return candidate.geometry[0]
