"""Entity matcher: free-text name -> canonical entity id, or None.

Matching runs an ordered list of strategy objects and stops at the first hit:

1. exact alias for the source (case-insensitive)
2. exact canonical name (case-insensitive)
3. normalized containment, shorter side at least 4 characters
4. first significant word, at least 5 characters

An unmatched name is never guessed; callers decide whether to create a new
entity or leave it for manual resolution.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.client import Client, ClientAlias
from .names import first_word, normalize_for_match

MIN_CONTAINMENT_LENGTH = 4
MIN_FIRST_WORD_LENGTH = 5


@dataclass(frozen=True)
class Candidate:
    id: uuid.UUID
    name: str


@dataclass
class CandidateSet:
    """Candidates plus the alias lookup (lowercased alias -> id) for one source."""

    candidates: list[Candidate] = field(default_factory=list)
    aliases: dict[str, uuid.UUID] = field(default_factory=dict)
    source: str | None = None

    def __post_init__(self) -> None:
        # Stable order keeps resolve() deterministic regardless of load order.
        self.candidates = sorted(self.candidates, key=lambda c: (c.name.lower(), str(c.id)))
        self.aliases = {k.strip().lower(): v for k, v in self.aliases.items() if k and k.strip()}

    def __len__(self) -> int:
        return len(self.candidates)

    def add(self, candidate: Candidate) -> None:
        self.candidates.append(candidate)
        self.candidates.sort(key=lambda c: (c.name.lower(), str(c.id)))

    def add_alias(self, alias: str, entity_id: uuid.UUID) -> None:
        if alias and alias.strip():
            self.aliases[alias.strip().lower()] = entity_id


@dataclass(frozen=True)
class MatchResult:
    id: uuid.UUID
    strategy: str


class MatchStrategy(ABC):
    name: str = "strategy"

    @abstractmethod
    def try_match(self, name: str, candidates: CandidateSet) -> uuid.UUID | None:
        """Return the matched entity id, or None."""


class AliasMatch(MatchStrategy):
    name = "alias"

    def try_match(self, name: str, candidates: CandidateSet) -> uuid.UUID | None:
        return candidates.aliases.get(name.strip().lower())


class ExactNameMatch(MatchStrategy):
    name = "exact"

    def try_match(self, name: str, candidates: CandidateSet) -> uuid.UUID | None:
        key = name.strip().lower()
        for candidate in candidates.candidates:
            if candidate.name.strip().lower() == key:
                return candidate.id
        return None


class ContainmentMatch(MatchStrategy):
    name = "containment"

    def __init__(self, min_length: int = MIN_CONTAINMENT_LENGTH) -> None:
        self.min_length = min_length

    def try_match(self, name: str, candidates: CandidateSet) -> uuid.UUID | None:
        query = normalize_for_match(name)
        if len(query) < self.min_length:
            return None
        for candidate in candidates.candidates:
            other = normalize_for_match(candidate.name)
            if min(len(query), len(other)) < self.min_length:
                continue
            if query in other or other in query:
                return candidate.id
        return None


class FirstWordMatch(MatchStrategy):
    name = "first_word"

    def __init__(self, min_length: int = MIN_FIRST_WORD_LENGTH) -> None:
        self.min_length = min_length

    def try_match(self, name: str, candidates: CandidateSet) -> uuid.UUID | None:
        word = first_word(normalize_for_match(name))
        if len(word) < self.min_length:
            return None
        for candidate in candidates.candidates:
            if first_word(normalize_for_match(candidate.name)) == word:
                return candidate.id
        return None


DEFAULT_STRATEGIES: tuple[type[MatchStrategy], ...] = (
    AliasMatch,
    ExactNameMatch,
    ContainmentMatch,
    FirstWordMatch,
)


class EntityMatcher:
    """Runs strategies in order; first hit wins."""

    def __init__(self, strategies: Sequence[MatchStrategy] | None = None) -> None:
        self.strategies = list(strategies) if strategies is not None else [s() for s in DEFAULT_STRATEGIES]

    def match(self, name: str | None, candidates: CandidateSet) -> MatchResult | None:
        if not name or not name.strip():
            return None
        for strategy in self.strategies:
            found = strategy.try_match(name, candidates)
            if found is not None:
                return MatchResult(id=found, strategy=strategy.name)
        return None

    def resolve(self, name: str | None, candidates: CandidateSet) -> uuid.UUID | None:
        result = self.match(name, candidates)
        return result.id if result else None


async def load_client_candidates(
    db: AsyncSession,
    source: str | None = None,
    *,
    include_prospects: bool = True,
) -> CandidateSet:
    """Build a CandidateSet over all clients, with aliases recorded for ``source``."""
    stmt = select(Client.id, Client.name)
    if not include_prospects:
        stmt = stmt.where(Client.status != "prospect")
    rows = (await db.execute(stmt)).all()

    aliases: dict[str, uuid.UUID] = {}
    if source:
        alias_rows = (
            await db.execute(select(ClientAlias.alias, ClientAlias.client_id).where(ClientAlias.source == source))
        ).all()
        aliases = {alias: client_id for alias, client_id in alias_rows}

    return CandidateSet(
        candidates=[Candidate(id=row_id, name=name) for row_id, name in rows],
        aliases=aliases,
        source=source,
    )
