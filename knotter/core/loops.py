"""Tag-driven cadence loops.

A loop policy maps tags to cadences ("#family every 30 days"). When a
contact has several matching tags the strategy decides which rule wins.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from knotter.core.cadence import validate_cadence_days
from knotter.core.normalize import normalize_tag


class LoopStrategy(Enum):
    SHORTEST = "shortest"
    PRIORITY = "priority"


@dataclass(frozen=True)
class LoopRule:
    tag: str
    cadence_days: int
    priority: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "tag", normalize_tag(self.tag))
        validate_cadence_days(self.cadence_days)


@dataclass(frozen=True)
class LoopPolicy:
    default_cadence_days: int | None = None
    strategy: LoopStrategy = LoopStrategy.SHORTEST
    rules: tuple[LoopRule, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if self.default_cadence_days is not None:
            validate_cadence_days(self.default_cadence_days)

    @classmethod
    def from_settings(cls, settings) -> LoopPolicy:
        """Build a policy from the LOOP_* settings."""
        return cls(
            default_cadence_days=settings.LOOP_DEFAULT_CADENCE_DAYS,
            strategy=LoopStrategy(settings.LOOP_STRATEGY),
            rules=tuple(
                LoopRule(tag, cadence, priority)
                for tag, cadence, priority in settings.LOOP_RULES
            ),
        )

    def resolve_cadence(self, tags: Iterable[str]) -> int | None:
        return self.resolve_cadence_with_match(tags)[0]

    def resolve_cadence_with_match(self, tags: Iterable[str]) -> tuple[int | None, bool]:
        """Return (cadence, matched). Unmatched tags fall back to the default."""
        tag_set = {tag.strip() for tag in tags if tag.strip()}
        matching = [rule for rule in self.rules if rule.tag in tag_set]
        if not matching:
            return self.default_cadence_days, False

        if self.strategy is LoopStrategy.SHORTEST:
            return min(rule.cadence_days for rule in matching), True

        # highest priority, then shorter cadence, then tag name
        best = min(matching, key=lambda rule: (-rule.priority, rule.cadence_days, rule.tag))
        return best.cadence_days, True
