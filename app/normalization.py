"""Third normal form checks driven by declared functional dependencies.

A table is in 3NF when, for every non-trivial dependency X -> A, either X is
a superkey or A is part of some candidate key. Candidate keys are taken from
the primary key and the unique constraints; dependencies the schema cannot
express (prices derived from another table, durations derived from dates)
come from ``KNOWN_DEPENDENCIES``.
"""
import logging
from dataclasses import dataclass
from typing import FrozenSet, Iterable, List

from sqlalchemy import UniqueConstraint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionalDependency:
    determinant: FrozenSet[str]
    dependent: str
    note: str = ""

    @classmethod
    def of(cls, determinant, dependent, note=""):
        return cls(frozenset(determinant), dependent, note)


@dataclass(frozen=True)
class Violation:
    table: str
    determinant: List[str]
    dependent: str
    reason: str


KNOWN_DEPENDENCIES = {
    "bookings": [
        FunctionalDependency.of(("property_id", "start_date", "end_date"), "total_price", "nightly rate of the property times nights"),
        FunctionalDependency.of(("place_id", "date_start", "date_end"), "total_price", "nightly rate of the place times nights"),
        FunctionalDependency.of(("start_date", "end_date"), "duration_days", "difference of the stay dates"),
    ],
}


def closure(attributes: Iterable[str], dependencies: Iterable[FunctionalDependency]) -> FrozenSet[str]:
    result = set(attributes)
    dependencies = list(dependencies)
    changed = True
    while changed:
        changed = False
        for fd in dependencies:
            if fd.determinant <= result and fd.dependent not in result:
                result.add(fd.dependent)
                changed = True
    return frozenset(result)


def candidate_keys(table) -> List[FrozenSet[str]]:
    keys = []
    if table.primary_key.columns:
        keys.append(frozenset(c.name for c in table.primary_key.columns))
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            key = frozenset(c.name for c in constraint.columns)
            if key and key not in keys:
                keys.append(key)
    return keys


def applicable_dependencies(table, dependencies=None):
    dependencies = KNOWN_DEPENDENCIES.get(table.name, []) if dependencies is None else dependencies
    names = set(table.columns.keys())
    return [fd for fd in dependencies if fd.determinant <= names and fd.dependent in names]


def check_3nf(table, dependencies=None) -> List[Violation]:
    fds = applicable_dependencies(table, dependencies)
    keys = candidate_keys(table)
    prime = frozenset().union(*keys) if keys else frozenset()
    violations = []
    for fd in fds:
        if fd.dependent in fd.determinant or fd.dependent in prime:
            continue
        reachable = closure(fd.determinant, fds)
        if any(key <= reachable for key in keys):
            continue
        reason = f"{fd.dependent} depends on non-key {{{', '.join(sorted(fd.determinant))}}}"
        if fd.note:
            reason += f" ({fd.note})"
        violations.append(Violation(table.name, sorted(fd.determinant), fd.dependent, reason))
    return violations


def check_metadata(metadata) -> List[Violation]:
    violations = []
    for table in metadata.sorted_tables:
        violations.extend(check_3nf(table))
    logger.info("3NF check: %d violations across %d tables", len(violations), len(metadata.tables))
    return violations
