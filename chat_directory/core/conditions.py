"""
Query conditions shared by the member and chat directories.

A condition is one of:
- Equals: every given field equals the given value
- Predicate: a callable returning truthy for matching records
- IdList: identities resolved one by one, unresolved ones skipped
- All: no filtering
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union


@dataclass(frozen=True)
class Equals:
    fields: Dict[str, Any] = field(default_factory=dict)

    def matches(self, record: Any) -> bool:
        for key, value in self.fields.items():
            if getattr(record, key, None) != value:
                return False
        return True


@dataclass(frozen=True)
class Predicate:
    fn: Callable[[Any], Any]


@dataclass(frozen=True)
class IdList:
    ids: Sequence[Any] = ()


@dataclass(frozen=True)
class All:
    pass


Condition = Union[Equals, Predicate, IdList, All]


def as_condition(raw: Any) -> Condition:
    """Coerce a loosely typed condition into a Condition.

    dict -> Equals, callable -> Predicate, list/tuple/set -> IdList,
    None -> All.
    """
    if isinstance(raw, (Equals, Predicate, IdList, All)):
        return raw
    if raw is None:
        return All()
    if isinstance(raw, dict):
        return Equals(dict(raw))
    if callable(raw):
        return Predicate(raw)
    if isinstance(raw, (list, tuple, set, frozenset)):
        return IdList(list(raw))
    raise TypeError(f"Unsupported query condition: {raw!r}")


def select(
    condition: Any,
    records: Iterable[Any],
    resolve: Callable[[Any], Optional[Any]],
) -> List[Any]:
    """Apply a condition.

    Args:
        condition: Condition or a raw value accepted by ``as_condition``
        records: the full record set (used by Equals, Predicate and All)
        resolve: identity resolver used by IdList

    Returns:
        Matching records; IdList keeps the order of the given ids
    """
    condition = as_condition(condition)
    if isinstance(condition, Equals):
        return [r for r in records if condition.matches(r)]
    if isinstance(condition, Predicate):
        return [r for r in records if condition.fn(r)]
    if isinstance(condition, IdList):
        result = []
        for identity in condition.ids:
            record = resolve(identity)
            if record is not None:
                result.append(record)
        return result
    return list(records)
