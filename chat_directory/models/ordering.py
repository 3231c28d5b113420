"""
Shared ordering helper for member and chat lists.

A sort list is either a key callable or a list of field names; a leading
"-" sorts that field descending.
"""

from functools import cmp_to_key
from typing import Any, Callable, List, Optional, Sequence, Union

SortList = Union[Callable[[Any], Any], Sequence[str]]


def _compare_values(a: Any, b: Any) -> int:
    # None sorts after everything else
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    if isinstance(a, str) and isinstance(b, str):
        a, b = a.lower(), b.lower()
    try:
        return (a > b) - (a < b)
    except TypeError:
        a, b = str(a), str(b)
        return (a > b) - (a < b)


def sort_records(
    items: List[Any],
    sort_list: SortList,
    first: Optional[Callable[[Any], bool]] = None,
    pseudo_first: str = "",
) -> List[Any]:
    """Sort ``items`` in place and return it.

    Args:
        items: records to sort
        sort_list: key callable or list of field names
        first: predicate for records that should lead the list
        pseudo_first: field name in ``sort_list`` that activates ``first``
    """
    if callable(sort_list):
        items.sort(key=sort_list)
        return items

    fields = [f for f in sort_list if f]

    def compare(x: Any, y: Any) -> int:
        for field in fields:
            desc = field.startswith("-")
            name = field[1:] if desc else field
            if pseudo_first and name == pseudo_first and first is not None:
                result = _compare_values(not first(x), not first(y))
            else:
                result = _compare_values(getattr(x, name, None), getattr(y, name, None))
            if result:
                return -result if desc else result
        return 0

    items.sort(key=cmp_to_key(compare))
    return items
