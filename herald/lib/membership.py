"""Alert group membership lists.

Group membership is persisted as a single text column holding a
comma-separated list of instance ids (``"3,7,12"``). Everything outside the
store works with :class:`MembershipList`, an insertion-ordered set of ints,
so membership changes are structural operations rather than string edits.

Usage:
    members = MembershipList.parse(" 3, 7")
    members.add(12)
    members.serialize()  # "3,7,12"
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator

from herald.lib.exceptions import MembershipFormatError

SEPARATOR = ","
INSTANCE_ID = re.compile(r"[0-9]+")


class MembershipList:
    """Insertion-ordered set of alert plugin instance ids."""

    __slots__ = ("_ids",)

    def __init__(self, ids: Iterable[int] = ()) -> None:
        self._ids: dict[int, None] = dict.fromkeys(ids)

    @classmethod
    def parse(cls, text: str | None) -> MembershipList:
        """Parse the persisted text form.

        Whitespace around each element is tolerated and empty elements are
        skipped, so ``""``, ``None`` and ``" , "`` all parse to the empty set.

        Raises:
            MembershipFormatError: If an element is not a plain ASCII decimal id.
        """
        if not text:
            return cls()

        ids = []
        for raw in text.split(SEPARATOR):
            element = raw.strip()
            if not element:
                continue
            if not INSTANCE_ID.fullmatch(element):
                raise MembershipFormatError(
                    f"Invalid alert instance id {element!r} in membership list {text!r}"
                )
            ids.append(int(element))
        return cls(ids)

    def serialize(self) -> str:
        """Return the canonical text form (no whitespace, empty set is ``""``)."""
        return SEPARATOR.join(str(i) for i in self._ids)

    def add(self, instance_id: int) -> bool:
        """Append an id at the end. Returns False if it was already present."""
        if instance_id in self._ids:
            return False
        self._ids[instance_id] = None
        return True

    def discard(self, instance_id: int) -> bool:
        """Remove an id if present. Returns True if something was removed."""
        if instance_id not in self._ids:
            return False
        del self._ids[instance_id]
        return True

    def copy(self) -> MembershipList:
        return MembershipList(self._ids)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._ids

    def __iter__(self) -> Iterator[int]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MembershipList):
            return NotImplemented
        return list(self._ids) == list(other._ids)

    def __repr__(self) -> str:
        return f"MembershipList({list(self._ids)!r})"


def contains_instance(text: str | None, instance_id: int) -> bool:
    """Check whether a persisted membership list references an instance.

    Malformed lists are treated as referencing nothing they cannot parse;
    the well-formed elements are still checked.
    """
    if not text:
        return False
    for raw in text.split(SEPARATOR):
        element = raw.strip()
        if INSTANCE_ID.fullmatch(element) and int(element) == instance_id:
            return True
    return False
