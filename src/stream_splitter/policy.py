"""Key policies - how a record maps to a partition and a group."""

import string
from dataclasses import dataclass
from typing import Callable

from stream_splitter.errors import KeyDerivationError
from stream_splitter.records import Record

KeyFunc = Callable[[Record], str]

ROSTER_PARTITION_TEMPLATE = "{Semester}"
ROSTER_GROUP_TEMPLATE = "{School}/{Grade}/{Subject}-{Class}.csv"


@dataclass(frozen=True)
class KeyPolicy:
    """
    Pair of pure functions deriving the partition key and the group key.

    The partition is the unit that gets wiped before new data lands; the group
    is one output file inside it. Records that produce the same pair of keys
    share an output, whatever else differs between them.
    """

    partition_of: KeyFunc
    group_of: KeyFunc

    @classmethod
    def from_templates(cls, partition_template: str, group_template: str) -> "KeyPolicy":
        """Build a policy from ``str.format`` templates over field names."""
        return cls(
            partition_of=template_key(partition_template),
            group_of=template_key(group_template),
        )


def template_fields(template: str) -> list[str]:
    """Field names referenced by a format template, in order."""
    return [name for _, name, _, _ in string.Formatter().parse(template) if name]


def template_key(template: str) -> KeyFunc:
    """
    Return a key function that renders ``template`` against a record.

    Raises KeyDerivationError when the record lacks a referenced field.
    """
    fields = template_fields(template)

    def derive(record: Record) -> str:
        try:
            return template.format_map(record)
        except KeyError as e:
            raise KeyDerivationError(
                f"Record has no field {e.args[0]!r} required by {template!r}",
                template=template,
                field=e.args[0],
                available=list(record),
            ) from e

    derive.__name__ = f"key_{'_'.join(fields) or 'const'}"
    derive.template = template  # type: ignore[attr-defined]
    return derive


def roster_policy() -> KeyPolicy:
    """Semester partitions holding School/Grade/Subject-Class files."""
    return KeyPolicy.from_templates(ROSTER_PARTITION_TEMPLATE, ROSTER_GROUP_TEMPLATE)
