# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Recipient resolution.

The engine does not own parent records. Callers plug in a
RecipientResolver that turns a TargetSpec into Recipient objects.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping, Protocol, Sequence

from src.infrastructure.notifications.models import Recipient


class TargetType(str, Enum):
    """How the recipients of a notification are selected."""

    SPECIFIC = "SPECIFIC"
    ALL_PARENTS = "ALL_PARENTS"
    CLASS_PARENTS = "CLASS_PARENTS"


@dataclass(frozen=True)
class TargetSpec:
    """Selection of recipients.

    Attributes:
        target_type: Selection mode.
        target_ids: Parent ids for SPECIFIC, class ids for CLASS_PARENTS.
    """

    target_type: TargetType
    target_ids: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "target_type", TargetType(self.target_type))
        object.__setattr__(self, "target_ids", tuple(self.target_ids))
        if self.target_type != TargetType.ALL_PARENTS and not self.target_ids:
            raise ValueError(f"{self.target_type.value} targeting requires target ids")


class RecipientResolver(Protocol):
    """Turns a target selection into recipients."""

    async def resolve(self, target_spec: TargetSpec) -> list[Recipient]:
        """Resolve the recipients of a target selection."""
        ...


class StaticRecipientResolver:
    """Resolver over an in-memory parent directory.

    Attributes:
        recipients: Known recipients by id.
        class_parents: Parent ids by class id.
    """

    def __init__(
        self,
        recipients: Iterable[Recipient],
        class_parents: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self.recipients: dict[str, Recipient] = {r.id: r for r in recipients}
        self.class_parents = {k: list(v) for k, v in (class_parents or {}).items()}

    async def resolve(self, target_spec: TargetSpec) -> list[Recipient]:
        if target_spec.target_type == TargetType.ALL_PARENTS:
            return list(self.recipients.values())

        if target_spec.target_type == TargetType.SPECIFIC:
            ids: list[str] = list(target_spec.target_ids)
        else:
            ids = [
                parent_id
                for class_id in target_spec.target_ids
                for parent_id in self.class_parents.get(class_id, [])
            ]

        # Parents with several children in the targeted classes appear once
        unique = dict.fromkeys(ids)
        return [self.recipients[i] for i in unique if i in self.recipients]
