"""Versioned dependency graph for create-before-destroy replacement.

Every replaceable resource of a cluster is registered as a node holding a
versioned `Handle`. Replacing a node allocates a new version, points every
dependent at it (immutable dependents are themselves replaced, mutable ones are
relinked in place), and only then releases the old versions, dependents first.
Destroying a resource while something still references it deadlocks teardown,
so `plan_replacement` refuses to plan for a node with dependents unless that node
was marked create-before-destroy.
"""

from __future__ import annotations

import collections
import dataclasses
import enum
import typing

import pulumi

if typing.TYPE_CHECKING:
    import collections.abc


class StepAction(enum.StrEnum):
    CREATE = "create"
    RELINK = "relink"
    DESTROY = "destroy"


@dataclasses.dataclass(frozen=True)
class Handle:
    key: str
    version: int = 0

    def next(self) -> Handle:
        return Handle(key=self.key, version=self.version + 1)

    def __str__(self) -> str:
        return f"{self.key}@v{self.version}"


@dataclasses.dataclass(frozen=True)
class ReplacementStep:
    action: StepAction
    handle: Handle
    # For RELINK steps: the new versions the handle now points at.
    targets: tuple[Handle, ...] = ()


class ResourceGraph:
    def __init__(self):
        self._handles: dict[str, Handle] = {}
        self._dependencies: dict[str, list[str]] = {}
        self._dependents: dict[str, list[str]] = collections.defaultdict(list)
        self._immutable: set[str] = set()
        self._create_before_destroy: set[str] = set()

    def __contains__(self, key: str) -> bool:
        return key in self._handles

    def add(self, key: str, depends_on: collections.abc.Iterable[str] = (), *, immutable: bool = False) -> Handle:
        if key in self._handles:
            msg = f"Resource {key!r} is already part of the graph"
            raise ValueError(msg)

        dependencies = list(depends_on)
        for dep in dependencies:
            if dep not in self._handles:
                msg = f"Resource {key!r} depends on {dep!r}, which has not been added"
                raise ValueError(msg)

        self._handles[key] = Handle(key=key)
        self._dependencies[key] = dependencies
        for dep in dependencies:
            self._dependents[dep].append(key)
        if immutable:
            self._immutable.add(key)

        return self._handles[key]

    def handle(self, key: str) -> Handle:
        return self._handles[key]

    def dependencies(self, key: str) -> list[str]:
        return list(self._dependencies[key])

    def dependents(self, key: str) -> list[str]:
        return list(self._dependents[key])

    def is_immutable(self, key: str) -> bool:
        return key in self._immutable

    def is_create_before_destroy(self, key: str) -> bool:
        return key in self._create_before_destroy

    def topological_order(self) -> list[str]:
        """Dependencies before dependents, ties broken by insertion order."""
        in_degree = {k: len(deps) for k, deps in self._dependencies.items()}
        ready = collections.deque(k for k in self._handles if in_degree[k] == 0)
        order: list[str] = []

        while ready:
            key = ready.popleft()
            order.append(key)
            for dependent in self._dependents[key]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    ready.append(dependent)

        if len(order) != len(self._handles):
            cyclic = sorted(k for k, d in in_degree.items() if d > 0)
            msg = f"Dependency cycle between resources: {cyclic}"
            raise ValueError(msg)

        return order

    def require_create_before_destroy(self, key: str) -> None:
        """Mark a resource and everything it depends on, transitively."""
        pending = [key]
        while pending:
            current = pending.pop()
            if current in self._create_before_destroy:
                continue
            self._create_before_destroy.add(current)
            pending.extend(self._dependencies[current])

    def options(self, key: str, **kwargs: typing.Any) -> pulumi.ResourceOptions:
        """Resource options carrying the replacement discipline for `key`.

        Keys without create-before-destroy are deleted before being replaced,
        which is what AWS wants for leaf resources such as security group rules.
        """
        return pulumi.ResourceOptions(delete_before_replace=not self.is_create_before_destroy(key), **kwargs)

    def plan_replacement(self, key: str) -> list[ReplacementStep]:
        if key not in self._handles:
            msg = f"Unknown resource {key!r}"
            raise ValueError(msg)

        order = self.topological_order()
        replaced = {key}
        relinked: set[str] = set()

        # Immutable dependents of a replaced node are replaced too; mutable ones
        # take the new reference in place and stop the propagation.
        for candidate in order:
            if candidate in replaced:
                continue
            if not any(dep in replaced for dep in self._dependencies[candidate]):
                continue
            if candidate in self._immutable:
                replaced.add(candidate)
            else:
                relinked.add(candidate)

        for candidate in order:
            if candidate in replaced and self._dependents[candidate] and not self.is_create_before_destroy(candidate):
                msg = f"Refusing to replace {candidate!r}: it has dependents but is not create-before-destroy"
                raise ValueError(msg)

        new_handles = {k: self._handles[k].next() for k in replaced}
        steps: list[ReplacementStep] = []

        for candidate in order:
            if candidate in replaced:
                # Leaves without create-before-destroy go away first.
                if not self.is_create_before_destroy(candidate):
                    steps.append(ReplacementStep(action=StepAction.DESTROY, handle=self._handles[candidate]))
                steps.append(ReplacementStep(action=StepAction.CREATE, handle=new_handles[candidate]))
            elif candidate in relinked:
                targets = tuple(new_handles[d] for d in self._dependencies[candidate] if d in replaced)
                steps.append(
                    ReplacementStep(action=StepAction.RELINK, handle=self._handles[candidate], targets=targets)
                )

        for candidate in reversed(order):
            if candidate in replaced and self.is_create_before_destroy(candidate):
                steps.append(ReplacementStep(action=StepAction.DESTROY, handle=self._handles[candidate]))

        return steps

    def apply_replacement(self, key: str) -> list[ReplacementStep]:
        """Plan a replacement and advance the replaced handles to their new versions."""
        steps = self.plan_replacement(key)
        for step in steps:
            if step.action == StepAction.CREATE:
                self._handles[step.handle.key] = step.handle
        return steps
