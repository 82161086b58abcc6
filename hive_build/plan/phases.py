"""Phase derivation: layer a component graph into checkpointed build phases."""

import logging
from dataclasses import dataclass, field

from hive_build.plan.models import BuildPhase, BuildTask, Component

logger = logging.getLogger(__name__)


def make_phase_id(phase_idx: int) -> str:
    return f"phase-{phase_idx + 1}"


def make_task_id(phase_idx: int, task_idx: int) -> str:
    return f"p{phase_idx + 1}t{task_idx + 1}"


@dataclass
class PhaseDerivation:
    """Result of layering a component graph.

    ``forced`` lists components that were placed without their dependencies
    being satisfied (a cycle or inconsistent data). ``ignored`` lists
    ``(component, dependency)`` edges dropped because the dependency is not a
    known component or is the component itself. ``duplicates`` lists
    repeated component names (the first occurrence wins).
    """

    phases: list[BuildPhase] = field(default_factory=list)
    layers: list[list[str]] = field(default_factory=list)
    forced: list[str] = field(default_factory=list)
    ignored: list[tuple[str, str]] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)

    @property
    def has_cycle(self) -> bool:
        return bool(self.forced)

    def warnings(self) -> list[str]:
        """Human-readable diagnostics for plan summaries."""
        messages = []
        for name in self.forced:
            messages.append(
                f"Dependency cycle: '{name}' was placed before its dependencies were built"
            )
        for component, dep in self.ignored:
            if component == dep:
                messages.append(f"Self-dependency of '{component}' ignored")
            else:
                messages.append(f"Unknown dependency '{dep}' of '{component}' ignored")
        for name in self.duplicates:
            messages.append(f"Duplicate component '{name}' ignored")
        return messages


def _task_description(comp: Component) -> str:
    if comp.description:
        return f"Implement the {comp.name} component: {comp.description}"
    return f"Implement the {comp.name} component"


def _layer(components: list[Component], derivation: PhaseDerivation) -> list[list[str]]:
    known = {c.name for c in components}
    dep_map = {}
    for c in components:
        deps = set()
        for dep in c.dependencies:
            if dep in known and dep != c.name:
                deps.add(dep)
            else:
                derivation.ignored.append((c.name, dep))
        dep_map[c.name] = deps

    layers: list[list[str]] = []
    placed: set[str] = set()

    while len(placed) < len(components):
        layer = [
            c.name for c in components
            if c.name not in placed and dep_map[c.name] <= placed
        ]

        if not layer:
            # Escape valve: force one component so derivation terminates
            unplaced = next(c for c in components if c.name not in placed)
            layer.append(unplaced.name)
            derivation.forced.append(unplaced.name)

        layers.append(layer)
        placed.update(layer)

    return layers


def derive_phases(components: list[Component]) -> PhaseDerivation:
    """Partition components into dependency-respecting phases.

    Every component lands in exactly one phase and becomes one task named
    ``Build {component}``. A task depends on the tasks of its declared
    dependencies that were placed in strictly earlier phases.
    """
    derivation = PhaseDerivation()

    unique: list[Component] = []
    seen: set[str] = set()
    for c in components:
        if c.name in seen:
            derivation.duplicates.append(c.name)
            continue
        seen.add(c.name)
        unique.append(c)

    if not unique:
        return derivation

    by_name = {c.name: c for c in unique}
    layers = _layer(unique, derivation)
    derivation.layers = layers

    position = {}
    for phase_idx, layer in enumerate(layers):
        for task_idx, name in enumerate(layer):
            position[name] = (phase_idx, task_idx)

    for phase_idx, layer in enumerate(layers):
        tasks = []
        for task_idx, name in enumerate(layer):
            comp = by_name[name]
            depends_on = []
            for dep in comp.dependencies:
                if dep not in position:
                    continue
                dep_phase, dep_task = position[dep]
                if dep_phase < phase_idx:
                    task_id = make_task_id(dep_phase, dep_task)
                    if task_id not in depends_on:
                        depends_on.append(task_id)

            tasks.append(BuildTask(
                id=make_task_id(phase_idx, task_idx),
                name=f"Build {comp.name}",
                description=_task_description(comp),
                depends_on=depends_on,
                component=comp.name,
                expected_files=list(comp.files),
            ))

        derivation.phases.append(BuildPhase(
            id=make_phase_id(phase_idx),
            name=f"Phase {phase_idx + 1}",
            description=f"Build: {', '.join(layer)}",
            tasks=tasks,
            checkpoint=True,
        ))

    if derivation.forced:
        logger.warning(
            "Dependency cycle detected; forced placement of: %s",
            ", ".join(derivation.forced),
        )

    return derivation
