"""streamcompose.validation — structural checks on a scene description.

validate_scene() runs before any graph is built and raises the first
problem it finds. Checks run from the most specific category to the most
general, so a description with several problems always reports the same
one:

  1. duplicate input pads           → DuplicatePadReferences
  2. duplicate or undefined names   → DuplicateNames / UndefinedName
  3. output used as an input       → CycleDetected / OutputUsedAsInput
     objects nobody references      → UnusedObject
  4. predecessor cycles             → CycleDetected
  5. output-resolution cycles       → ResolutionCycleDetected

Only predecessor edges (texture input, layout inputs) count for check 4.
A SizeOf resolution reference constrains sizing but isn't an input; it
gets its own cycle check in step 5.
"""

import logging

from .errors import (
    CycleDetected,
    DuplicateNames,
    DuplicatePadReferences,
    OutputUsedAsInput,
    ResolutionCycleDetected,
    UndefinedName,
    UnusedObject,
)
from .scene import SceneDescription, Video

logger = logging.getLogger(__name__)


_IN_PROGRESS = 1
_DONE = 2


def validate_scene(description: SceneDescription) -> None:
    """Raise the first structural problem in description, or return None.

    Never mutates the description.
    """
    _check_duplicate_pad_refs(description)
    _check_duplicate_or_undefined_names(description)
    _check_unused_objects(description)
    _check_cycles(description)
    _check_resolution_cycles(description)
    logger.debug(
        f"Scene with {len(description.objects)} objects and output "
        f"{description.output!r} passed validation"
    )


# ── Individual checks ─────────────────────────────────────────────


def _check_duplicate_pad_refs(description: SceneDescription) -> None:
    pads = set()
    for _, obj in description.objects:
        if isinstance(obj, Video):
            if obj.input_pad in pads:
                raise DuplicatePadReferences(obj.input_pad)
            pads.add(obj.input_pad)


def _check_duplicate_or_undefined_names(description: SceneDescription) -> None:
    if not description.objects:
        raise UndefinedName(description.output)

    defined = set()
    for name in description.names():
        if name in defined:
            raise DuplicateNames(name)
        defined.add(name)

    for _, obj in description.objects:
        for name in obj.mentioned_names():
            if name not in defined:
                raise UndefinedName(name)

    if description.output not in defined:
        raise UndefinedName(description.output)


def _check_unused_objects(description: SceneDescription) -> None:
    used = set()
    inputs = set()
    for _, obj in description.objects:
        used.update(obj.mentioned_names())
        inputs.update(obj.previous_names())

    # The output feeding back into another object is either a real cycle
    # or a terminal node misused as an input; report them separately.
    # Borrowing only its size (SizeOf) is allowed.
    if description.output in inputs:
        _check_cycles(description)
        raise OutputUsedAsInput(description.output)
    used.add(description.output)

    for name in description.names():
        if name not in used:
            raise UnusedObject(name)


def _check_cycles(description: SceneDescription) -> None:
    """Three-colour DFS over predecessor edges, output first."""
    objects = description.object_map()
    state = {}

    def visit(name):
        mark = state.get(name)
        if mark == _IN_PROGRESS:
            raise CycleDetected(name)
        if mark == _DONE:
            return
        state[name] = _IN_PROGRESS
        for previous in objects[name].previous_names():
            visit(previous)
        state[name] = _DONE

    # Roots beyond the output catch cycles only reachable through SizeOf.
    for root in [description.output, *description.names()]:
        visit(root)


def _check_resolution_cycles(description: SceneDescription) -> None:
    """Same walk over size dependencies (SizeOf targets, transformed inputs)."""
    objects = description.object_map()
    state = {}

    def visit(name):
        mark = state.get(name)
        if mark == _IN_PROGRESS:
            raise ResolutionCycleDetected(name)
        if mark == _DONE:
            return
        state[name] = _IN_PROGRESS
        for dependency in objects[name].size_dependencies():
            visit(dependency)
        state[name] = _DONE

    for root in [description.output, *description.names()]:
        visit(root)
