"""Object visibility and redirection rules.

Some objects are editor helpers that never show up in game (system objects,
invisible walls), some are animated effects that make no sense in a still
image, and a few only have artwork under a different id or bank. The rules
below decide, per (bank, id), whether an object is drawn and which image it
uses. They are checked in order and the first match decides; an object that
matches nothing is drawn unchanged.

Custom objects (bank 255) never reach this table; the compositor reads their
geometry from ``World.ini`` instead.
"""

from dataclasses import dataclass
from typing import Callable, List

from knytt_render.types import ObjectBank, ObjectID

CUSTOM_OBJECT_BANK: ObjectBank = 255


@dataclass(frozen=True)
class RuleOutcome:
    """Decision for one object cell.

    Attributes:
        draw: False when the object is hidden.
        bank: Bank to load the image from (possibly redirected).
        object_id: Object id to load the image from (possibly redirected).
    """

    draw: bool
    bank: ObjectBank
    object_id: ObjectID


IdPredicate = Callable[[ObjectID, bool], bool]
OutcomeFn = Callable[[ObjectBank, ObjectID], RuleOutcome]


def suppress(bank: ObjectBank, object_id: ObjectID) -> RuleOutcome:
    return RuleOutcome(False, bank, object_id)


def redirect_id(fn: Callable[[ObjectID], ObjectID]) -> OutcomeFn:
    return lambda bank, object_id: RuleOutcome(True, bank, fn(object_id))


def redirect_bank(new_bank: ObjectBank) -> OutcomeFn:
    return lambda bank, object_id: RuleOutcome(True, new_bank, object_id)


@dataclass(frozen=True)
class ObjectRule:
    """One row of the rule table.

    Attributes:
        bank: Bank the rule applies to.
        matches: ``(object_id, remove_ghost) -> bool``.
        outcome: Builds the decision for a matching object.
        label: Short description, used in logs and test ids.
        debug: Rule only applies when debug objects are being removed.
    """

    bank: ObjectBank
    matches: IdPredicate
    outcome: OutcomeFn
    label: str
    debug: bool = False


def _ids(*ids: ObjectID) -> IdPredicate:
    wanted = frozenset(ids)
    return lambda object_id, remove_ghost: object_id in wanted


def _between(low: ObjectID, high: ObjectID) -> IdPredicate:
    return lambda object_id, remove_ghost: low <= object_id <= high


OBJECT_RULES: List[ObjectRule] = [
    ObjectRule(
        0,
        lambda i, g: i == 2 or 11 <= i <= 20 or i >= 25,
        suppress,
        "system objects",
        debug=True,
    ),
    ObjectRule(12, lambda i, g: i == 17 or g, suppress, "ghost wall / ghosts"),
    ObjectRule(16, lambda i, g: True, suppress, "invisible", debug=True),
    ObjectRule(2, _ids(3, 4), suppress, "flies"),
    ObjectRule(8, _between(15, 17), suppress, "decoration effects"),
    ObjectRule(7, _ids(1, 3, 6, 8, 10, 12, 14, 16), suppress, "nature effects"),
    ObjectRule(13, _ids(7, 10), suppress, "robots"),
    ObjectRule(13, _ids(8, 11), redirect_id(lambda i: i + 1), "robots -> lasers"),
    ObjectRule(15, _between(14, 21), redirect_id(lambda i: 13), "password switches"),
    ObjectRule(
        15, _between(8, 11), redirect_id(lambda i: i - 7), "disappearing blocks"
    ),
    ObjectRule(15, _ids(6), suppress, "blue blocks"),
    ObjectRule(15, _ids(7), redirect_id(lambda i: 6), "red blocks"),
    ObjectRule(6, _ids(6), redirect_bank(8), "traps"),
]


def find_rule(
    bank: ObjectBank,
    object_id: ObjectID,
    remove_ghost: bool,
    remove_debug_objects: bool = True,
) -> ObjectRule | None:
    """Return the first rule matching the object, if any."""
    for rule in OBJECT_RULES:
        if rule.bank != bank or (rule.debug and not remove_debug_objects):
            continue
        if rule.matches(object_id, remove_ghost):
            return rule
    return None


def can_draw(
    bank: ObjectBank,
    object_id: ObjectID,
    remove_ghost: bool,
    remove_debug_objects: bool = True,
) -> RuleOutcome:
    """Decide whether and how an object is drawn.

    Arguments:
        bank: Object bank from the layer.
        object_id: Object id from the layer.
        remove_ghost: Hide every bank 12 object.
        remove_debug_objects: Hide system (bank 0) and invisible (bank 16)
            objects. When False those rules are skipped.

    Returns:
        RuleOutcome: Visibility plus the (possibly redirected) bank and id.
    """
    rule = find_rule(bank, object_id, remove_ghost, remove_debug_objects)
    if rule is None:
        return RuleOutcome(True, bank, object_id)
    return rule.outcome(bank, object_id)
