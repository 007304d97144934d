import math
import logging
from tandrum.errors import NotFound, ValidationError, OutOfStock, CapacityExceeded, SlotOccupied
from tandrum.gamification import (
    aggregate_buffs, later_stage, max_decorations_for_stage, round_for_display,
    stage_for_trust_score,
)
from tandrum.models import STAGES, ActiveBuffs, Decoration
from tandrum.utils import now_ms, to_local_date

logger = logging.getLogger(__name__)

# Decorations closer than this on both axes share a slot
SLOT_TOLERANCE = 20


def load_active_buffs(repo, tree):
    """Buffs granted by the tree's currently equipped decorations."""
    items = {}
    for decoration in tree.decorations:
        if decoration.item_id not in items:
            item = repo.get_tree_item_by_id(decoration.item_id)
            if item is not None:
                items[item.item_id] = item
    return aggregate_buffs(tree.decorations, items)


def sync_tree_stage(duo, tree, today):
    """
    Bring the tree stage in line with the duo's trust-score level, in place.
    The stage only ever moves forward. Returns (stage, changed).
    """
    current = tree.stage if tree.stage in STAGES else STAGES[0]
    target = later_stage(current, stage_for_trust_score(duo.trust_score))
    changed = target != tree.stage or target != duo.tree_state

    if target != tree.stage:
        logger.info("Tree of duo %s evolved %s -> %s", duo.id, tree.stage, target)
        tree.stage = target
        tree.log(today, f"Tree evolved to {target} 🌳")
    duo.tree_state = target
    return target, changed


def _load(repo, duo_id):
    duo = repo.get_duo(duo_id)
    if duo is None:
        raise NotFound("Duo", duo_id)
    tree = repo.get_tree(duo_id)
    if tree is None:
        raise NotFound("Tree", duo_id)
    return duo, tree


def _persist_stage(repo, duo, tree):
    repo.update_tree(duo.id, {"stage": tree.stage, "growth_log": tree.growth_log})
    repo.update_duo(duo.id, {"tree_state": duo.tree_state})


def update_tree_stage(repo, duo_id, clock=now_ms):
    """Idempotent stage correction for a duo's tree."""
    with repo.transaction():
        duo, tree = _load(repo, duo_id)
        stage, changed = sync_tree_stage(duo, tree, to_local_date(clock()))
        if changed:
            _persist_stage(repo, duo, tree)
    return {"updated": changed, "new_stage": stage}


def update_tree_decorations(repo, duo_id, item_id, position, clock=now_ms):
    """Equip one item from the inventory at `position` ({"x": .., "y": ..})."""
    try:
        position = {"x": float(position["x"]), "y": float(position["y"])}
    except (KeyError, TypeError, ValueError):
        raise ValidationError("Position needs numeric x and y") from None
    if not (math.isfinite(position["x"]) and math.isfinite(position["y"])):
        raise ValidationError("Position must be finite")

    with repo.transaction():
        duo, tree = _load(repo, duo_id)
        now = clock()
        if sync_tree_stage(duo, tree, to_local_date(now))[1]:
            _persist_stage(repo, duo, tree)

        item = repo.get_tree_item_by_id(item_id)
        if item is None:
            raise NotFound("TreeItem", item_id)
        if not item.is_active:
            raise ValidationError("Invalid or inactive tree item")

        capacity = max_decorations_for_stage(tree.stage)
        if len(tree.decorations) >= capacity:
            raise CapacityExceeded(tree.stage, capacity)

        count = tree.inventory.get(item_id, 0)
        if count <= 0:
            raise OutOfStock(item_id, item.name)

        for existing in tree.decorations:
            if (abs(existing.position["x"] - position["x"]) < SLOT_TOLERANCE
                    and abs(existing.position["y"] - position["y"]) < SLOT_TOLERANCE):
                raise SlotOccupied(position)

        tree.decorations.append(Decoration(item_id=item_id, position=position, equipped_at=now))
        tree.inventory[item_id] = count - 1
        repo.update_tree(duo_id, {"decorations": tree.decorations, "inventory": tree.inventory})

    logger.info("Duo %s equipped %s (%d/%d)", duo_id, item_id, len(tree.decorations), capacity)
    return {"success": True, "decorations": len(tree.decorations)}


def remove_tree_decoration(repo, duo_id, index):
    """Unequip the decoration at `index` and return it to the inventory."""
    with repo.transaction():
        tree = repo.get_tree(duo_id)
        if tree is None:
            raise NotFound("Tree", duo_id)
        if (isinstance(index, bool) or not isinstance(index, int)
                or index < 0 or index >= len(tree.decorations)):
            raise ValidationError("Invalid decoration index")

        removed = tree.decorations.pop(index)
        tree.inventory[removed.item_id] = tree.inventory.get(removed.item_id, 0) + 1
        repo.update_tree(duo_id, {"decorations": tree.decorations, "inventory": tree.inventory})

    logger.info("Duo %s removed decoration %s", duo_id, removed.item_id)
    return {"success": True, "item_id": removed.item_id}


def add_item_to_inventory(repo, duo_id, item_id, quantity, clock=now_ms):
    """Grant (or with a negative quantity, take) items; counts never go below zero."""
    with repo.transaction():
        tree = repo.get_tree(duo_id)
        if tree is None:
            raise NotFound("Tree", duo_id)
        item = repo.get_tree_item_by_id(item_id)
        if item is None:
            raise NotFound("TreeItem", item_id)
        if not item.is_active:
            raise ValidationError("Invalid or inactive tree item")

        new_count = max(0, tree.inventory.get(item_id, 0) + quantity)
        tree.inventory[item_id] = new_count
        if quantity > 0:
            change = f"Gained {quantity}x {item.name} 🎁"
        else:
            change = f"Used {abs(quantity)}x {item.name} 💫"
        tree.log(to_local_date(clock()), change)
        repo.update_tree(duo_id, {"inventory": tree.inventory, "growth_log": tree.growth_log})

    return {"success": True, "new_count": new_count}


def get_active_buffs(repo, duo_id):
    tree = repo.get_tree(duo_id)
    if tree is None:
        return ActiveBuffs()
    return round_for_display(load_active_buffs(repo, tree))


def get_enriched_tree(repo, duo_id):
    """Tree document with catalog data attached to each decoration."""
    tree = repo.get_tree(duo_id)
    if tree is None:
        return None
    enriched = []
    for decoration in tree.decorations:
        item = repo.get_tree_item_by_id(decoration.item_id)
        enriched.append({**decoration.to_dict(), "item_data": item.to_dict() if item else None})
    return {**tree.to_dict(), "enriched_decorations": enriched}
