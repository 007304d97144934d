class TandrumError(Exception):
    """Base class for every error raised by the engine."""


class NotFound(TandrumError):
    """A habit, duo, tree or catalog item does not exist."""

    def __init__(self, kind, key):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ValidationError(TandrumError):
    """Input rejected before anything was written."""


class OutOfStock(ValidationError):
    """Tried to equip an item the tree holds none of."""

    def __init__(self, item_id, name=None):
        self.item_id = item_id
        super().__init__(f"Not enough {name or item_id} available in inventory")


class CapacityExceeded(TandrumError):
    """The tree stage has no free decoration slot."""

    def __init__(self, stage, capacity):
        self.stage = stage
        self.capacity = capacity
        super().__init__(
            f"You cannot place more than {capacity} decorations on a {stage}"
        )


class SlotOccupied(TandrumError):
    """Another decoration already sits at (or very near) that position."""

    def __init__(self, position):
        self.position = position
        super().__init__(f"Position ({position['x']}, {position['y']}) is already occupied")
