"""
Swipe-to-file triage engine.

A thin gesture adapter translates pointer events into `drag_start`,
`drag_move` and `drag_end` calls; this module owns the discrete states, the
proximity rule and the queue cursor. Animation is the adapter's concern.
"""

import math
from enum import Enum
from typing import Dict, Mapping, Optional, Sequence, Tuple

# Absolute imports for industrial stability
from reseet.errors import NotFound
from reseet.organizing.assignment import CategoryAssignmentService
from reseet.utils.logging_config import logger

DEFAULT_ACTIVATION_RADIUS = 100.0

Point = Tuple[float, float]


class TriageState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"
    SNAPPING_BACK = "snapping_back"
    CLOSED = "closed"


class TriageSession:
    """
    One pass over a snapshot of unsorted receipt ids.

    `anchors` maps category id to the centre of its drop target, in category
    list order; the first centre within `activation_radius` of the pointer is
    the active target.
    """

    def __init__(self, assignments: CategoryAssignmentService, queue: Sequence[str],
                 anchors: Mapping[str, Point],
                 activation_radius: float = DEFAULT_ACTIVATION_RADIUS):
        self.assignments = assignments
        self.queue = list(queue)
        self.anchors: Dict[str, Point] = dict(anchors)
        self.activation_radius = activation_radius
        self.cursor = 0
        self.state = TriageState.IDLE
        self.active_category_id: Optional[str] = None
        self._origin: Optional[Point] = None
        self._position: Optional[Point] = None

    def _is_stale(self, receipt_id: str) -> bool:
        """Deleted, or filed elsewhere with the move confirmed."""
        repository = self.assignments.repository
        try:
            receipt = repository.get_receipt(receipt_id)
        except NotFound:
            return True
        return receipt.folder_id is not None and repository.is_confirmed(receipt_id)

    def _next_index(self) -> int:
        # The dragged receipt stays current until the gesture resolves
        if self.state in (TriageState.DRAGGING, TriageState.COMMITTING):
            return self.cursor
        index = self.cursor
        while index < len(self.queue) and self._is_stale(self.queue[index]):
            index += 1
        return index

    @property
    def current_receipt_id(self) -> Optional[str]:
        index = self._next_index()
        if index < len(self.queue):
            return self.queue[index]
        return None

    @property
    def is_complete(self) -> bool:
        """True once every queued receipt has been filed ("all filed")."""
        return self._next_index() >= len(self.queue)

    @property
    def remaining(self) -> int:
        return max(len(self.queue) - self._next_index(), 0)

    @property
    def drag_offset(self) -> Point:
        """Pointer displacement from the drag start, for rendering."""
        if self._origin is None or self._position is None:
            return (0.0, 0.0)
        return (self._position[0] - self._origin[0], self._position[1] - self._origin[1])

    def _reset_drag(self) -> None:
        self._origin = None
        self._position = None
        self.active_category_id = None

    def _nearest_active(self, x: float, y: float) -> Optional[str]:
        for category_id, (cx, cy) in self.anchors.items():
            if math.hypot(x - cx, y - cy) < self.activation_radius:
                return category_id
        return None

    def drag_start(self, x: float, y: float) -> bool:
        """
        Captures the pointer. Ignored unless the session is at rest (or
        snapping back) with a receipt on screen.
        """
        if self.state not in (TriageState.IDLE, TriageState.SNAPPING_BACK) or self.is_complete:
            return False
        self.cursor = self._next_index()
        self.state = TriageState.DRAGGING
        self._origin = (x, y)
        self._position = (x, y)
        self.active_category_id = self._nearest_active(x, y)
        return True

    def drag_move(self, x: float, y: float) -> Optional[str]:
        """Tracks the pointer and returns the active category id, if any."""
        if self.state != TriageState.DRAGGING:
            return None
        self._position = (x, y)
        self.active_category_id = self._nearest_active(x, y)
        return self.active_category_id

    async def drag_end(self) -> Optional[str]:
        """
        Drops the receipt. Over an active category the move is committed and
        the cursor advances; otherwise the receipt snaps back.

        Returns:
            The category the receipt was filed into, or None on snap-back.

        Raises:
            NotFound / PersistFailed from the move; the session returns to
            IDLE. A receipt deleted mid-drag is skipped, otherwise the same
            receipt stays current.
        """
        if self.state != TriageState.DRAGGING:
            return None

        category_id = self.active_category_id
        if category_id is None:
            self.state = TriageState.SNAPPING_BACK
            return None

        receipt_id = self.current_receipt_id
        self.state = TriageState.COMMITTING
        try:
            await self.assignments.move_to_category(receipt_id, category_id)
        except Exception as e:
            logger.error(f"Filing receipt {receipt_id} into {category_id} failed: {e}")
            if self.state == TriageState.COMMITTING:
                self.state = TriageState.IDLE
            self._reset_drag()
            if isinstance(e, NotFound) and e.entity_id == receipt_id:
                self.cursor += 1
            raise

        if self.state == TriageState.CLOSED:
            # Torn down while the write was in flight; the move itself stands
            return category_id
        self.cursor += 1
        self.state = TriageState.IDLE
        self._reset_drag()
        if self.is_complete:
            logger.info("Triage queue exhausted, all receipts filed")
        return category_id

    def finish_snap_back(self) -> None:
        """Called when the return-to-rest animation completes."""
        if self.state == TriageState.SNAPPING_BACK:
            self.state = TriageState.IDLE
            self._reset_drag()

    async def undo(self) -> Optional[str]:
        """
        Reverts the last filed receipt to unsorted while the undo window is
        open. The cursor stays where it is.
        """
        if self.state == TriageState.CLOSED:
            return None
        return await self.assignments.undo_last_move()

    def set_anchors(self, anchors: Mapping[str, Point]) -> None:
        """Replaces drop-target centres after a layout change."""
        self.anchors = dict(anchors)
        if self.state == TriageState.DRAGGING and self._position is not None:
            self.active_category_id = self._nearest_active(*self._position)

    def teardown(self) -> None:
        """Discards any in-flight drag without mutation and closes the session."""
        if self.state == TriageState.DRAGGING:
            logger.debug("Triage torn down mid-drag, gesture discarded")
        self._reset_drag()
        self.assignments.clear_undo()
        self.state = TriageState.CLOSED
