"""Virtual scrolling for large ranked result lists.

Only the items intersecting the viewport (plus an overscan margin) are
materialized. Item tops are kept in a cumulative position index so the
first visible item is found by binary search.
"""
import math
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from sitepalette.config import ScrollConfig


ALIGNMENTS = ("start", "center", "end")

# Height changes at or below this many pixels don't trigger a rebuild
HEIGHT_TOLERANCE = 1.0


@dataclass(frozen=True)
class VirtualItem:
    id: str
    payload: Any = None
    height: Optional[float] = None


@dataclass(frozen=True)
class VisibleRange:
    scroll_top: float
    start_index: int
    end_index: int
    offset_y: float


@dataclass(frozen=True)
class VisibleItem:
    item: VirtualItem
    index: int
    style: Dict[str, Any]


@dataclass
class VirtualScrollOptions:
    """Options for a VirtualScrollManager."""
    container_height: float
    item_height: float = 40.0
    overscan: int = 5
    estimated_item_height: Optional[float] = None  # Defaults to item_height
    range_cache_size: int = 5
    scroll_bucket: float = 10.0
    max_height_overrides: int = 1000

    @classmethod
    def from_config(cls, config: ScrollConfig) -> "VirtualScrollOptions":
        return cls(
            container_height=config.container_height,
            item_height=config.item_height,
            overscan=config.overscan,
            range_cache_size=config.range_cache_size,
            scroll_bucket=config.scroll_bucket,
            max_height_overrides=config.max_height_overrides,
        )


class VirtualScrollManager:
    """Computes which slice of an item list must be rendered.

    Each manager exclusively owns its position index, height overrides and
    range cache. Replace the item list with ``set_items``; never mutate the
    list passed in.
    """

    def __init__(self, options: VirtualScrollOptions):
        if options.scroll_bucket <= 0:
            raise ValueError("scroll_bucket must be positive")

        self.container_height = float(options.container_height)
        self.item_height = options.item_height or 40.0
        self.overscan = max(0, options.overscan)
        self.estimated_item_height = options.estimated_item_height or self.item_height
        self.range_cache_size = options.range_cache_size
        self.scroll_bucket = options.scroll_bucket
        self.max_height_overrides = options.max_height_overrides

        self._items: List[VirtualItem] = []
        self._index_by_id: Dict[str, int] = {}
        self._heights: Dict[str, float] = {}
        self._positions: List[float] = [0.0]
        self._range_cache: Dict[float, VisibleRange] = {}
        self._last_scroll_top = 0.0
        self.scroll_direction = "none"

    # ------------------------------------------------------------------
    # Items and heights
    # ------------------------------------------------------------------

    def set_items(self, items: List[VirtualItem]) -> None:
        """Replace the item list and rebuild the position index."""
        self._items = list(items)
        self._index_by_id = {}
        for index, item in enumerate(self._items):
            self._index_by_id.setdefault(item.id, index)
        self._range_cache.clear()
        self._recalculate_positions()

    def _height_of(self, item: VirtualItem) -> float:
        height = self._heights.get(item.id)
        if height is None:
            height = item.height
        if height is None or not math.isfinite(height):
            return self.estimated_item_height
        return max(0.0, height)

    def update_item_height(self, item_id: str, height: float) -> bool:
        """Record a measured item height.

        Args:
            item_id: Id of the measured item
            height: Measured height in pixels

        Returns:
            True if the position index was rebuilt

        Raises:
            ValueError: If height is negative or not finite
        """
        if not math.isfinite(height) or height < 0:
            raise ValueError(f"Invalid item height: {height}")

        index = self._index_by_id.get(item_id)
        if index is not None:
            old_height = self._height_of(self._items[index])
        else:
            old_height = self._heights.get(item_id, self.estimated_item_height)

        if abs(old_height - height) <= HEIGHT_TOLERANCE:
            return False

        self._heights.pop(item_id, None)
        self._heights[item_id] = height
        if len(self._heights) > self.max_height_overrides:
            # Keep the most recently inserted overrides
            excess = len(self._heights) - self.max_height_overrides
            for key in list(self._heights)[:excess]:
                del self._heights[key]

        self._range_cache.clear()
        self._recalculate_positions()
        return True

    def set_container_height(self, height: float) -> None:
        """Resize the viewport; cached ranges are discarded."""
        if height != self.container_height:
            self.container_height = float(height)
            self._range_cache.clear()

    def _recalculate_positions(self) -> None:
        positions = [0.0]
        current = 0.0
        for item in self._items:
            current += self._height_of(item)
            positions.append(current)
        self._positions = positions

    # ------------------------------------------------------------------
    # Windowing
    # ------------------------------------------------------------------

    def _cache_key(self, scroll_top: float) -> float:
        return math.floor(scroll_top / self.scroll_bucket) * self.scroll_bucket

    def get_visible_range(self, scroll_top: float) -> VisibleRange:
        """Compute the index range to render for a scroll offset.

        Args:
            scroll_top: Current scroll offset of the container

        Returns:
            VisibleRange with inclusive start/end indexes and the y offset of
            the first rendered item. For an empty list end_index is -1.
        """
        if scroll_top > self._last_scroll_top:
            self.scroll_direction = "down"
        elif scroll_top < self._last_scroll_top:
            self.scroll_direction = "up"
        else:
            self.scroll_direction = "none"
        self._last_scroll_top = scroll_top

        key = self._cache_key(scroll_top)
        cached = self._range_cache.get(key)
        if cached is not None:
            return cached

        count = len(self._items)
        if count == 0:
            result = VisibleRange(scroll_top, 0, -1, 0.0)
        else:
            # pos[i] <= scroll_top < pos[i + 1], clamped to the item list
            first = bisect_right(self._positions, scroll_top) - 1
            first = min(max(first, 0), count - 1)
            start_index = max(0, first - self.overscan)

            # Last item whose top lies above the viewport bottom
            bottom = scroll_top + self.container_height
            raw_end = bisect_left(self._positions, bottom, lo=start_index, hi=count) - 1
            raw_end = max(raw_end, first)
            end_index = min(count - 1, raw_end + self.overscan)

            result = VisibleRange(
                scroll_top=scroll_top,
                start_index=start_index,
                end_index=end_index,
                offset_y=self._positions[start_index],
            )

        if self.range_cache_size > 0:
            if len(self._range_cache) >= self.range_cache_size:
                # Evict the oldest inserted range
                del self._range_cache[next(iter(self._range_cache))]
            self._range_cache[key] = result

        return result

    def get_visible_items(self, scroll_top: float) -> List[VisibleItem]:
        """Items to render for a scroll offset, with absolute positioning styles."""
        visible = self.get_visible_range(scroll_top)
        items = []
        for index in range(visible.start_index, min(visible.end_index, len(self._items) - 1) + 1):
            item = self._items[index]
            top = self._positions[index]
            items.append(VisibleItem(
                item=item,
                index=index,
                style={
                    "position": "absolute",
                    "top": top,
                    "left": 0,
                    "right": 0,
                    "height": self._positions[index + 1] - top,
                    "z_index": index,
                },
            ))
        return items

    def scroll_to_item(self, item_id: str, alignment: str = "start") -> Optional[float]:
        """Scroll offset that brings an item into view.

        Args:
            item_id: Id of the target item
            alignment: 'start', 'center' or 'end'

        Returns:
            Scroll offset clamped to the scrollable range, or None if the item
            is not in the list
        """
        if alignment not in ALIGNMENTS:
            raise ValueError(f"Unknown alignment: {alignment}")

        index = self._index_by_id.get(item_id)
        if index is None:
            return None

        top = self._positions[index]
        height = self._positions[index + 1] - top

        if alignment == "start":
            target = top
        elif alignment == "center":
            target = top - (self.container_height - height) / 2
        else:
            target = top + height - self.container_height

        max_scroll = max(0.0, self.get_total_height() - self.container_height)
        return max(0.0, min(target, max_scroll))

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def positions(self) -> List[float]:
        """Copy of the cumulative position index (length N + 1)."""
        return list(self._positions)

    def get_total_height(self) -> float:
        return self._positions[-1]

    def get_item_count(self) -> int:
        return len(self._items)

    def get_item_at_index(self, index: int) -> Optional[VirtualItem]:
        if 0 <= index < len(self._items):
            return self._items[index]
        return None

    def get_item_index(self, item_id: str) -> int:
        """Index of an item, or -1 if absent."""
        return self._index_by_id.get(item_id, -1)

    def get_height_override(self, item_id: str) -> Optional[float]:
        return self._heights.get(item_id)
