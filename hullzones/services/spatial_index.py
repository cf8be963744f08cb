"""
Uniform-grid bucket index over constraint polygons.

Every polygon is registered in each grid cell its bounding box spans, so a
polygon covering many cells appears in all of them.
"""
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional

from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry
from shapely.prepared import PreparedGeometry, prep

logger = logging.getLogger(__name__)

CellKey = tuple[int, int]


@dataclass(eq=False)
class IndexedGeometry:
    """A polygon registered in the index, with a prepared copy for fast predicates."""
    geometry: BaseGeometry
    source_id: Optional[str] = None
    prepared: PreparedGeometry = field(init=False, repr=False)

    def __post_init__(self):
        self.prepared = prep(self.geometry)

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        return self.geometry.bounds

    def covers_point(self, point: Point) -> bool:
        """True if the point is inside the polygon or on its boundary."""
        return self.prepared.covers(point)


class SpatialIndex:
    """
    Grid-bucket spatial index.

    Answers "which polygons might intersect a disk of radius r around this
    point" by probing only the cells the disk can touch. Results are
    candidates only: the caller still runs the exact predicate.
    """

    def __init__(self, cell_size: float = 0.01):
        if cell_size <= 0:
            raise ValueError("cell_size must be positive")
        self.cell_size = cell_size
        self._cells: dict[CellKey, list[IndexedGeometry]] = defaultdict(list)
        self._items: list[IndexedGeometry] = []

    @classmethod
    def build(
        cls,
        geometries: Iterable[BaseGeometry],
        cell_size: float = 0.01,
    ) -> "SpatialIndex":
        """Build an index from an iterable of polygons."""
        index = cls(cell_size=cell_size)
        for i, geom in enumerate(geometries):
            if geom is None or geom.is_empty:
                continue
            index.insert(IndexedGeometry(geometry=geom, source_id=str(i)))
        logger.info(
            f"Spatial index built: {len(index)} polygons in {index.cell_count} cells "
            f"(cell size {cell_size})"
        )
        return index

    def __len__(self) -> int:
        return len(self._items)

    @property
    def cell_count(self) -> int:
        return len(self._cells)

    @property
    def items(self) -> list[IndexedGeometry]:
        return list(self._items)

    def _cell_of(self, x: float, y: float) -> CellKey:
        return (math.floor(x / self.cell_size), math.floor(y / self.cell_size))

    def insert(self, item: IndexedGeometry) -> None:
        """Register item in every cell its bounding box spans."""
        minx, miny, maxx, maxy = item.bounds
        min_cx = math.floor(minx / self.cell_size)
        min_cy = math.floor(miny / self.cell_size)
        max_cx = math.ceil(maxx / self.cell_size)
        max_cy = math.ceil(maxy / self.cell_size)

        for cx in range(min_cx, max_cx + 1):
            for cy in range(min_cy, max_cy + 1):
                self._cells[(cx, cy)].append(item)
        self._items.append(item)

    def _collect(self, min_cx: int, min_cy: int, max_cx: int, max_cy: int) -> list[IndexedGeometry]:
        seen: set[int] = set()
        found: list[IndexedGeometry] = []
        for cx in range(min_cx, max_cx + 1):
            for cy in range(min_cy, max_cy + 1):
                for item in self._cells.get((cx, cy), ()):
                    if id(item) in seen:
                        continue
                    seen.add(id(item))
                    found.append(item)
        return found

    def query(self, x: float, y: float, radius: float) -> list[IndexedGeometry]:
        """
        Return polygons whose cells fall within `radius` of (x, y).

        An empty index yields an empty list.
        """
        if not self._items:
            return []
        cx, cy = self._cell_of(x, y)
        reach = math.ceil(radius / self.cell_size) if radius > 0 else 0
        return self._collect(cx - reach, cy - reach, cx + reach, cy + reach)

    def query_bounds(self, bounds: tuple[float, float, float, float]) -> list[IndexedGeometry]:
        """Return polygons registered in any cell overlapping the given bounds."""
        if not self._items:
            return []
        minx, miny, maxx, maxy = bounds
        min_cx, min_cy = self._cell_of(minx, miny)
        max_cx, max_cy = self._cell_of(maxx, maxy)
        return self._collect(min_cx, min_cy, max_cx, max_cy)
