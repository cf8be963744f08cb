"""
Zone synthesis: accepted sample points -> coarse zone polygons.

Each point is buffered into a disk, disks are grouped into connected
clusters and every cluster is unioned into one polygon.

Two disks are linked when they overlap, or when their centres are within
the link distance (catches disks that touch but fail the overlap predicate
numerically). Candidate neighbours come from a cKDTree over centres and an
STRtree over the disks.
"""
import logging
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree
from shapely import STRtree
from shapely.errors import GEOSException
from shapely.geometry import Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from hullzones.services.grid_sampler import SamplePoint
from hullzones.services.zone_errors import CalculationCancelledError, NoCandidateAreaError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
CancelCheck = Callable[[], bool]

GEOMETRY_ERRORS = (GEOSException, ValueError, TypeError)


@dataclass
class ZoneCandidate:
    """A unioned cluster of point disks."""
    geometry: BaseGeometry
    point_count: int


class ZoneSynthesizer:
    """Buffers points into disks, clusters connected disks and unions each cluster."""

    def __init__(
        self,
        buffer_size: float = 0.004,
        link_distance: float = 0.0075,
        quad_segments: int = 6,
        batch_size: int = 100,
    ):
        if buffer_size <= 0:
            raise ValueError("buffer_size must be positive")
        self.buffer_size = buffer_size
        self.link_distance = link_distance
        self.quad_segments = quad_segments
        self.batch_size = max(1, batch_size)

    def buffer_points(
        self,
        points: Sequence[SamplePoint],
        progress_callback: Optional[ProgressCallback] = None,
        progress_range: tuple[int, int] = (70, 80),
    ) -> list[Polygon]:
        """Buffer every point into a disk polygon of radius `buffer_size`."""
        disks: list[Polygon] = []
        start_pct, end_pct = progress_range
        total = len(points)

        for i in range(0, total, self.batch_size):
            batch = points[i:i + self.batch_size]
            disks.extend(
                Point(p.x, p.y).buffer(self.buffer_size, quad_segs=self.quad_segments)
                for p in batch
            )
            if progress_callback is not None:
                pct = start_pct + int(i / total * (end_pct - start_pct))
                progress_callback(pct, f"Creating zones ({i}/{total} points processed)")

        return disks

    def cluster(
        self,
        disks: Sequence[Polygon],
        centres: Optional[np.ndarray] = None,
    ) -> list[list[int]]:
        """
        Group disks into connected clusters (breadth-first).

        Returns:
            Lists of disk indices, one per cluster, in discovery order
        """
        n = len(disks)
        if n == 0:
            return []
        if centres is None:
            centres = np.array([[d.centroid.x, d.centroid.y] for d in disks])

        kdtree = cKDTree(centres)
        strtree = STRtree(list(disks))

        visited = np.zeros(n, dtype=bool)
        clusters: list[list[int]] = []

        for seed in range(n):
            if visited[seed]:
                continue
            visited[seed] = True
            members = [seed]
            queue = deque([seed])

            while queue:
                current = queue.popleft()
                near = kdtree.query_ball_point(centres[current], self.link_distance)
                overlapping = strtree.query(disks[current], predicate="intersects")

                for j in set(near).union(int(k) for k in overlapping):
                    if visited[j]:
                        continue
                    visited[j] = True
                    members.append(j)
                    queue.append(j)

            clusters.append(members)

        logger.info(f"Clustered {n} disks into {len(clusters)} clusters")
        return clusters

    def union_cluster(self, disks: Sequence[Polygon]) -> Optional[BaseGeometry]:
        """
        Union one cluster of disks.

        A single unary union is tried first; if GEOS fails, disks are folded
        pairwise, skipping pairs that fail. A cluster whose very first
        pairwise union fails is dropped (None).
        """
        if len(disks) == 1:
            return disks[0]
        try:
            return unary_union(list(disks))
        except GEOSException as e:
            logger.warning(f"Unary union of {len(disks)} disks failed ({e}), folding pairwise")

        merged = disks[0]
        for i, disk in enumerate(disks[1:], start=1):
            try:
                merged = merged.union(disk)
            except GEOMETRY_ERRORS as e:
                if i == 1:
                    logger.warning(f"Error merging cluster, dropping it: {e}")
                    return None
                logger.warning(f"Error merging disk {i} into cluster: {e}")
        return merged

    def synthesize(
        self,
        points: Sequence[SamplePoint],
        progress_callback: Optional[ProgressCallback] = None,
        should_cancel: Optional[CancelCheck] = None,
    ) -> list[ZoneCandidate]:
        """
        Turn accepted points into zone candidates, one per cluster.

        Raises:
            NoCandidateAreaError: If there are no points
            CalculationCancelledError: If cancellation is requested between clusters
        """
        if not points:
            raise NoCandidateAreaError("No valid points found for zone creation")

        disks = self.buffer_points(points, progress_callback)
        centres = np.array([[p.x, p.y] for p in points], dtype=float)
        clusters = self.cluster(disks, centres)

        candidates: list[ZoneCandidate] = []
        for n, members in enumerate(clusters):
            if should_cancel is not None and should_cancel():
                raise CalculationCancelledError(
                    f"Zone synthesis cancelled after {n}/{len(clusters)} clusters"
                )
            merged = self.union_cluster([disks[i] for i in members])
            if merged is None or merged.is_empty:
                continue
            candidates.append(ZoneCandidate(geometry=merged, point_count=len(members)))

        logger.info(f"Synthesized {len(candidates)} zone candidates from {len(points)} points")
        return candidates
