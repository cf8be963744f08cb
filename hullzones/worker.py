"""
Zone calculation worker.

Loads a combined constraint payload from disk, runs one zone calculation
through the calculation session and writes the resulting FeatureCollection.

For each run it:
1. Splits the payload into constraint set, study area and land features
2. Starts the calculation (served from cache unless --force)
3. Polls the session, logging progress, until it completes or fails
4. Writes the result and archives it under the zones directory

Run with: python -m hullzones.worker --data constraints.json
"""
import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from hullzones.config import get_settings
from hullzones.schemas.zone import CalculationState
from hullzones.services.calculation_session import CalculationSession
from hullzones.services.constraint_loader import load_constraint_file, split_constraint_data
from hullzones.services.zone_cache import FileZoneCache, ZoneResultStore
from hullzones.services.zone_calculator import ZoneCalculator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.5


class ZoneWorker:
    """Runs a single zone calculation job."""

    def __init__(self, session: Optional[CalculationSession] = None):
        """Initialize worker."""
        settings = get_settings()
        self.session = session or CalculationSession(
            calculator=ZoneCalculator(
                settings=settings,
                cache=FileZoneCache(settings.cache_dir),
                result_store=ZoneResultStore(settings.zones_dir),
            ),
        )
        self.should_shutdown = False
        self.shutdown_reason: Optional[str] = None

    def setup_signal_handlers(self):
        """Set up signal handlers for graceful shutdown."""
        def handle_signal(signum, frame):
            # Only flag here; the polling loop takes the session lock
            self.shutdown_reason = f"Cancelled by signal {signum}"
            self.should_shutdown = True

        signal.signal(signal.SIGTERM, handle_signal)
        signal.signal(signal.SIGINT, handle_signal)

    def run(
        self,
        data_path: Path,
        output_path: Optional[Path] = None,
        grid_resolution: Optional[float] = None,
        buffer_size: Optional[float] = None,
        force_recalculate: bool = False,
    ) -> int:
        """
        Run the calculation and write its result.

        Returns:
            Process exit code (0 on success)
        """
        try:
            data = load_constraint_file(data_path)
        except (OSError, ValueError) as e:
            logger.error(f"Could not load constraint data: {e}")
            return 2

        inputs = split_constraint_data(data)
        logger.info(
            f"Loaded {len(inputs.constraint_set)} constraint categories, "
            f"{len(inputs.land_features)} land features from {data_path}"
        )

        started = self.session.start(
            inputs.constraint_set,
            inputs.study_area,
            inputs.land_features,
            grid_resolution=grid_resolution,
            buffer_size=buffer_size,
            force_recalculate=force_recalculate,
        )
        if not started:
            logger.error("A zone calculation is already in progress")
            return 1

        while not self.session.wait(POLL_INTERVAL_S):
            if self.should_shutdown and self.session.in_progress:
                logger.info(f"{self.shutdown_reason}, cancelling calculation...")
                self.session.cancel(self.shutdown_reason or "Cancelled by signal")
            if not self.session.in_progress:
                # Timed out or cancelled; the thread finishes on its own
                break

        status = self.session.status()
        if status.state != CalculationState.COMPLETED or self.session.result is None:
            logger.error(f"Zone calculation failed: {status.error}")
            return 1

        result = self.session.result
        if output_path is not None:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_text(json.dumps(result.to_geojson(), indent=2), encoding="utf-8")
            logger.info(f"Wrote {len(result.features)} zones to {output_path}")
        else:
            logger.info(f"Calculation produced {len(result.features)} zones")
        return 0


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Calculate recommended hull cleaning zones.")
    parser.add_argument("--data", type=Path, required=True, help="Combined constraint data JSON file")
    parser.add_argument("--output", type=Path, default=None, help="Where to write the zone FeatureCollection")
    parser.add_argument("--grid-resolution", type=float, default=None, help="Base grid resolution (degrees)")
    parser.add_argument("--buffer-size", type=float, default=None, help="Point disk radius (degrees)")
    parser.add_argument("--force", action="store_true", help="Ignore cached results")
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for worker."""
    args = parse_args(argv)
    worker = ZoneWorker()
    worker.setup_signal_handlers()
    try:
        return worker.run(
            args.data,
            output_path=args.output,
            grid_resolution=args.grid_resolution,
            buffer_size=args.buffer_size,
            force_recalculate=args.force,
        )
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
