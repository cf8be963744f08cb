"""
Calculation session: status tracking for the one global zone calculation.

The session runs the calculator on a background thread and exposes a status
snapshot that can be polled while the run is in flight. Only one
calculation may be in progress at a time. A wall-clock timeout marks the run
failed and asks the calculator to stop at its next checkpoint; geometry
operations already underway cannot be interrupted, so a run that finishes
after its timeout is discarded rather than reported.
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Any, Optional

from hullzones.config import get_settings
from hullzones.schemas.zone import (
    STAGE_PROGRESS,
    CalculationStage,
    CalculationState,
    CalculationStatus,
    ZoneCalculationResult,
)
from hullzones.services.zone_calculator import ZoneCalculator
from hullzones.services.zone_errors import ZoneCalculationError

logger = logging.getLogger(__name__)


def stage_for_progress(pct: int) -> CalculationStage:
    """Latest stage whose boundary percentage has been reached."""
    reached = CalculationStage.IDLE
    for stage, boundary in STAGE_PROGRESS.items():
        if pct >= boundary and boundary >= STAGE_PROGRESS[reached]:
            reached = stage
    return reached


class CalculationSession:
    """Owns the status of the current/last zone calculation."""

    def __init__(
        self,
        calculator: Optional[ZoneCalculator] = None,
        timeout_s: Optional[float] = None,
    ):
        self.calculator = calculator or ZoneCalculator()
        self.timeout_s = timeout_s if timeout_s is not None else get_settings().calculation_timeout_s

        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._timer: Optional[threading.Timer] = None
        self._run_id = 0

        self._state = CalculationState.IDLE
        self._stage = CalculationStage.IDLE
        self._progress = 0
        self._message: Optional[str] = None
        self._last_started: Optional[datetime] = None
        self._last_completed: Optional[datetime] = None
        self._error: Optional[str] = None
        self._result: Optional[ZoneCalculationResult] = None

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._state == CalculationState.RUNNING

    @property
    def result(self) -> Optional[ZoneCalculationResult]:
        """Result of the last successful run."""
        with self._lock:
            return self._result

    def status(self) -> CalculationStatus:
        """Immutable snapshot of the session status."""
        with self._lock:
            return CalculationStatus(
                state=self._state,
                in_progress=self._state == CalculationState.RUNNING,
                stage=self._stage,
                progress=self._progress,
                message=self._message,
                last_started=self._last_started,
                last_completed=self._last_completed,
                error=self._error,
                zone_count=len(self._result.features) if self._result is not None else None,
            )

    def start(
        self,
        constraint_set: dict[str, Any],
        study_area: Any,
        land_features: Optional[list[Any]] = None,
        **options: Any,
    ) -> bool:
        """
        Start a calculation on a background thread.

        Options are passed through to ZoneCalculator.compute_zones
        (grid_resolution, buffer_size, force_recalculate).

        Returns:
            False if a calculation is already in progress, True otherwise
        """
        with self._lock:
            if self._state == CalculationState.RUNNING:
                logger.info("Zone calculation already in progress, not starting another")
                return False
            self._run_id += 1
            run_id = self._run_id
            self._cancel = threading.Event()
            self._state = CalculationState.RUNNING
            self._stage = CalculationStage.INITIALIZING
            self._progress = 0
            self._message = "Calculation started"
            self._last_started = datetime.now(timezone.utc)
            self._error = None

        self._thread = threading.Thread(
            target=self._execute,
            args=(run_id, self._cancel, constraint_set, study_area, land_features, options),
            name=f"zone-calculation-{run_id}",
            daemon=True,
        )
        if self.timeout_s and self.timeout_s > 0:
            self._timer = threading.Timer(self.timeout_s, self._on_timeout, args=(run_id,))
            self._timer.daemon = True
            self._timer.start()
        self._thread.start()
        logger.info(f"Zone calculation {run_id} started")
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the worker thread; True if it has finished."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def cancel(self, reason: str = "Calculation cancelled") -> None:
        """Request cooperative cancellation and mark the run failed."""
        with self._lock:
            self._cancel.set()
            if self._state == CalculationState.RUNNING:
                self._fail_locked(reason)

    def reset(self) -> None:
        """Clear status and cancel any in-flight run."""
        with self._lock:
            self._cancel.set()
            self._run_id += 1
            self._state = CalculationState.IDLE
            self._stage = CalculationStage.IDLE
            self._progress = 0
            self._message = None
            self._error = None
        logger.info("Zone calculation status reset")

    def _fail_locked(self, reason: str) -> None:
        self._state = CalculationState.FAILED
        self._stage = CalculationStage.FAILED
        self._error = reason
        self._message = reason

    def _on_progress(self, run_id: int, pct: int, message: str) -> None:
        with self._lock:
            if run_id != self._run_id or self._state != CalculationState.RUNNING:
                return
            self._progress = max(self._progress, pct)
            self._stage = stage_for_progress(self._progress)
            self._message = message
        logger.info(f"Zone calculation: {pct}% - {message}")

    def _on_timeout(self, run_id: int) -> None:
        with self._lock:
            if run_id != self._run_id or self._state != CalculationState.RUNNING:
                return
            self._cancel.set()
            self._fail_locked(f"Calculation timed out after {self.timeout_s:g} seconds")
        logger.error(f"Zone calculation {run_id} timed out after {self.timeout_s:g}s")

    def _execute(
        self,
        run_id: int,
        cancel: threading.Event,
        constraint_set: dict[str, Any],
        study_area: Any,
        land_features: Optional[list[Any]],
        options: dict[str, Any],
    ) -> None:
        try:
            result = self.calculator.compute_zones(
                constraint_set,
                study_area,
                land_features,
                progress_callback=lambda pct, msg: self._on_progress(run_id, pct, msg),
                should_cancel=cancel.is_set,
                **options,
            )
        except ZoneCalculationError as e:
            logger.error(f"Zone calculation {run_id} failed: {e}")
            self._finish_failed(run_id, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error in zone calculation {run_id}: {e}")
            self._finish_failed(run_id, f"Unexpected error: {e}")
        else:
            with self._lock:
                if run_id == self._run_id and self._state == CalculationState.RUNNING:
                    self._state = CalculationState.COMPLETED
                    self._stage = CalculationStage.COMPLETED
                    self._progress = 100
                    self._message = "Calculation complete"
                    self._last_completed = datetime.now(timezone.utc)
                    self._result = result
                    logger.info(f"Zone calculation {run_id} completed successfully")
                else:
                    logger.warning(f"Discarding result of zone calculation {run_id} (timed out or superseded)")
        finally:
            timer = self._timer
            if timer is not None and run_id == self._run_id:
                timer.cancel()

    def _finish_failed(self, run_id: int, reason: str) -> None:
        with self._lock:
            if run_id != self._run_id:
                return
            if self._state == CalculationState.RUNNING:
                self._fail_locked(reason)
