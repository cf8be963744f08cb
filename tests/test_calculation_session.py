"""
Tests for the background calculation session.
"""
import threading
import time
from datetime import datetime, timezone

import pytest

from hullzones.schemas.zone import (
    CalculationMetadata,
    CalculationStage,
    CalculationState,
    ZoneCalculationResult,
)
from hullzones.services.calculation_session import CalculationSession, stage_for_progress
from hullzones.services.zone_calculator import ZoneCalculator
from hullzones.services.zone_errors import CalculationCancelledError, NoCandidateAreaError


def empty_result() -> ZoneCalculationResult:
    return ZoneCalculationResult(
        features=[],
        metadata=CalculationMetadata(
            calculation_time_ms=1,
            total_candidate_points=0,
            constraints_processed=0,
            grid_resolution=0.005,
        ),
    )


class BlockingCalculator:
    """Fake calculator that reports progress then waits for release."""

    def __init__(self, honour_cancel: bool = True, error: Exception = None):
        self.release = threading.Event()
        self.started = threading.Event()
        self.honour_cancel = honour_cancel
        self.error = error
        self.result = empty_result()

    def compute_zones(self, constraint_set, study_area, land_features=None,
                      progress_callback=None, should_cancel=None, **options):
        self.options = options
        progress_callback(40, "Processing grid (0 valid points found)")
        self.started.set()
        while not self.release.wait(0.01):
            if self.honour_cancel and should_cancel():
                raise CalculationCancelledError("cancelled")
        if self.error is not None:
            raise self.error
        return self.result


def wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestStageForProgress:
    @pytest.mark.parametrize("pct, stage", [
        (0, CalculationStage.IDLE),
        (5, CalculationStage.INITIALIZING),
        (45, CalculationStage.SAMPLING),
        (70, CalculationStage.SYNTHESIZING),
        (99, CalculationStage.FINALIZING),
        (100, CalculationStage.COMPLETED),
    ])
    def test_stage_boundaries(self, pct, stage):
        assert stage_for_progress(pct) == stage


class TestCalculationSession:
    """Lifecycle tests for CalculationSession."""

    def test_initial_status_is_idle(self):
        session = CalculationSession(calculator=BlockingCalculator(), timeout_s=0)
        status = session.status()

        assert status.state == CalculationState.IDLE
        assert not status.in_progress
        assert status.progress == 0
        assert session.result is None

    def test_successful_run(self):
        calculator = BlockingCalculator()
        session = CalculationSession(calculator=calculator, timeout_s=0)

        assert session.start({}, {}, [], grid_resolution=0.01)
        assert calculator.started.wait(5)

        running = session.status()
        assert running.in_progress
        assert running.stage == CalculationStage.SAMPLING
        assert running.progress == 40
        assert running.last_started is not None

        calculator.release.set()
        assert session.wait(5)

        status = session.status()
        assert status.state == CalculationState.COMPLETED
        assert status.progress == 100
        assert status.zone_count == 0
        assert status.last_completed is not None
        assert session.result is calculator.result
        assert calculator.options == {"grid_resolution": 0.01}

    def test_second_start_is_rejected_while_running(self):
        calculator = BlockingCalculator()
        session = CalculationSession(calculator=calculator, timeout_s=0)

        assert session.start({}, {})
        assert calculator.started.wait(5)
        assert session.start({}, {}) is False

        calculator.release.set()
        assert session.wait(5)

    def test_failure_is_recorded(self):
        calculator = BlockingCalculator(error=NoCandidateAreaError("No candidate area found"))
        calculator.release.set()
        session = CalculationSession(calculator=calculator, timeout_s=0)

        session.start({}, {})
        assert session.wait(5)

        status = session.status()
        assert status.state == CalculationState.FAILED
        assert status.stage == CalculationStage.FAILED
        assert status.error == "No candidate area found"
        assert session.result is None

    def test_unexpected_error_is_recorded(self):
        calculator = BlockingCalculator(error=RuntimeError("boom"))
        calculator.release.set()
        session = CalculationSession(calculator=calculator, timeout_s=0)

        session.start({}, {})
        assert session.wait(5)
        assert session.status().error == "Unexpected error: boom"

    def test_timeout_fails_the_run_and_cancels(self):
        calculator = BlockingCalculator(honour_cancel=True)
        session = CalculationSession(calculator=calculator, timeout_s=0.05)

        session.start({}, {})
        assert wait_until(lambda: not session.in_progress)

        status = session.status()
        assert status.state == CalculationState.FAILED
        assert "timed out" in status.error
        assert session.wait(5)

    def test_late_result_after_timeout_is_discarded(self):
        calculator = BlockingCalculator(honour_cancel=False)
        session = CalculationSession(calculator=calculator, timeout_s=0.05)

        session.start({}, {})
        assert wait_until(lambda: not session.in_progress)

        calculator.release.set()
        assert session.wait(5)

        assert session.status().state == CalculationState.FAILED
        assert session.result is None

    def test_cancel(self):
        calculator = BlockingCalculator()
        session = CalculationSession(calculator=calculator, timeout_s=0)

        session.start({}, {})
        assert calculator.started.wait(5)
        session.cancel("Stopped by operator")

        assert session.wait(5)
        status = session.status()
        assert status.state == CalculationState.FAILED
        assert status.error == "Stopped by operator"

    def test_reset_allows_a_new_run(self):
        calculator = BlockingCalculator()
        session = CalculationSession(calculator=calculator, timeout_s=0)

        session.start({}, {})
        assert calculator.started.wait(5)
        session.reset()

        assert session.status().state == CalculationState.IDLE
        assert session.wait(5)
        assert session.status().state == CalculationState.IDLE

    def test_real_calculation(self, test_settings, unit_square):
        session = CalculationSession(calculator=ZoneCalculator(settings=test_settings), timeout_s=30)

        assert session.start({}, unit_square)
        assert session.wait(30)

        status = session.status()
        assert status.state == CalculationState.COMPLETED
        assert status.zone_count == 1
        assert session.result.features[0].properties.id == "zone_1"
        assert status.last_completed <= datetime.now(timezone.utc)
