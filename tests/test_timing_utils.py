import pytest

from jdsd.timing_utils import SimulationTimer


class TestSimulationTimer:

    def test_nested_sections(self):
        timer = SimulationTimer()
        for _ in range(3):
            with timer.section("frame"):
                with timer.section("inversion"):
                    pass
                with timer.section("thermal"):
                    pass
        stats = timer.get_statistics()
        assert stats["frame"].num_calls == 3
        assert stats["frame"].parent == ""
        assert stats["inversion"].parent == "frame"
        assert stats["thermal"].depth == 1
        assert stats["frame"].percent_total == pytest.approx(100.0)
        assert stats["frame"].total_time >= stats["inversion"].total_time + stats["thermal"].total_time

    def test_recursive_start_is_counted_once(self):
        timer = SimulationTimer()
        timer.start("solve")
        timer.start("solve")
        timer.stop("solve")
        timer.stop("solve")
        assert timer.get_statistics()["solve"].num_calls == 1
        assert timer.get_statistics()["solve"].parent == ""

    def test_stop_without_start(self):
        timer = SimulationTimer()
        timer.stop("never")
        assert timer.get_statistics() == {}

    def test_reset_and_summary(self):
        timer = SimulationTimer()
        with timer.section("frame"):
            pass
        timer.log_summary()
        assert timer.get_section_time("frame") >= 0.0
        timer.reset()
        assert timer.get_section_time("frame") == 0.0
        timer.log_summary()
