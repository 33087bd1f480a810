"""Tests for the scrolling status display."""

import pytest

from drillrig.core import StatusDisplay
from drillrig.core.devices import Display


def header():
    return ["Phase: IDLE", "Step: 0"]


class TestStatusDisplay:
    """Tests for StatusDisplay."""

    def test_capacity_excludes_header(self) -> None:
        """Test the default bound leaves 20 log lines under a 3-line header."""
        display = StatusDisplay(max_lines=23, header=header)
        assert display.header_size == 3
        assert display.capacity == 20

    def test_oldest_lines_evicted(self) -> None:
        """Test lines beyond the bound drop oldest first."""
        display = StatusDisplay(max_lines=23, header=header)
        for i in range(25):
            display.write(f"line {i}")
        assert display.lines == [f"line {i}" for i in range(5, 25)]

    def test_reset_then_write_round_trip(self) -> None:
        """Test N lines written after a reset come back in order after the header."""
        display = StatusDisplay(max_lines=23, header=header)
        display.write("old")
        display.reset()

        written = [f"msg {i}" for i in range(7)]
        for line in written:
            display.write(line)

        assert display.lines == written
        assert display.text == "\n".join(header() + [""] + written)

    def test_reset_directive(self) -> None:
        """Test writing 'reset' clears instead of appending."""
        display = StatusDisplay(header=header)
        display.write("one")
        display.write("reset")
        assert display.lines == []

    def test_empty_message_not_logged(self) -> None:
        display = StatusDisplay(header=header)
        display.write("")
        assert display.lines == []

    def test_mirrors_to_panel(self) -> None:
        """Test rendering pushes text to the bound panel."""
        panel = Display("LCD")
        display = StatusDisplay(panel, header=header)
        display.write("hello")
        assert panel.text == "Phase: IDLE\nStep: 0\n\nhello"

    def test_without_panel_keeps_text(self) -> None:
        display = StatusDisplay(None, header=header)
        display.write("hello")
        assert display.text.endswith("hello")

    def test_bound_too_small(self) -> None:
        with pytest.raises(ValueError):
            StatusDisplay(max_lines=3, header=header)
