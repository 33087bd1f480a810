"""Tests for the rig system log."""

import json
from pathlib import Path

import pytest

from drillrig.api import logger as logger_module
from drillrig.api.logger import (
    RigLogger, LogCategory, LogLevel, attach_controller, log_exception
)
from drillrig.core import RigController


@pytest.fixture
def syslog():
    log = RigLogger()
    yield log
    log.close()


class TestLogFiles:
    """Tests for the rotating log files."""

    def test_writes_text_and_jsonl(self, syslog: RigLogger, tmp_path: Path) -> None:
        syslog.configure_files(str(tmp_path))
        syslog.system("Rig controller initialized", source="main")
        syslog.close()

        text = (tmp_path / "drillrig.log").read_text(encoding='utf-8')
        assert "[INFO] [SYSTEM] [main] Rig controller initialized" in text

        line = (tmp_path / "drillrig.jsonl").read_text(encoding='utf-8').splitlines()[-1]
        record = json.loads(line)
        assert record['category'] == 'SYSTEM'
        assert record['message'] == "Rig controller initialized"

    def test_files_rotate(self, syslog: RigLogger, tmp_path: Path) -> None:
        """Test both files roll over once they pass max_bytes."""
        syslog.configure_files(str(tmp_path), max_bytes=2000, backup_count=2)
        for i in range(200):
            syslog.sequence(f"line {i:03d} " + "x" * 90)
        syslog.close()

        assert (tmp_path / "drillrig.log.1").exists()
        assert (tmp_path / "drillrig.jsonl.1").exists()
        assert not (tmp_path / "drillrig.log.3").exists()
        assert (tmp_path / "drillrig.log").stat().st_size <= 2000
        assert (tmp_path / "drillrig.jsonl").stat().st_size <= 2000

    def test_buffer_only_without_files(self, syslog: RigLogger, tmp_path: Path) -> None:
        syslog.command("Queued command drill")
        assert len(syslog.buffer) == 1
        assert list(tmp_path.iterdir()) == []


class TestRigContext:
    """Tests for phase and step stamping."""

    def test_entries_carry_phase_and_step(self, syslog: RigLogger,
                                          controller: RigController, tmp_path: Path) -> None:
        syslog.configure_files(str(tmp_path))
        attach_controller(controller, syslog)

        controller.tick("conveyor")
        syslog.device("top piston moved", source="api")
        syslog.close()

        step_line = syslog.get_logs(search="Moving all blocks")[0]
        assert (step_line['phase'], step_line['step']) == ('PRINT_CONVEYOR', 0)

        latest = syslog.get_logs(category='DEVICE')[-1]
        assert (latest['phase'], latest['step']) == ('PRINT_CONVEYOR', 1)

        text = (tmp_path / "drillrig.log").read_text(encoding='utf-8')
        assert "[PRINT_CONVEYOR:0] [rig] Moving all blocks to starting positions" in text

    def test_controller_warnings_keep_level(self, syslog: RigLogger,
                                            controller: RigController) -> None:
        attach_controller(controller, syslog)
        controller.tick("dig")

        warnings = syslog.get_logs(level='WARNING')
        assert [entry['message'] for entry in warnings] == ["Unrecognized command: 'dig'"]
        assert warnings[0]['phase'] == 'IDLE'

    def test_unbound_entries_have_no_phase(self, syslog: RigLogger) -> None:
        entry = syslog.system("starting")
        assert entry.phase is None
        assert str(entry).endswith("[INFO] [SYSTEM] starting")


class TestQueries:
    """Tests for reading entries back."""

    def test_level_threshold(self, syslog: RigLogger) -> None:
        syslog.sequence("debug", level=LogLevel.DEBUG)
        syslog.sequence("info")
        syslog.sequence("error", level=LogLevel.ERROR)

        messages = [e['message'] for e in syslog.get_logs(level='INFO')]
        assert messages == ["info", "error"]

    def test_since_id_and_limit(self, syslog: RigLogger) -> None:
        first = syslog.system("one")
        syslog.system("two")
        syslog.system("three")

        assert [e['message'] for e in syslog.get_logs(since_id=first.id)] == ["two", "three"]
        assert [e['message'] for e in syslog.get_logs(limit=1)] == ["three"]

    @pytest.mark.parametrize("kwargs", [
        {'level': 'LOUD'}, {'category': 'NOISE'}, {'phase': 'DIGGING'},
    ])
    def test_unknown_filters(self, syslog: RigLogger, kwargs) -> None:
        with pytest.raises(ValueError):
            syslog.get_logs(**kwargs)

    def test_ring_is_bounded(self) -> None:
        syslog = RigLogger(max_entries=3)
        for i in range(5):
            syslog.system(f"msg {i}")
        assert [e['message'] for e in syslog.get_logs()] == ["msg 2", "msg 3", "msg 4"]


class TestExceptions:
    """Tests for exception logging."""

    def test_log_exception(self, monkeypatch, syslog: RigLogger) -> None:
        monkeypatch.setattr(logger_module, 'logger', syslog)
        try:
            raise ValueError("bad epsilon")
        except ValueError as e:
            entry = log_exception("Invalid configuration", e, source="main")

        assert entry.category == LogCategory.ERROR
        assert entry.level == LogLevel.ERROR
        assert entry.message == "Invalid configuration: bad epsilon"
        assert entry.details['exception_type'] == 'ValueError'
        assert "bad epsilon" in entry.details['traceback']
