"""Tests for shared data types."""

from datetime import datetime, timezone

import pytest

from network_inventory._types import (
    BUILTIN_PROFILES,
    DEFAULT_PROFILE,
    DeviceCategory,
    DeviceRecord,
    HardwareInfo,
    OSFamily,
    PortProfile,
    ReachStatus,
    ScanJob,
    ScanState,
)


class TestPortProfile:
    """Tests for port profiles."""

    def test_default_profile_ports(self):
        assert DEFAULT_PROFILE.sorted_ports() == [
            21, 22, 23, 80, 139, 443, 445, 554, 3389, 5060, 8080, 9100,
        ]

    def test_builtin_names(self):
        assert set(BUILTIN_PROFILES) == {"Default", "IoT", "VoIP", "Surveillance"}

    @pytest.mark.parametrize("port", [0, 65536, -1])
    def test_invalid_port(self, port):
        with pytest.raises(ValueError):
            PortProfile("Bad", frozenset({port}))


class TestScanState:
    """Tests for scan state helpers."""

    @pytest.mark.parametrize("state,terminal", [
        (ScanState.PENDING, False),
        (ScanState.RUNNING, False),
        (ScanState.COMPLETED, True),
        (ScanState.CANCELLED, True),
        (ScanState.FAILED, True),
    ])
    def test_is_terminal(self, state, terminal):
        assert state.is_terminal is terminal


class TestDeviceRecord:
    """Tests for DeviceRecord."""

    def test_defaults(self):
        """A bare record is an unreachable placeholder."""
        record = DeviceRecord(ip_address="10.0.0.1")

        assert record.reachable is False
        assert record.hostname == "-"
        assert record.mac_address == "-"
        assert record.vendor == "Unknown"
        assert record.category == DeviceCategory.OFFLINE_DEVICE
        assert record.hardware == HardwareInfo()

    def test_to_dict_is_flat(self):
        record = DeviceRecord(
            ip_address="10.0.0.1",
            status=ReachStatus.OK,
            open_ports=(22, 80),
            os_hint=OSFamily.UNIX,
            hardware=HardwareInfo(model="Pi 4"),
            scanned_at=datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc),
        )

        row = record.to_dict()

        assert row["status"] == "OK"
        assert row["open_ports"] == [22, 80]
        assert row["os_hint"] == "Unix/Linux"
        assert row["model"] == "Pi 4"
        assert row["memory"] == "-"
        assert row["scanned_at"] == "2024-03-01T12:00:00+00:00"
        assert "hardware" not in row

    def test_from_dict_fills_missing(self):
        record = DeviceRecord.from_dict({"ip_address": "10.0.0.2", "model": None, "open_ports": ["443", 22]})

        assert record.status == ReachStatus.UNREACHABLE
        assert record.open_ports == (22, 443)
        assert record.hardware.model == "-"

    def test_records_are_immutable(self):
        record = DeviceRecord(ip_address="10.0.0.1")

        with pytest.raises(AttributeError):
            record.hostname = "changed"


class TestScanJob:
    """Tests for ScanJob."""

    def test_total_follows_addresses(self):
        job = ScanJob(range_expression="x", addresses=("10.0.0.1", "10.0.0.2"))

        assert job.total == 2
        assert job.state == ScanState.PENDING

    def test_to_dict(self):
        job = ScanJob(range_expression="10.0.0.0/30")
        data = job.to_dict()

        assert data["range"] == "10.0.0.0/30"
        assert data["profile"] == "Default"
        assert data["state"] == "pending"
        assert data["completed_at"] is None
        assert data["scan_id"] == job.scan_id
