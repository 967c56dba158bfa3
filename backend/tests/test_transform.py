"""Tests for Lytx event transformation."""

from datetime import UTC, datetime

import pytest

from safety_sync.services.lytx_client import LytxClientError
from safety_sync.services.transform import (
    CARRIER_GSF,
    CARRIER_STEVEMACS,
    DEFAULT_STATUS_LABEL,
    STATUS_LABELS,
    ReferenceData,
    TransformError,
    determine_carrier,
    determine_event_type,
    extract_vehicle_registration,
    map_group_to_depot,
    map_status,
    map_timezone,
    parse_datetime,
    transform_event,
)

DASHBOARD_LABELS = {"New", "Face-To-Face", "FYI Notify", "Resolved"}


class TestMapStatus:
    """Tests for status code mapping."""

    @pytest.mark.parametrize(
        "status_id,expected",
        [
            (1, "New"),
            (2, "New"),
            (3, "Face-To-Face"),
            (4, "Face-To-Face"),
            (5, "FYI Notify"),
            (6, "FYI Notify"),
            (7, "Resolved"),
        ],
    )
    def test_known_codes(self, status_id, expected):
        assert map_status(status_id) == expected

    def test_code_wins_over_text(self):
        """Test a known code ignores contradicting status text."""
        assert map_status(7, "New") == "Resolved"

    def test_unknown_code_falls_back_to_text(self):
        assert map_status(99, "FYI Notify") == "FYI Notify"
        assert map_status(None, "Closed") == "Resolved"
        assert map_status(None, "Coaching session booked") == "Face-To-Face"

    def test_unknown_code_and_text_is_default(self):
        assert map_status(99) == DEFAULT_STATUS_LABEL
        assert map_status(None, "something else") == DEFAULT_STATUS_LABEL
        assert map_status(None, None) == DEFAULT_STATUS_LABEL

    def test_every_input_maps_to_a_dashboard_label(self):
        """Test mapping is total over codes and never raises."""
        for status_id in range(-5, 50):
            assert map_status(status_id) in DASHBOARD_LABELS
        assert set(STATUS_LABELS.values()) == DASHBOARD_LABELS


class TestFieldHelpers:
    """Tests for the per-field mapping helpers."""

    def test_depot_from_group(self):
        assert map_group_to_depot("GSF Kalgoorlie") == "Kalgoorlie"
        assert map_group_to_depot("stevemacs KEWDALE yard") == "Kewdale"

    def test_depot_unknown_group_passes_through(self):
        assert map_group_to_depot("Head Office") == "Head Office"
        assert map_group_to_depot(None) is None

    def test_carrier(self):
        assert determine_carrier("Stevemacs Bulk") == CARRIER_STEVEMACS
        assert determine_carrier("SMB Fleet") == CARRIER_STEVEMACS
        assert determine_carrier("Kewdale") == CARRIER_STEVEMACS
        assert determine_carrier("GSF Albany") == CARRIER_GSF
        assert determine_carrier(None) == CARRIER_GSF

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("Prime Mover 1GLD510", "1GLD510"),
            ("Tanker ABC123", "ABC123"),
            ("Trailer 123ABC", "123ABC"),
            ("unnamed", "unnamed"),
            (None, None),
        ],
    )
    def test_vehicle_registration(self, name, expected):
        assert extract_vehicle_registration(name) == expected

    def test_timezone(self):
        assert map_timezone("Australia/Perth") == "AUW"
        assert map_timezone("UTC") == "UTC"
        assert map_timezone(None) is None

    def test_event_type(self):
        assert determine_event_type("Driver Tagged") == "Driver Tagged"
        assert determine_event_type("Braking") == "Coachable"
        assert determine_event_type(None) == "Coachable"

    def test_parse_datetime(self):
        expected = datetime(2026, 10, 18, 2, 30, tzinfo=UTC)
        assert parse_datetime("2026-10-18T02:30:00Z") == expected
        assert parse_datetime("2026-10-18T10:30:00+08:00") == expected
        assert parse_datetime("2026-10-18T02:30:00") == expected

    def test_parse_datetime_invalid(self):
        assert parse_datetime("yesterday") is None
        assert parse_datetime("") is None
        assert parse_datetime(None) is None

    @pytest.mark.parametrize(
        "value", ["0001-01-01T00:00:00+01:00", "9999-12-31T23:59:59-01:00"]
    )
    def test_parse_datetime_out_of_range(self, value):
        """Test offsets that push the value past datetime.min/max."""
        assert parse_datetime(value) is None


class TestTransformEvent:
    """Tests for transform_event."""

    def test_transform_full_event(self, event_factory, sample_datetime):
        """Test transform of a complete event without reference data."""
        values = transform_event(event_factory("EV1"))

        assert values["event_id"] == "EV1"
        assert values["vehicle_id"] == "V-1"
        assert values["device_serial"] == "QM40999887"
        assert values["driver_name"] == "Jane Citizen"
        assert values["employee_id"] == "E1001"
        assert values["depot"] == "Kalgoorlie"
        assert values["carrier"] == CARRIER_GSF
        assert values["event_datetime"] == sample_datetime
        assert values["timezone"] == "AUW"
        assert values["score"] == 4
        assert values["status_id"] == 1
        assert values["status"] == "New"
        assert values["trigger"] == "Braking"
        assert values["behaviors"] == ["No Seat Belt"]
        assert values["event_type"] == "Coachable"
        assert values["excluded"] is False
        assert values["notes"] is None

    def test_raw_data_is_the_payload(self, event_factory):
        payload = event_factory("EV1", unexpectedField={"nested": [1, 2]})
        values = transform_event(payload)
        assert values["raw_data"] == payload

    def test_resolved_status(self, event_factory):
        values = transform_event(event_factory("EV1", statusId=7, status="Resolved"))
        assert values["status"] == "Resolved"

    def test_falls_back_to_internal_id(self, event_factory):
        values = transform_event(event_factory("EV1", eventId=None, id="internal-9"))
        assert values["event_id"] == "internal-9"

    def test_numeric_ids_are_text(self, event_factory):
        values = transform_event(event_factory(12345, vehicleId=77))
        assert values["event_id"] == "12345"
        assert values["vehicle_id"] == "77"

    def test_missing_id_raises(self, event_factory):
        with pytest.raises(TransformError):
            transform_event(event_factory(None, id=None))

    @pytest.mark.parametrize("value", ["not-a-date", "", None, "0001-01-01T00:00:00+01:00"])
    def test_malformed_datetime_raises(self, event_factory, value):
        with pytest.raises(TransformError) as exc_info:
            transform_event(event_factory("EV1", eventDateTime=value))
        assert "EV1" in str(exc_info.value)

    def test_non_object_payload_raises(self):
        with pytest.raises(TransformError):
            transform_event(["not", "an", "event"])

    def test_defaults_for_missing_fields(self, event_factory):
        values = transform_event(
            event_factory(
                "EV1",
                driverName=None,
                employeeId="",
                score=None,
                trigger=None,
                triggerId=None,
                behaviors=None,
                excluded=None,
            )
        )

        assert values["driver_name"] == "Driver Unassigned"
        assert values["employee_id"] is None
        assert values["score"] == 0
        assert values["trigger"] == "Unknown"
        assert values["behaviors"] == []
        assert values["excluded"] is False

    def test_score_is_rounded(self, event_factory):
        assert transform_event(event_factory("EV1", score=4.6))["score"] == 5

    def test_notes_are_joined(self, event_factory):
        values = transform_event(
            event_factory(
                "EV1",
                notes=[{"content": "Coached in person"}, {"text": "Follow up next week"}, {}],
            )
        )
        assert values["notes"] == "Coached in person; Follow up next week"

    def test_reviewed_at(self, event_factory):
        values = transform_event(
            event_factory("EV1", reviewedBy="Supervisor", reviewedDate="2026-10-18T05:00:00Z")
        )
        assert values["reviewed_by"] == "Supervisor"
        assert values["reviewed_at"] == datetime(2026, 10, 18, 5, 0, tzinfo=UTC)

    def test_reference_lookups(self, event_factory):
        """Test names resolved through the reference endpoints."""
        reference = ReferenceData(
            statuses={7: "Resolved"},
            triggers={11: "Driver Tagged"},
            behaviors={101: "Food or Drink"},
        )
        payload = event_factory(
            "EV1",
            status=None,
            statusId=None,
            trigger=None,
            triggerId=11,
            behaviors=[{"id": 101}, {"id": 555}],
        )

        values = transform_event(payload, reference)

        assert values["trigger"] == "Driver Tagged"
        assert values["event_type"] == "Driver Tagged"
        assert values["behaviors"] == ["Food or Drink"]
        assert values["status"] == "New"

    def test_status_name_from_reference(self, event_factory):
        reference = ReferenceData(statuses={42: "Closed"})
        values = transform_event(event_factory("EV1", status=None, statusId=42), reference)
        assert values["status"] == "Resolved"


class TestReferenceData:
    """Tests for reference data loading."""

    @pytest.mark.asyncio
    async def test_load(self, lytx_api):
        client = lytx_api([])

        reference = await ReferenceData.load(client)

        assert reference.statuses == {1: "New", 7: "Resolved"}
        assert reference.triggers[10] == "Braking"
        assert reference.behaviors[101] == "Food or Drink"
        # Vehicles are reachable by ID and by device serial
        assert reference.vehicles["V-1"].name == "Prime Mover 1GLD510"
        assert reference.vehicles["QM40999887"].id == "V-1"

    @pytest.mark.asyncio
    async def test_registration_from_vehicle_name(self, lytx_api, event_factory):
        reference = await ReferenceData.load(lytx_api([]))
        values = transform_event(event_factory("EV1"), reference)
        assert values["vehicle_registration"] == "1GLD510"

    @pytest.mark.asyncio
    async def test_load_skips_invalid_items(self, mock_lytx_client):
        mock_lytx_client._request_with_retry.side_effect = [
            [{"id": "abc", "name": "Bad"}, {"id": 1, "name": "New"}],
            [{"name": "no id"}],
            [],
            [{"name": "no id vehicle"}],
        ]

        reference = await ReferenceData.load(mock_lytx_client)

        assert reference.statuses == {1: "New"}
        assert reference.triggers == {}
        assert reference.vehicles == {}

    @pytest.mark.asyncio
    async def test_load_failure_is_not_fatal(self, mock_lytx_client, reference_payloads):
        """Test a failing endpoint leaves the remaining lookups empty."""
        mock_lytx_client._request_with_retry.side_effect = [
            reference_payloads["statuses"],
            LytxClientError("Failed after 3 retries"),
        ]

        reference = await ReferenceData.load(mock_lytx_client)

        assert reference.statuses == {1: "New", 7: "Resolved"}
        assert reference.triggers == {}
        assert reference.behaviors == {}
        assert reference.vehicles == {}
