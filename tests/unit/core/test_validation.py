"""Unit tests for request and jobs document validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from notification_relay.core.config import ConfigurationError
from notification_relay.core.exceptions import ValidationError
from notification_relay.core.validation import (
    MAX_BULK_NOTIFICATIONS,
    OptionsSchema,
    ScheduleSchema,
    load_jobs_file,
    load_request_file,
    parse_jobs,
    parse_request,
)
from notification_relay.types import DispatchOptions, Frequency, ScheduleSpec


def _note(**fields: object) -> dict[str, object]:
    return {"title": "Deploy finished", "body": "Version 2.4.1 is live", **fields}


@pytest.mark.unit
class TestParseRequest:
    """Test single and bulk request documents."""

    def test_single_notification_with_defaults(self) -> None:
        request = parse_request({"notification": _note()})

        assert request.bulk is False
        assert len(request.notifications) == 1
        assert request.notifications[0].title == "Deploy finished"
        assert request.options == DispatchOptions()
        assert request.schedule is None

    def test_targeting_fields_are_converted(self) -> None:
        request = parse_request(
            {
                "notification": _note(
                    image="https://cdn.example.com/banner.png",
                    tokens=["t1", "t2"],
                    playerIds=["p1"],
                    segments=["Subscribed Users"],
                    channel="alerts",
                    event="deploy",
                    data={"version": "2.4.1"},
                )
            }
        )

        notification = request.notifications[0]
        assert notification.image == "https://cdn.example.com/banner.png"
        assert notification.tokens == ("t1", "t2")
        assert notification.player_ids == ("p1",)
        assert notification.segments == ("Subscribed Users",)
        assert notification.channel == "alerts"
        assert notification.data["version"] == "2.4.1"

    def test_bulk_request(self) -> None:
        request = parse_request({"notifications": [_note(), _note(title="Second")]})

        assert request.bulk is True
        assert [n.title for n in request.notifications] == ["Deploy finished", "Second"]

    def test_requires_exactly_one_payload(self) -> None:
        with pytest.raises(ValidationError, match="exactly one"):
            _ = parse_request({})
        with pytest.raises(ValidationError, match="exactly one"):
            _ = parse_request({"notification": _note(), "notifications": [_note()]})

    def test_bulk_size_limits(self) -> None:
        with pytest.raises(ValidationError):
            _ = parse_request({"notifications": []})
        with pytest.raises(ValidationError):
            _ = parse_request({"notifications": [_note()] * (MAX_BULK_NOTIFICATIONS + 1)})

    @pytest.mark.parametrize(
        ("fields", "location"),
        [
            ({"title": ""}, "notification.title"),
            ({"title": "x" * 201}, "notification.title"),
            ({"body": "x" * 2001}, "notification.body"),
            ({"image": "not a url"}, "notification.image"),
            ({"tokens": ["t"] * 501}, "notification.tokens"),
            ({"priority": "high"}, "notification.priority"),
        ],
    )
    def test_invalid_notification_fields(self, fields: dict[str, object], location: str) -> None:
        with pytest.raises(ValidationError) as exc_info:
            _ = parse_request({"notification": _note(**fields)})

        assert any(issue.startswith(location) for issue in exc_info.value.issues)
        assert str(exc_info.value).startswith("Invalid notification request")

    def test_schedule_uses_default_timezone(self) -> None:
        request = parse_request(
            {"notification": _note(), "schedule": {"time": "07:15", "frequency": "daily"}},
            default_timezone="Europe/Berlin",
        )

        assert request.schedule == ScheduleSpec(time="07:15", timezone="Europe/Berlin", frequency=Frequency.DAILY)


@pytest.mark.unit
class TestOptionsSchema:
    """Test dispatch option validation."""

    def test_camel_case_aliases(self) -> None:
        options = OptionsSchema.model_validate({"enableFailover": False, "timeout": 5}).to_options()

        assert options == DispatchOptions(enable_failover=False, timeout_seconds=5.0)

    def test_provider_is_normalised(self) -> None:
        options = OptionsSchema.model_validate({"provider": " Firebase "})

        assert options.provider == "firebase"

    def test_unknown_provider_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown provider 'carrier-pigeon'"):
            _ = OptionsSchema.model_validate({"provider": "carrier-pigeon"})

    @pytest.mark.parametrize("timeout", [0, -1, 30.5, 120])
    def test_timeout_bounds(self, timeout: float) -> None:
        with pytest.raises(ValueError):
            _ = OptionsSchema.model_validate({"timeout_seconds": timeout})


@pytest.mark.unit
class TestScheduleSchema:
    """Test schedule document validation."""

    @pytest.mark.parametrize("value", ["00:00", "09:05", "23:59"])
    def test_valid_times(self, value: str) -> None:
        assert ScheduleSchema(time=value).time == value

    @pytest.mark.parametrize("value", ["24:00", "9:00", "09:60", "0900", "noon", ""])
    def test_invalid_times(self, value: str) -> None:
        with pytest.raises(ValueError, match="HH:MM"):
            _ = ScheduleSchema(time=value)

    def test_unknown_frequency_rejected(self) -> None:
        with pytest.raises(ValueError):
            _ = ScheduleSchema.model_validate({"time": "09:00", "frequency": "weekly"})

    def test_empty_timezone_is_kept(self) -> None:
        spec = ScheduleSchema.model_validate({"time": "09:00", "timezone": ""}).to_spec("Europe/Berlin")

        assert spec.timezone == ""


@pytest.mark.unit
class TestJobsDocuments:
    """Test jobs file parsing and file loading."""

    def test_parse_jobs(self) -> None:
        requests = parse_jobs(
            {
                "jobs": [
                    {"notification": _note(), "schedule": {"time": "09:00"}},
                    {
                        "notification": _note(title="Nightly"),
                        "schedule": {"time": "22:30", "timezone": "Asia/Tokyo", "frequency": "daily"},
                        "options": {"provider": "pusher"},
                    },
                ]
            }
        )

        assert len(requests) == 2
        assert requests[0].schedule == ScheduleSpec(time="09:00")
        assert requests[1].schedule == ScheduleSpec(time="22:30", timezone="Asia/Tokyo", frequency=Frequency.DAILY)
        assert requests[1].options.provider == "pusher"

    def test_batch_job(self) -> None:
        (request,) = parse_jobs(
            {"jobs": [{"notifications": [_note(), _note(title="Second")], "schedule": {"time": "06:45"}}]},
            default_timezone="Europe/Madrid",
        )

        assert request.bulk
        assert [item.title for item in request.notifications] == ["Deploy finished", "Second"]
        assert request.schedule == ScheduleSpec(time="06:45", timezone="Europe/Madrid")

    def test_scheduled_request_document(self) -> None:
        (request,) = parse_jobs({"notifications": [_note(), _note()], "schedule": {"time": "12:00", "frequency": "daily"}})

        assert request.bulk
        assert len(request.notifications) == 2
        assert request.schedule == ScheduleSpec(time="12:00", frequency=Frequency.DAILY)

    def test_request_document_without_schedule_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid jobs file: schedule: Field required"):
            _ = parse_jobs({"notification": _note()})

    def test_job_without_schedule_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Invalid jobs file"):
            _ = parse_jobs({"jobs": [{"notification": _note()}]})

    def test_empty_jobs_rejected(self) -> None:
        with pytest.raises(ValidationError):
            _ = parse_jobs({"jobs": []})

    def test_load_request_file_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "request.yaml"
        _ = path.write_text(
            "notification:\n  title: Backup done\n  body: 42 GB archived\noptions:\n  enableFailover: false\n",
            encoding="utf-8",
        )

        request = load_request_file(path)

        assert request.notifications[0].body == "42 GB archived"
        assert request.options.enable_failover is False

    def test_load_request_file_json(self, tmp_path: Path) -> None:
        path = tmp_path / "request.json"
        _ = path.write_text('{"notifications": [{"title": "a", "body": "b"}]}', encoding="utf-8")

        assert load_request_file(path).bulk is True

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "request.yaml"
        _ = path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ValidationError, match="must contain a mapping"):
            _ = load_request_file(path)

    def test_missing_file_is_configuration_error(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="jobs file was not found"):
            _ = load_jobs_file(tmp_path / "missing.yaml")

    def test_malformed_yaml_is_configuration_error(self, tmp_path: Path) -> None:
        path = tmp_path / "jobs.yaml"
        _ = path.write_text("jobs: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Failed to parse jobs file"):
            _ = load_jobs_file(path)
