import datetime as dt

import pytest

from roster.models import Student
from roster.server.reports import EXPORT_COLUMNS, dashboard_stats, render_export, to_frame

from conftest import student_json


def students():
    return [
        Student.model_validate(student_json("s1", attendance=90)),
        Student.model_validate(student_json("s2", "Grace Hopper", status="Dropped", attendance=70, enrollmentDate="2024-10-02")),
        Student.model_validate(student_json("s3", "Alan Turing", course="Math", status="Completed")),
    ]


def test_to_frame_keeps_requested_columns():
    df = to_frame(students())
    assert list(df.columns) == EXPORT_COLUMNS
    assert df.loc[0, "_id"] == "s1"


def test_dashboard_stats_aggregates():
    stats = dashboard_stats(students())
    assert stats.total_students == 3
    assert (stats.active_students, stats.completed_students, stats.dropped_students) == (1, 1, 1)
    assert stats.average_attendance == 80.0
    assert stats.courses[0].course == "Computer Science"
    assert stats.courses[0].percentage == pytest.approx(66.67)
    assert [(m.month, m.count) for m in stats.monthly_enrollments] == [("2024-09", 2), ("2024-10", 1)]


def test_dashboard_stats_empty():
    stats = dashboard_stats([])
    assert stats.total_students == 0
    assert stats.courses == []


def test_render_export_ignores_unknown_fields():
    payload, mimetype, filename = render_export(students(), "csv", ["name", "password"])
    assert mimetype == "text/csv"
    assert payload.decode().splitlines()[0] == "name"
    assert filename == f"students-{dt.datetime.now(dt.timezone.utc):%Y%m%d}.csv"


def test_render_export_rejects_unknown_format():
    with pytest.raises(ValueError):
        render_export(students(), "xml")
