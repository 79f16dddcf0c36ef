from datetime import UTC, datetime

import pytest

from app.db.models.submission import Submission
from app.services.csv_export import BOM, format_local_timestamp, submissions_to_csv, to_csv

pytestmark = pytest.mark.unit


def test_bom_and_crlf_without_trailing_newline():
    out = to_csv(["a", "b"], [["1", "2"], ["3", "4"]])

    assert out == BOM + "a,b\r\n1,2\r\n3,4"


def test_quoting_rules():
    out = to_csv(["h"], [['say "hi"'], ["x,y"], ["line\nbreak"], ["plain"]], bom=False)

    assert out.split("\r\n")[1:3] == ['"say ""hi"""', '"x,y"']
    assert '"line\nbreak"' in out
    assert out.endswith("\r\nplain")


def test_cell_rendering():
    out = to_csv(["n", "b", "none"], [[1.5, True, None]], bom=False)

    assert out == "n,b,none\r\n1.5,true,"


def test_local_timestamp_format():
    ts = datetime(2025, 1, 15, 15, 30, 0, tzinfo=UTC)

    assert format_local_timestamp(ts) == "2025-01-16 00:30:00"
    assert format_local_timestamp(ts, "UTC") == "2025-01-15 15:30:00"


def test_submissions_to_csv_follows_field_order():
    subs = [
        Submission(
            id="s1",
            form_id="f",
            payload={"message": "Hi, there", "email": "a@example.com", "extra": "ignored"},
            created_at=datetime(2025, 1, 1, 0, 0, tzinfo=UTC),
        ),
        Submission(id="s2", form_id="f", payload={"email": "b@example.com"}, created_at=datetime(2025, 1, 2, tzinfo=UTC)),
    ]

    out = submissions_to_csv(subs, ["email", "message"])

    assert out == (
        BOM
        + "created_at,email,message\r\n"
        + '2025-01-01 09:00:00,a@example.com,"Hi, there"\r\n'
        + "2025-01-02 09:00:00,b@example.com,"
    )


def test_header_only_when_empty():
    assert submissions_to_csv([], ["email"]) == BOM + "created_at,email"
