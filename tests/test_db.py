from datetime import date, datetime, timedelta

from spend_dashboard import db


def test_now_iso_is_timezone_aware_utc():
    stamp = datetime.fromisoformat(db.now_iso())
    assert stamp.utcoffset() == timedelta(0)


def test_iso_helpers():
    assert db.to_iso_date(datetime(2024, 2, 29, 23, 59)) == '2024-02-29'
    assert db.to_iso_date('2024-02-29T10:00:00') == '2024-02-29'
    assert db.to_iso_date(None) is None
    assert db.to_iso_datetime(date(2024, 1, 2)) == '2024-01-02T00:00:00'
