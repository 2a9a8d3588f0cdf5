from migrator.utils.dates import describe_age, format_timestamp


def test_describe_age():
    assert describe_age(0) == "0h 0m"
    assert describe_age((26 * 60 + 5) * 60_000) == "26h 5m"
    assert describe_age(-500) == "0h 0m"


def test_format_timestamp_uses_configured_timezone(monkeypatch):
    monkeypatch.setenv("TIMEZONE", "Asia/Tokyo")
    assert format_timestamp(0) == "1970-01-01 09:00:00 +09:00"
    monkeypatch.delenv("TIMEZONE")
    assert format_timestamp(0) == "1970-01-01 00:00:00 +00:00"
