import pytest
from pydantic import ValidationError

from stocksync.models import SyncSettings, clamp_custom_interval

pytestmark = pytest.mark.unit


def test_defaults():
    s = SyncSettings()
    assert s.csv_url == ""
    assert s.sku_column == "sku"
    assert s.quantity_column == "quantity"
    assert s.schedule == "hourly"
    assert s.custom_interval_minutes == 60
    assert s.enabled is False
    assert s.ssl_verify is True


@pytest.mark.parametrize(
    "minutes, expected",
    [(0, 1), (1, 1), (90, 90), (43200, 43200), (999999, 43200), (-15, 15), ("abc", 1), (None, 1)],
)
def test_custom_interval_is_clamped(minutes, expected):
    assert clamp_custom_interval(minutes) == expected


def test_settings_clamp_custom_interval_on_validation():
    assert SyncSettings(custom_interval_minutes=0).custom_interval_minutes == 1
    assert SyncSettings(custom_interval_minutes=999999).custom_interval_minutes == 43200


def test_text_fields_are_trimmed():
    s = SyncSettings(csv_url="  https://example.com/stock.csv ", sku_column=" SKU ")
    assert s.csv_url == "https://example.com/stock.csv"
    assert s.sku_column == "SKU"


def test_invalid_url_rejected():
    with pytest.raises(ValidationError) as excinfo:
        SyncSettings(csv_url="ftp://example.com/stock.csv")
    assert "http://" in str(excinfo.value)


def test_unknown_schedule_rejected():
    with pytest.raises(ValidationError):
        SyncSettings(schedule="every_second")
