from unittest.mock import MagicMock

import pytest
import requests

from stocksync.errors import TransportError
from stocksync.services.feed_client import FeedClient

pytestmark = pytest.mark.unit


def test_get_returns_status_and_body():
    http = MagicMock(spec=requests.Session)
    http.get.return_value = MagicMock(status_code=200, text="sku,quantity\n")

    resp = FeedClient(http).get("https://example.com/a.csv", timeout=30, verify_tls=False)

    http.get.assert_called_once_with("https://example.com/a.csv", timeout=30, verify=False)
    assert resp.status_code == 200
    assert resp.body == "sku,quantity\n"


def test_non_200_is_returned_not_raised():
    http = MagicMock(spec=requests.Session)
    http.get.return_value = MagicMock(status_code=503, text=None)

    resp = FeedClient(http).get("https://example.com/a.csv")

    assert resp.status_code == 503
    assert resp.body == ""


@pytest.mark.parametrize("exc", [requests.ConnectionError("refused"), requests.Timeout("timed out")])
def test_transport_failures_are_wrapped(exc):
    http = MagicMock(spec=requests.Session)
    http.get.side_effect = exc

    with pytest.raises(TransportError) as excinfo:
        FeedClient(http).get("https://example.com/a.csv")

    assert str(excinfo.value) == str(exc)
