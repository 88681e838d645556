import io

import pytest
import responses
from responses import matchers

from ocne.errors import NotFoundError, OcneError, RemoteStatusError
from ocne.ovirt.client import OvirtClient, chunk_ranges
from ocne.ovirt.credentials import Credentials

MiB = 1024 * 1024
ENGINE = "https://engine.example.com/ovirt-engine"
TRANSFER_URL = "https://proxy.example.com:54323/images/t-1"


def _client(token="tok"):
    c = OvirtClient(ENGINE, Credentials("admin@internal", "pw", "ovirt-app-api"))
    c._token = token
    return c


@pytest.mark.parametrize(
    "total, size",
    [(1, 1), (10, 3), (25 * MiB, 10 * MiB), (20 * MiB, 10 * MiB), (7, 100)],
)
def test_chunk_ranges_cover_the_input_exactly(total, size):
    ranges = list(chunk_ranges(total, size))

    assert ranges[0][0] == 0
    assert ranges[-1][1] == total - 1
    assert [r[2] for r in ranges] == [False] * (len(ranges) - 1) + [True]
    for (s1, e1, _), (s2, _, _) in zip(ranges, ranges[1:]):
        assert s2 == e1 + 1
    assert all(e - s + 1 <= size for s, e, _ in ranges)
    assert sum(e - s + 1 for s, e, _ in ranges) == total


def test_chunk_ranges_rejects_non_positive_size():
    with pytest.raises(ValueError):
        list(chunk_ranges(10, 0))


@responses.activate
def test_upload_sends_ranges_and_closes_on_last_chunk():
    total = 25 * MiB
    responses.add(responses.PUT, TRANSFER_URL, status=200)

    puts = _client().upload(TRANSFER_URL, io.BytesIO(b"x" * total), total, chunk_size=10 * MiB)

    assert puts == 3
    sent = [(c.request.url, c.request.headers) for c in responses.calls]
    assert [h["Content-Range"] for _, h in sent] == [
        f"bytes 0-10485759/{total}",
        f"bytes 10485760-20971519/{total}",
        f"bytes 20971520-26214399/{total}",
    ]
    assert [h["Content-Length"] for _, h in sent] == [str(10 * MiB), str(10 * MiB), str(5 * MiB)]
    assert sent[0][0].endswith("?flush=n")
    assert sent[1][0].endswith("?flush=n")
    assert sent[2][0].endswith("?close=y")
    assert all(h["Authorization"] == "Bearer tok" for _, h in sent)


@responses.activate
def test_upload_short_read_fails():
    responses.add(responses.PUT, TRANSFER_URL, status=200)

    with pytest.raises(OcneError, match="short read"):
        _client().upload(TRANSFER_URL, io.BytesIO(b"x" * 5), 10, chunk_size=4)

    # the first full chunk went out, the short one did not
    assert len(responses.calls) == 1


@responses.activate
def test_token_fetched_once_and_cleared_on_failure():
    responses.add(
        responses.POST,
        f"{ENGINE}/sso/oauth/token",
        json={"access_token": "abc", "token_type": "Bearer"},
        match=[matchers.header_matcher({"Content-Type": "application/x-www-form-urlencoded"})],
    )
    responses.add(responses.GET, f"{ENGINE}/api", json={"product_info": {}})
    responses.add(responses.GET, f"{ENGINE}/api/disks/d1", status=500, body="boom")

    client = _client(token="")
    client.connect()
    assert client.access_token == "abc"

    with pytest.raises(RemoteStatusError):
        client.get_disk("d1")
    assert client.access_token == ""
    assert len([c for c in responses.calls if c.request.url.endswith("/sso/oauth/token")]) == 1


@responses.activate
def test_get_storage_domain_by_name():
    responses.add(
        responses.GET,
        f"{ENGINE}/api/storagedomains",
        json={"storage_domain": [{"id": "sd1", "name": "data"}, {"id": "sd2", "name": "images"}]},
    )

    assert _client().get_storage_domain("images").id == "sd2"
    with pytest.raises(NotFoundError, match="Storage Domain missing not found"):
        _client().get_storage_domain("missing")


@responses.activate
def test_get_disk_404_is_not_found():
    responses.add(responses.GET, f"{ENGINE}/api/disks/gone", status=404)

    with pytest.raises(NotFoundError):
        _client().get_disk("gone")


def test_unknown_transfer_action_is_rejected():
    with pytest.raises(ValueError):
        _client().image_transfer_action("t1", "explode")
