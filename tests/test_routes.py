"""API tests through FastAPI's TestClient with a mocked upstream."""

import httpx
import pytest
from fastapi.testclient import TestClient

from streamgate.main import app
from tests.conftest import (
    CDN_URL,
    STANDARD_ADAPTIVE,
    STANDARD_PROGRESSIVE,
    FakeBrowse,
    FakeCDN,
    FakePlayer,
    build_context,
    entry,
    first_page,
    fmt,
    next_page,
    player_payload,
    sample_bytes,
)

MEDIA_ID = "abc123def45"


@pytest.fixture
def client_for():
    def _client_for(handler, **overrides):
        app.state.context = build_context(handler, **overrides)
        return TestClient(app)

    yield _client_for
    app.state.context = None


def playable():
    return player_payload(MEDIA_ID, formats=STANDARD_PROGRESSIVE, adaptive=STANDARD_ADAPTIVE)


class TestResolve:
    def test_dual_video(self, client_for):
        client = client_for(FakePlayer({5: playable()}), CLIENT_PROFILE_ORDER="ios")

        response = client.get("/api/resolve", params={"mediaId": f"https://youtu.be/{MEDIA_ID}"})

        assert response.status_code == 200
        data = response.json()
        assert data["mediaId"] == MEDIA_ID
        assert data["streamType"] == "dual"
        assert "itag=137" in data["videoUrl"]
        assert "itag=140" in data["audioUrl"]
        assert data["url"] is None
        assert data["videoContainer"] == "mp4"
        assert data["audioContainer"] == "m4a"
        assert data["profile"] == "ios"

    def test_audio_single(self, client_for):
        client = client_for(FakePlayer({5: playable()}), CLIENT_PROFILE_ORDER="ios")

        data = client.get("/api/resolve", params={"mediaId": MEDIA_ID, "kind": "audio"}).json()

        assert data["streamType"] == "single"
        assert "itag=140" in data["url"]

    def test_short_opaque_media_id(self, client_for):
        payload = player_payload("abc123", adaptive=[
            fmt(140, 'audio/mp4; codecs="mp4a.40.2"', bitrate=128000),
            fmt(141, 'audio/mp4; codecs="mp4a.40.2"', bitrate=256000),
        ])
        player = FakePlayer({5: payload})
        client = client_for(player, CLIENT_PROFILE_ORDER="ios")

        response = client.get("/api/resolve", params={"mediaId": "abc123", "kind": "audio"})

        assert response.status_code == 200
        data = response.json()
        assert data["mediaId"] == "abc123"
        assert "itag=141" in data["url"]
        assert data["audioContainer"] == "m4a"
        assert player.bodies[0]["videoId"] == "abc123"

    def test_invalid_media_id(self, client_for):
        player = FakePlayer({})
        client = client_for(player)

        response = client.get("/api/resolve", params={"mediaId": "not an id!"})

        assert response.status_code == 400
        assert response.json()["error_code"] == "INVALID_REQUEST"
        assert player.calls == []

    def test_invalid_kind(self, client_for):
        client = client_for(FakePlayer({}))
        response = client.get("/api/resolve", params={"mediaId": MEDIA_ID, "kind": "subtitles"})
        assert response.status_code == 422

    def test_invalid_quality(self, client_for):
        client = client_for(FakePlayer({}))
        response = client.get("/api/resolve", params={"mediaId": MEDIA_ID, "quality": "ultra"})
        assert response.status_code == 400

    def test_all_profiles_rejected(self, client_for):
        blocked = player_payload(MEDIA_ID, status="LOGIN_REQUIRED", reason="Sign in to confirm you're not a bot")
        client = client_for(FakePlayer({5: blocked, 28: blocked}), CLIENT_PROFILE_ORDER="ios,android_vr")

        response = client.get("/api/resolve", params={"mediaId": MEDIA_ID})

        assert response.status_code == 502
        data = response.json()
        assert data["error_code"] == "CLIENT_PROFILES_EXHAUSTED"
        assert data["retryable"] is False
        assert "not a bot" in data["error"]
        assert [r["profile"] for r in data["rejections"]] == ["ios", "android_vr"]

    def test_info(self, client_for):
        client = client_for(FakePlayer({5: playable()}), CLIENT_PROFILE_ORDER="ios")

        data = client.get("/api/info", params={"mediaId": MEDIA_ID}).json()

        assert data["title"] == "Sample"
        assert data["durationSeconds"] == 212
        assert data["viewCountDisplay"] == "1.2M"


class TestCrawl:
    def test_crawl(self, client_for):
        browse = FakeBrowse(
            first_page(
                [
                    entry("aaaaaaaaaaa", length_text="1:00"),
                    entry("zzzzzzzzzzz", title="[Deleted video]"),
                    entry("bbbbbbbbbbb", length_text="2:00"),
                ],
                token="T1",
            ),
            {"T1": next_page([entry("ccccccccccc", length_text="3:00")])},
        )
        client = client_for(browse)

        response = client.get("/api/crawl", params={"listingId": "https://www.youtube.com/playlist?list=PLabc"})

        assert response.status_code == 200
        data = response.json()
        assert data["listingId"] == "PLabc"
        assert data["author"] == "Alice"
        assert data["entryCount"] == 3
        assert data["unavailableCount"] == 1
        assert data["totalSeconds"] == 360
        assert data["averageDuration"] == "2:00"
        assert data["entries"][2]["position"] == 3
        assert data["entries"][0]["thumbnail"] == "https://i.ytimg.com/vi/aaaaaaaaaaa/mqdefault.jpg"

    def test_first_page_failure(self, client_for):
        client = client_for(FakeBrowse(500))
        response = client.get("/api/crawl", params={"listingId": "PLabc"})
        assert response.status_code == 502
        assert response.json()["error_code"] == "LISTING_UNAVAILABLE"

    def test_max_pages_validated(self, client_for):
        client = client_for(FakeBrowse(first_page([])))
        response = client.get("/api/crawl", params={"listingId": "PLabc", "maxPages": 0})
        assert response.status_code == 422


class TestRelay:
    def test_full_body(self, client_for):
        data = sample_bytes(5000)
        client = client_for(FakeCDN(data), RELAY_CHUNK_SIZE=1500)

        response = client.get("/api/relay", params={"url": CDN_URL})

        assert response.status_code == 200
        assert response.content == data
        assert response.headers["content-length"] == "5000"
        assert response.headers["accept-ranges"] == "bytes"

    def test_caller_range(self, client_for):
        data = sample_bytes(5000)
        client = client_for(FakeCDN(data), RELAY_CHUNK_SIZE=300)

        response = client.get("/api/relay", params={"url": CDN_URL}, headers={"Range": "bytes=1000-1999"})

        assert response.status_code == 206
        assert response.headers["content-range"] == "bytes 1000-1999/5000"
        assert len(response.content) == 1000
        assert response.content == data[1000:2000]

    @pytest.mark.parametrize("range_header", ["bytes=5000-", "bytes=9000-"])
    def test_unsatisfiable_range(self, client_for, range_header):
        client = client_for(FakeCDN(sample_bytes(5000)))

        response = client.get("/api/relay", params={"url": CDN_URL}, headers={"Range": range_header})

        assert response.status_code == 416
        assert response.headers["content-range"] == "bytes */5000"

    def test_disallowed_host(self, client_for):
        cdn = FakeCDN(b"data")
        client = client_for(cdn)

        response = client.get("/api/relay", params={"url": "https://attacker.example/x"})

        assert response.status_code == 403
        assert response.json()["error_code"] == "DISALLOWED_HOST"
        assert cdn.requests == []

    def test_redirect_to_disallowed_host(self, client_for):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(302, headers={"Location": "http://127.0.0.1:8080/admin"})

        client = client_for(handler)

        response = client.get("/api/relay", params={"url": CDN_URL})

        assert response.status_code == 403
        assert hosts == ["rr1---sn-abc.googlevideo.com"]


class TestHealthAndLogs:
    def test_health(self, client_for):
        client = client_for(FakePlayer({}), CLIENT_PROFILE_ORDER="android,web")

        data = client.get("/health").json()

        assert data["status"] == "ok"
        assert data["checks"]["profiles"] == ["android", "web"]

    def test_logs(self, client_for):
        client = client_for(FakePlayer({}))
        client.get("/api/resolve", params={"mediaId": "not an id!"})

        data = client.get("/api/logs", params={"category": "api"}).json()
        assert data["logs"]
        assert data["latest_seq"] >= data["logs"][-1]["seq"]

        assert client.delete("/api/logs").json() == {"status": "cleared"}
        assert "by_level" in client.get("/api/logs/stats").json()


class TestApiKey:
    def test_missing_key(self, client_for):
        client = client_for(FakePlayer({5: playable()}), CLIENT_PROFILE_ORDER="ios", API_KEY="secret")
        response = client.get("/api/resolve", params={"mediaId": MEDIA_ID})
        assert response.status_code == 401

    def test_wrong_key(self, client_for):
        client = client_for(FakePlayer({5: playable()}), CLIENT_PROFILE_ORDER="ios", API_KEY="secret")
        response = client.get("/api/resolve", params={"mediaId": MEDIA_ID}, headers={"X-API-Key": "guess"})
        assert response.status_code == 401

    def test_valid_key(self, client_for):
        client = client_for(FakePlayer({5: playable()}), CLIENT_PROFILE_ORDER="ios", API_KEY="secret")
        response = client.get("/api/resolve", params={"mediaId": MEDIA_ID}, headers={"X-API-Key": "secret"})
        assert response.status_code == 200

    def test_key_comes_from_service_context(self, client_for):
        client = client_for(FakeCDN(sample_bytes(10)), API_KEY="secret")
        assert client.get("/api/logs").status_code == 401
        assert client.get("/api/logs", headers={"X-API-Key": "secret"}).status_code == 200

    def test_health_is_open(self, client_for):
        client = client_for(FakePlayer({}), API_KEY="secret")
        assert client.get("/health").status_code == 200
