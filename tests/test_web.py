"""
Tests for the HTTP track API.
"""

import pytest
from fastapi.testclient import TestClient

from vessel_tracks import web

T0 = 1_700_000_000_000
CONTEXT = "vessels.test"
BBOX = "59.97455314403678,21.219717207950076,60.31636155920052,23.051687422793826"


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(web, "DATA_DIR", tmp_path)
    monkeypatch.setattr(web, "SELF_ID", "test")
    with TestClient(web.app) as c:
        yield c


class TestTracks:

    def test_bbox_query(self, client):
        web.store.insert_position(CONTEXT, (60.2578, 21.9531), T0)

        response = client.get("/tracks", params={"bbox": BBOX})

        assert response.status_code == 200
        assert response.json() == {CONTEXT: [[[60.2578, 21.9531, None, T0]]]}

    def test_radius_query(self, client):
        web.store.insert_position(CONTEXT, (60.1501, 22.0501), T0)

        response = client.get("/tracks", params={"lat": 60.15, "lon": 22.05, "radius": 2000})

        assert response.status_code == 200
        assert len(response.json()[CONTEXT]) == 1

    def test_empty_result(self, client):
        response = client.get("/tracks", params={"bbox": BBOX})
        assert response.status_code == 200
        assert response.json() == {CONTEXT: []}

    def test_missing_bounds(self, client):
        response = client.get("/tracks")
        assert response.status_code == 400

    def test_malformed_bbox(self, client):
        response = client.get("/tracks", params={"bbox": "1,2,3"})
        assert response.status_code == 400

    def test_invalid_radius(self, client):
        response = client.get("/tracks", params={"lat": 60.0, "lon": 22.0, "radius": -5})
        assert response.status_code == 400


class TestOther:

    def test_recent_positions(self, client):
        web.store.insert_position(CONTEXT, (60.0, 22.0))

        response = client.get("/positions/recent", params={"context": "self"})

        assert response.status_code == 200
        assert response.json()["positions"] == [[60.0, 22.0]]

    def test_shards(self, tmp_path, monkeypatch, make_archive):
        make_archive("2023.db", [(T0, 60.0, 22.0)])
        monkeypatch.setattr(web, "DATA_DIR", tmp_path)
        with TestClient(web.app) as client:
            response = client.get("/shards")

        assert response.status_code == 200
        data = response.json()
        assert data["live"].endswith("tracks.db")
        assert data["archives"] == ["2023.db"]

    def test_store_closed_after_shutdown(self, tmp_path, monkeypatch):
        monkeypatch.setattr(web, "DATA_DIR", tmp_path)
        with TestClient(web.app):
            assert web.store is not None
        assert web.store is None

    def test_storage_error_is_server_error(self, tmp_path, monkeypatch):
        monkeypatch.setattr(web, "DATA_DIR", tmp_path)
        monkeypatch.setattr(web, "SELF_ID", "test")
        with TestClient(web.app, raise_server_exceptions=False) as client:
            web.store.shards.live.conn.execute("DROP TABLE positions")
            response = client.get("/tracks", params={"bbox": BBOX})

        assert response.status_code == 500
