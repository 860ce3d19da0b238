"""
Chaos VFS API Tests

Drives the Flask app through its test client against an in-memory store.

Test Categories:
- Authentication and login
- File round trip at escalation 0
- Quantum uploads and downloads
- Deletion, graveyard and respawn
- Rename and move
- Folders, tree and search
- Escalation endpoint and worker trigger
- Plumbing (health, CORS, errors)
"""

import io

import pytest

from chaos_vfs.config import TestConfig
from chaos_vfs.api import content_disposition
from chaos_vfs.metadata import MetadataRepository, canonical_key
from conftest import API_KEY, FixedRandom, set_level

pytestmark = pytest.mark.api


def upload(client, auth, name="report.txt", content=b"quarterly numbers", parent_id=None):
    data = {"file": (io.BytesIO(content), name)}
    if parent_id:
        data["parent_id"] = parent_id
    response = client.post("/api/files", query_string=auth, data=data, content_type="multipart/form-data")
    assert response.status_code == 201, response.get_json()
    return response.get_json()["entry"]


def make_folder(client, auth, name, parent_id=None):
    response = client.post("/api/folders", query_string=auth, json={"name": name, "parent_id": parent_id})
    assert response.status_code == 201
    return response.get_json()["entry"]


def interactions(client, auth):
    return client.get("/api/escalation", query_string=auth).get_json()["interactions"]


# =============================================================================
# AUTHENTICATION
# =============================================================================

class TestAuthentication:

    def test_missing_key_is_unauthorized(self, client):
        response = client.get("/api/files")
        assert response.status_code == 401
        body = response.get_json()
        assert body["status"] == "error"
        assert body["code"] == "UNAUTHORIZED"
        assert body["request_id"]

    def test_wrong_key_is_unauthorized(self, client):
        assert client.get("/api/files", query_string={"api_key": "nope"}).status_code == 401

    def test_bearer_header_accepted(self, client):
        response = client.get("/api/files", headers={"Authorization": f"Bearer {API_KEY}"})
        assert response.status_code == 200

    def test_rejected_request_mutates_nothing(self, client, store):
        client.post("/api/folders", json={"name": "docs"})
        assert store.list("meta/") == []

    def test_login_raw_body(self, client):
        response = client.post("/api/login", data=API_KEY, content_type="text/plain")
        assert response.status_code == 200
        assert response.get_json()["success"] is True

    def test_login_json_body(self, client):
        response = client.post("/api/login", json={"api_key": f"  {API_KEY}  "})
        assert response.get_json()["success"] is True

    def test_login_wrong_key(self, client):
        assert client.post("/api/login", data="wrong", content_type="text/plain").status_code == 401

    def test_login_empty_body(self, client):
        assert client.post("/api/login", data="", content_type="text/plain").status_code == 400

    @pytest.mark.parametrize("payload", [["test-key"], {"api_key": 5}])
    def test_login_malformed_json(self, client, payload):
        assert client.post("/api/login", json=payload).status_code == 400

    def test_unconfigured_key_is_server_error(self, store, clock):
        from chaos_vfs.api import create_app

        class NoKeyConfig(TestConfig):
            API_KEY = None

        client = create_app(NoKeyConfig, store=store, clock=clock).test_client()
        response = client.get("/api/files", query_string={"api_key": "anything"})
        assert response.status_code == 500
        assert response.get_json()["code"] == "CONFIGURATION_ERROR"

    def test_login_is_rate_limited(self, store, clock):
        from chaos_vfs.api import create_app

        class LimitedConfig(TestConfig):
            RATELIMIT_ENABLED = True
            LOGIN_RATE_LIMIT = "2 per minute"

        client = create_app(LimitedConfig, store=store, clock=clock).test_client()
        codes = [client.post("/api/login", data="wrong", content_type="text/plain").status_code
                 for _ in range(3)]
        assert codes == [401, 401, 429]


# =============================================================================
# ROUND TRIP AT LEVEL 0
# =============================================================================

class TestRoundTrip:

    def test_upload_get_download(self, client, auth):
        """HAPPY PATH: level 0 is a plain file system."""
        entry = upload(client, auth, "report.txt", b"0123456789")
        assert "chaos_metadata" not in entry

        fetched = client.get(f"/api/files/{entry['id']}", query_string=auth).get_json()["entry"]
        assert fetched["name"] == "report.txt"
        assert fetched["size"] == 10
        assert "chaos_metadata" not in fetched

        response = client.get(f"/api/files/{entry['id']}/content", query_string=auth)
        assert response.status_code == 200
        assert response.data == b"0123456789"
        assert response.headers["X-Quantum-State"] == "primary"
        assert response.headers["X-Quantum-Superposition"] == "false"
        assert 'filename="report.txt"' in response.headers["Content-Disposition"]

    def test_listing_shows_upload(self, client, auth):
        entry = upload(client, auth)
        body = client.get("/api/files", query_string=auth).get_json()
        assert [e["id"] for e in body["entries"]] == [entry["id"]]
        assert body["reality"] == "primary"

    def test_upload_without_file(self, client, auth, store):
        response = client.post("/api/files", query_string=auth, data={}, content_type="multipart/form-data")
        assert response.status_code == 400
        assert store.list("content/") == []

    def test_upload_into_missing_folder(self, client, auth, store):
        data = {"file": (io.BytesIO(b"x"), "a.txt"), "parent_id": "nowhere"}
        response = client.post("/api/files", query_string=auth, data=data, content_type="multipart/form-data")
        assert response.status_code == 404
        assert store.list("content/") == []

    def test_missing_file_is_not_found(self, client, auth):
        response = client.get("/api/files/does-not-exist", query_string=auth)
        assert response.status_code == 404
        body = response.get_json()
        assert body["code"] == "NOT_FOUND"
        assert body["message"], "404s carry a thematic message"

    def test_downloading_a_folder_is_not_found(self, client, auth):
        folder = make_folder(client, auth, "docs")
        assert client.get(f"/api/files/{folder['id']}/content", query_string=auth).status_code == 404

    def test_interactions_are_counted(self, client, auth):
        entry = upload(client, auth)
        client.get(f"/api/files/{entry['id']}/content", query_string=auth)
        client.get("/api/files", query_string=auth)
        assert interactions(client, auth) == 3


# =============================================================================
# QUANTUM
# =============================================================================

class TestQuantum:

    def test_level_nine_upload_has_four_states(self, client, auth, store):
        set_level(store, 9)
        entry = upload(client, auth, "a.txt", b"z" * 1000)

        chaos = entry["chaos_metadata"]
        assert chaos["state_count"] == 4
        assert chaos["quantum_states"] == ["primary", "state-1", "state-2", "state-3"]
        for n in (1, 2, 3):
            assert store.exists(f"content/{entry['id']}-state-{n}")

    @pytest.mark.parametrize("level,variants", [(3, 2), (6, 3), (10, 3)])
    def test_variant_blob_count(self, client, auth, store, level, variants):
        set_level(store, level)
        entry = upload(client, auth, "a.txt", b"data" * 100)
        blobs = [key for key in store.list(f"content/{entry['id']}") if "-state-" in key]
        assert len(blobs) == variants

    def test_level_two_upload_stays_single(self, client, auth, store):
        set_level(store, 2)
        entry = upload(client, auth)
        assert "chaos_metadata" not in entry

    def test_download_reports_collapsed_state(self, client, auth, store):
        """Roll 0.99 at L9 lands in the last state's band."""
        set_level(store, 9)
        entry = upload(client, auth, "a.txt", b"z" * 1000)

        response = client.get(f"/api/files/{entry['id']}/content", query_string=auth)

        assert response.headers["X-Quantum-State"] == "state-3"
        assert response.headers["X-Quantum-Superposition"] == "true"
        assert response.data == store.get(f"content/{entry['id']}-state-3")

    def test_missing_variant_serves_primary(self, client, auth, store):
        set_level(store, 9)
        entry = upload(client, auth, "a.txt", b"z" * 1000)
        store.delete(f"content/{entry['id']}-state-3")

        response = client.get(f"/api/files/{entry['id']}/content", query_string=auth)

        assert response.headers["X-Quantum-State"] == "primary"
        assert response.data == b"z" * 1000


# =============================================================================
# DELETE / GRAVEYARD / RESPAWN
# =============================================================================

class TestGraveyard:

    def test_delete_then_respawn(self, client, auth, store, clock):
        set_level(store, 3)
        entry = upload(client, auth, "a.txt", b"keep me")

        response = client.delete(f"/api/files/{entry['id']}", query_string=auth)
        assert response.status_code == 200
        assert store.exists(f"meta/graveyard/{entry['id']}.json")
        assert client.get(f"/api/files/{entry['id']}", query_string=auth).status_code == 404

        assert client.get("/api/respawn-check", query_string=auth).get_json()["count"] == 0

        clock.advance(seconds=300)
        body = client.get("/api/respawn-check", query_string=auth).get_json()
        assert body["count"] == 1
        assert body["respawned"] == [entry["id"]]
        assert body["message"]

        restored = client.get(f"/api/files/{entry['id']}", query_string=auth).get_json()["entry"]
        assert restored["name"] == "a.txt"
        assert restored["chaos_metadata"]["resurrection_count"] == 1

    def test_level_zero_delete_is_permanent(self, client, auth, store, clock):
        entry = upload(client, auth, "a.txt", b"bye")

        client.delete(f"/api/files/{entry['id']}", query_string=auth)

        assert store.list("content/") == []
        assert store.list("meta/graveyard/") == []
        clock.advance(days=1)
        assert client.get("/api/respawn-check", query_string=auth).get_json()["count"] == 0

    def test_expired_ghost_purged_by_worker(self, client, auth, store, clock):
        set_level(store, 3)
        entry = upload(client, auth, "a.txt", b"old")
        client.delete(f"/api/files/{entry['id']}", query_string=auth)
        clock.advance(hours=25)

        report = client.post("/api/chaos-worker", query_string=auth).get_json()["report"]

        assert report["purged"] == [entry["id"]]
        assert entry["id"] not in report["resurrected"]
        clock.advance(days=10)
        assert client.get("/api/respawn-check", query_string=auth).get_json()["count"] == 0

    def test_delete_missing_file(self, client, auth):
        assert client.delete("/api/files/nope", query_string=auth).status_code == 404


# =============================================================================
# RENAME / MOVE
# =============================================================================

class TestRename:

    def test_level_zero_rename_is_exact(self, client, auth):
        entry = upload(client, auth, "old.txt")
        body = client.put(f"/api/files/{entry['id']}", query_string=auth, json={"name": "test"}).get_json()
        assert body["entry"]["name"] == "test"
        assert body["drifted"] is False

    def test_rename_drifts_above_level_zero(self, app_factory, auth, store):
        client = app_factory(rng=FixedRandom(0.0)).test_client()
        entry = upload(client, auth, "old.txt")
        set_level(store, 5)

        body = client.put(f"/api/files/{entry['id']}/rename", query_string=auth,
                          json={"name": "test"}).get_json()

        assert body["drifted"] is True
        assert body["entry"]["name"] == "†ë$†"
        assert body["entry"]["chaos_metadata"]["original_name"] == "test"
        assert body["message"]

    def test_rename_requires_name(self, client, auth):
        entry = upload(client, auth)
        response = client.put(f"/api/files/{entry['id']}", query_string=auth, json={"name": "  "})
        assert response.status_code == 400

    def test_move_into_folder(self, client, auth):
        folder = make_folder(client, auth, "docs")
        entry = upload(client, auth, "a.txt")

        client.put(f"/api/files/{entry['id']}", query_string=auth,
                   json={"name": "a.txt", "parent_id": folder["id"]})

        root = client.get("/api/files", query_string=auth).get_json()["entries"]
        inside = client.get("/api/files", query_string={**auth, "parent_id": folder["id"]}).get_json()["entries"]
        assert [e["id"] for e in root] == [folder["id"]]
        assert [e["id"] for e in inside] == [entry["id"]]

    def test_folder_cannot_move_into_itself(self, client, auth):
        outer = make_folder(client, auth, "outer")
        inner = make_folder(client, auth, "inner", parent_id=outer["id"])
        response = client.put(f"/api/files/{outer['id']}", query_string=auth,
                              json={"name": "outer", "parent_id": inner["id"]})
        assert response.status_code == 400

    def test_rename_rejects_control_characters(self, client, auth):
        entry = upload(client, auth, "a.txt")

        response = client.put(f"/api/files/{entry['id']}", query_string=auth, json={"name": "line1\nline2"})

        assert response.status_code == 400
        download = client.get(f"/api/files/{entry['id']}/content", query_string=auth)
        assert download.status_code == 200
        assert download.headers["Content-Disposition"].startswith('attachment; filename="a.txt"')

    def test_stored_control_characters_still_download(self, client, auth, store):
        """A stored name that bypassed validation must not break the header."""
        entry = upload(client, auth, "a.txt", b"payload")
        repository = MetadataRepository(store)
        stored = repository.get(entry["id"])
        stored.name = "line1\r\nline2"
        repository.put(stored)

        response = client.get(f"/api/files/{entry['id']}/content", query_string=auth)

        assert response.status_code == 200
        assert response.data == b"payload"
        assert "\n" not in response.headers["Content-Disposition"]


# =============================================================================
# FOLDERS / TREE / SEARCH
# =============================================================================

class TestFolders:

    def test_create_requires_name(self, client, auth, store):
        response = client.post("/api/folders", query_string=auth, json={})
        assert response.status_code == 400
        assert store.list("meta/") == []

    def test_recursive_delete_at_level_zero(self, client, auth, store):
        top = make_folder(client, auth, "top")
        sub = make_folder(client, auth, "sub", parent_id=top["id"])
        leaf = upload(client, auth, "leaf.txt", b"leaf", parent_id=sub["id"])

        body = client.delete(f"/api/folders/{top['id']}", query_string=auth).get_json()

        assert sorted(body["purged"]) == sorted([top["id"], sub["id"], leaf["id"]])
        for entry_id in (top["id"], sub["id"], leaf["id"]):
            assert not store.exists(canonical_key(entry_id))
        assert store.list("content/") == []

    def test_recursive_delete_buries_every_node(self, client, auth, store):
        top = make_folder(client, auth, "top")
        leaf = upload(client, auth, "leaf.txt", b"leaf", parent_id=top["id"])
        set_level(store, 4)

        body = client.delete(f"/api/folders/{top['id']}", query_string=auth).get_json()

        assert {g["id"] for g in body["graveyard"]} == {top["id"], leaf["id"]}
        assert store.exists(f"meta/graveyard/{leaf['id']}.json")

    def test_delete_folder_rejects_files(self, client, auth):
        entry = upload(client, auth)
        assert client.delete(f"/api/folders/{entry['id']}", query_string=auth).status_code == 400

    def test_tree_nests_children(self, client, auth):
        top = make_folder(client, auth, "top")
        sub = make_folder(client, auth, "sub", parent_id=top["id"])
        upload(client, auth, "leaf.txt", parent_id=sub["id"])
        upload(client, auth, "root.txt")

        tree = client.get("/api/tree", query_string=auth).get_json()["tree"]

        names = sorted(node["name"] for node in tree)
        assert names == ["root.txt", "top"]
        top_node = next(node for node in tree if node["name"] == "top")
        assert top_node["children"][0]["name"] == "sub"
        assert top_node["children"][0]["children"][0]["name"] == "leaf.txt"

    def test_folder_names_drift_on_listing(self, app_factory, auth, store):
        client = app_factory(rng=FixedRandom(0.0)).test_client()
        folder = make_folder(client, auth, "test")
        set_level(store, 4)

        entries = client.get("/api/files", query_string=auth).get_json()["entries"]

        assert entries[0]["name"] == "†ë$†"
        stored = client.get(f"/api/files/{folder['id']}", query_string=auth).get_json()["entry"]
        assert stored["chaos_metadata"]["original_name"] == "test"


class TestSearch:

    def test_case_insensitive_substring(self, client, auth):
        upload(client, auth, "Quarterly-Report.TXT")
        upload(client, auth, "notes.md")

        body = client.post("/api/files/search", query_string=auth, json={"query": "report"}).get_json()

        assert [e["name"] for e in body["results"]] == ["Quarterly-Report.TXT"]
        assert body["reality"] == "primary"
        assert "message" not in body

    def test_query_required(self, client, auth):
        assert client.post("/api/files/search", query_string=auth, json={}).status_code == 400

    def test_alternate_reality_at_level_ten(self, app_factory, auth, store):
        """Chance L*0.1 = 1.0; a 0.0 roll picks the first mode."""
        client = app_factory(rng=FixedRandom(0.0)).test_client()
        upload(client, auth, "a.txt")
        upload(client, auth, "b.txt")
        set_level(store, 10)

        body = client.post("/api/files/search", query_string=auth, json={"query": ".txt"}).get_json()

        assert body["reality"] == "alternate"
        assert body["reality_mode"] == "reshuffle"
        assert len(body["results"]) == 2
        assert body["message"]


# =============================================================================
# ESCALATION / WORKER
# =============================================================================

class TestEscalationEndpoint:

    def test_defaults_to_zero(self, client, auth):
        body = client.get("/api/escalation", query_string=auth).get_json()
        assert (body["level"], body["interactions"]) == (0, 0)

    def test_sync_never_lowers(self, client, auth):
        client.post("/api/escalation", query_string=auth, json={"interactions": 25})
        body = client.post("/api/escalation", query_string=auth, json={"interactions": 10}).get_json()
        assert (body["level"], body["interactions"]) == (2, 25)

    def test_increment(self, client, auth):
        client.post("/api/escalation", query_string=auth, json={"interactions": 25})
        body = client.post("/api/escalation", query_string=auth, json={"increment": 5}).get_json()
        assert (body["level"], body["interactions"]) == (3, 30)

    @pytest.mark.parametrize("payload", [{}, {"interactions": -1}, {"interactions": "ten"}])
    def test_invalid_payloads(self, client, auth, payload):
        assert client.post("/api/escalation", query_string=auth, json=payload).status_code == 400

    def test_worker_skips_at_level_zero(self, client, auth):
        report = client.post("/api/chaos-worker", query_string=auth).get_json()["report"]
        assert report["skipped"] is True


# =============================================================================
# PLUMBING
# =============================================================================

class TestPlumbing:

    def test_health_needs_no_key(self, client):
        body = client.get("/health").get_json()
        assert body["status"] == "healthy"
        assert body["storage_backend"] == "memory"

    def test_preflight(self, client):
        response = client.options("/api/files")
        assert response.status_code == 204
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"

    def test_unknown_route_is_json(self, client, auth):
        response = client.get("/api/nothing-here", query_string=auth)
        assert response.status_code == 404
        assert response.get_json()["status"] == "error"

    def test_storage_failure_is_500(self, client, auth, store):
        from unittest.mock import patch
        from chaos_vfs.errors import StorageFailure

        with patch.object(store, "list", side_effect=StorageFailure("backend down")):
            response = client.get("/api/files", query_string=auth)

        assert response.status_code == 500
        assert response.get_json()["code"] == "STORAGE_FAILURE"

    def test_content_disposition_strips_control_characters(self):
        header = content_disposition("line1\r\nline2 ë")

        assert "\r" not in header and "\n" not in header
        assert 'filename="line1__line2 ?"' in header
        assert "filename*=UTF-8''line1%0D%0Aline2%20%C3%AB" in header

    @pytest.mark.parametrize("method,path", [
        ("post", "/api/files/search"),
        ("post", "/api/folders"),
        ("put", "/api/files/some-id"),
        ("put", "/api/files/some-id/rename"),
    ])
    @pytest.mark.parametrize("payload", [["x"], "x", 3])
    def test_non_object_json_is_rejected(self, client, auth, store, method, path, payload):
        response = getattr(client, method)(path, query_string=auth, json=payload)

        assert response.status_code == 400
        assert response.get_json()["code"] == "VALIDATION_ERROR"
        assert store.list("meta/") == []
