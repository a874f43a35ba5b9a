"""
Stepwise
Tests — Test Case Versions API.

Covers:
    - list / create snapshot
    - retrieval with frozen ordered steps
    - scope isolation for version ids
    - diff between version numbers
    - restore
"""

import pytest


@pytest.fixture()
def tc_url(client):
    p = client.post("/api/v1/projects", json={"name": "Storefront"}).get_json()
    tc = client.post(f"/api/v1/projects/{p['id']}/test-cases", json={"name": "Checkout"}).get_json()
    return f"/api/v1/projects/{p['id']}/test-cases/{tc['id']}"


def _create_step(client, tc_url, action):
    res = client.post(f"{tc_url}/steps", json={"action": action})
    assert res.status_code == 201
    return res.get_json()


def _snapshot(client, tc_url, **kw):
    res = client.post(f"{tc_url}/versions", json=kw)
    assert res.status_code == 201
    return res.get_json()


class TestVersions:
    def test_initial_version_listed(self, client, tc_url):
        res = client.get(f"{tc_url}/versions")
        assert res.status_code == 200
        data = res.get_json()
        assert len(data) == 1
        assert data[0]["version_no"] == 1
        assert data[0]["version"] == "1.0.0"

    def test_manual_snapshot(self, client, tc_url):
        _create_step(client, tc_url, "open")
        v = _snapshot(client, tc_url, change_summary="baseline", version_label="1.1.0")
        assert v["version_no"] == 3  # initial create, then the step add
        assert v["version"] == "1.1.0"
        assert v["change_summary"] == "baseline"
        assert [s["action"] for s in v["steps"]] == ["open"]

        tc = client.get(tc_url).get_json()
        assert tc["version"] == "1.1.0"

    def test_auto_label_bump(self, client, tc_url):
        v = _snapshot(client, tc_url)
        assert v["version"] == "1.0.1"
        assert v["change_summary"] == "manual snapshot"

    def test_get_version_frozen_after_reorder(self, client, tc_url):
        s1 = _create_step(client, tc_url, "a")
        s2 = _create_step(client, tc_url, "b")
        v = _snapshot(client, tc_url)

        client.put(
            f"{tc_url}/steps/reorder",
            json={"steps": [{"id": s1["id"], "order": 2}, {"id": s2["id"], "order": 1}]},
        )
        client.delete(f"{tc_url}/steps/{s1['id']}")

        res = client.get(f"{tc_url}/versions/{v['id']}")
        assert res.status_code == 200
        body = res.get_json()
        assert body["version"]["id"] == v["id"]
        assert [(s["order"], s["action"]) for s in body["steps"]] == [(1, "a"), (2, "b")]

    def test_version_of_other_case_is_404(self, client, tc_url):
        pid = tc_url.split("/")[4]
        other = client.post(f"/api/v1/projects/{pid}/test-cases", json={"name": "Other"}).get_json()
        other_url = f"/api/v1/projects/{pid}/test-cases/{other['id']}"
        foreign = _snapshot(client, other_url)

        res = client.get(f"{tc_url}/versions/{foreign['id']}")
        assert res.status_code == 404
        assert "steps" not in res.get_json()

    def test_unknown_case(self, client, tc_url):
        pid = tc_url.split("/")[4]
        assert client.get(f"/api/v1/projects/{pid}/test-cases/99999/versions").status_code == 404


class TestVersionDiff:
    def test_diff(self, client, tc_url):
        _create_step(client, tc_url, "a")
        left = _snapshot(client, tc_url)
        client.put(tc_url, json={"name": "Checkout v2"})
        _create_step(client, tc_url, "b")
        right = _snapshot(client, tc_url)

        res = client.get(f"{tc_url}/versions/diff?from={left['version_no']}&to={right['version_no']}")
        assert res.status_code == 200
        diff = res.get_json()["diff"]
        assert "name" in {c["field"] for c in diff["field_changes"]}
        assert diff["summary"]["step_added_count"] == 1

    def test_diff_requires_numbers(self, client, tc_url):
        res = client.get(f"{tc_url}/versions/diff?from=a")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    def test_diff_unknown_version(self, client, tc_url):
        res = client.get(f"{tc_url}/versions/diff?from=1&to=9")
        assert res.status_code == 404


class TestVersionRestore:
    def test_restore(self, client, tc_url):
        _create_step(client, tc_url, "a")
        _create_step(client, tc_url, "b")
        baseline = _snapshot(client, tc_url)

        client.put(tc_url, json={"name": "Changed", "status": "failed"})
        steps = client.get(f"{tc_url}/steps").get_json()
        client.delete(f"{tc_url}/steps/bulk-delete", json={"stepIds": [s["id"] for s in steps]})

        res = client.post(f"{tc_url}/versions/{baseline['id']}/restore", json={}, headers={"X-User": "ivy"})

        assert res.status_code == 200
        body = res.get_json()
        assert body["test_case"]["name"] == "Checkout"
        assert body["test_case"]["status"] == "draft"
        assert [(s["order"], s["action"]) for s in body["test_case"]["steps"]] == [(1, "a"), (2, "b")]
        assert body["version"]["version_no"] == baseline["version_no"] + 1
        assert body["version"]["created_by"] == "ivy"

        # create, two step adds, baseline, restore
        versions = client.get(f"{tc_url}/versions").get_json()
        assert len(versions) == 5

    def test_restore_unknown_version(self, client, tc_url):
        res = client.post(f"{tc_url}/versions/99999/restore", json={})
        assert res.status_code == 404

    def test_restore_summary_must_be_string(self, client, tc_url):
        first = client.get(f"{tc_url}/versions").get_json()[0]
        res = client.post(f"{tc_url}/versions/{first['id']}/restore", json={"change_summary": 7})
        assert res.status_code == 400


class TestVersionInput:
    def test_step_changes_create_versions(self, client, tc_url):
        s = _create_step(client, tc_url, "open")
        client.patch(f"{tc_url}/steps/{s['id']}", json={"disabled": True})
        client.delete(f"{tc_url}/steps/{s['id']}")

        versions = client.get(f"{tc_url}/versions").get_json()
        assert [v["version_no"] for v in versions] == [4, 3, 2, 1]
        assert client.get(tc_url).get_json()["version"] == "1.0.3"

    @pytest.mark.parametrize("body,field", [
        ({"version_label": 5}, "version_label"),
        ({"version_label": "x" * 21}, "version_label"),
        ({"change_summary": {"x": 1}}, "change_summary"),
        ({"updated_by": ["x"]}, "updated_by"),
    ])
    def test_malformed_fields_rejected(self, client, tc_url, body, field):
        res = client.post(f"{tc_url}/versions", json=body)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"
        assert field in res.get_json()["details"]
        assert len(client.get(f"{tc_url}/versions").get_json()) == 1
