from recruitment.services import rbac_service


class TestJobsCRUD:
    def _auth(self, db, user_id=7, *permissions):
        for permission in permissions:
            rbac_service.grant(db, user_id, permission)
        return {"X-User-Id": str(user_id)}

    def test_create_job_starts_as_draft(self, client, db):
        h = self._auth(db, 7, rbac_service.JOBS_CREATE)
        r = client.post("/api/v1/jobs", json={
            "title": "Software Engineer",
            "location": "Nairobi",
        }, headers=h)
        assert r.status_code == 201
        data = r.json()
        assert data["title"] == "Software Engineer"
        assert data["status"] == "draft"
        assert data["previous_status"] is None
        assert data["created_by"] == 7

    def test_create_requires_permission(self, client, db):
        h = self._auth(db, 8)
        r = client.post("/api/v1/jobs", json={"title": "Job"}, headers=h)
        assert r.status_code == 403
        assert r.json()["detail"] == "Missing permission: jobs.create"

    def test_missing_user_header(self, client):
        r = client.post("/api/v1/jobs", json={"title": "Job"})
        assert r.status_code == 422

    def test_non_positive_user_id(self, client):
        r = client.get("/api/v1/jobs", headers={"X-User-Id": "0"})
        assert r.status_code == 401

    def test_empty_title_rejected(self, client, db):
        h = self._auth(db, 7, rbac_service.JOBS_CREATE)
        r = client.post("/api/v1/jobs", json={"title": ""}, headers=h)
        assert r.status_code == 422

    def test_list_jobs_filters_by_status(self, client, db, make_job):
        h = self._auth(db, 7)
        make_job(status="draft", title="Job 1")
        make_job(status="published", title="Job 2")
        make_job(status="published", title="Job 3")

        r = client.get("/api/v1/jobs", headers=h)
        assert r.status_code == 200
        assert r.json()["total"] == 3

        r = client.get("/api/v1/jobs", params={"status": "published"}, headers=h)
        data = r.json()
        assert data["total"] == 2
        assert {j["title"] for j in data["jobs"]} == {"Job 2", "Job 3"}

    def test_list_rejects_unknown_status(self, client, db):
        r = client.get("/api/v1/jobs", params={"status": "paused"}, headers=self._auth(db, 7))
        assert r.status_code == 422

    def test_get_job(self, client, db, make_job):
        job = make_job(title="Test Job")
        r = client.get(f"/api/v1/jobs/{job.uuid}", headers=self._auth(db, 7))
        assert r.status_code == 200
        assert r.json()["title"] == "Test Job"

    def test_get_nonexistent_job(self, client, db):
        r = client.get("/api/v1/jobs/does-not-exist", headers=self._auth(db, 7))
        assert r.status_code == 404
