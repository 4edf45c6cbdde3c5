"""Backup and restore job tests.

Jobs started through the API are only recorded by the test runner; each
test runs the job body itself and then polls the job row like a client.
"""

import io
import zipfile

import pytest

from tradeledger.config import settings
from tradeledger.services.backup import (
    DATABASE_NAME,
    MANIFEST_NAME,
    allowed_upload_name,
    run_backup_job,
    run_restore_job,
)


async def _backup(client, headers, session_factory) -> dict:
    resp = await client.post("/api/backup/start", headers=headers)
    assert resp.status_code == 202, resp.text
    job_id = resp.json()["id"]
    await run_backup_job(session_factory, job_id)
    return (await client.get(f"/api/backup/jobs/{job_id}", headers=headers)).json()


async def _supplier_names(client, headers) -> list[str]:
    resp = await client.get("/api/suppliers/", headers=headers)
    return [s["name"] for s in resp.json()["items"]]


@pytest.mark.api
@pytest.mark.asyncio
class TestBackupJobs:

    async def test_start_returns_pending_job(self, client, auth_headers, backup_runner):
        resp = await client.post("/api/backup/start", headers=auth_headers)
        assert resp.status_code == 202
        job = resp.json()
        assert job["status"] == "pending"
        assert job["job_type"] == "backup"
        assert backup_runner.started == [job["id"]]

        listed = await client.get("/api/backup/jobs", headers=auth_headers)
        assert [j["id"] for j in listed.json()] == [job["id"]]

    async def test_backup_completes_and_downloads(
        self, client, auth_headers, backup_runner, session_factory, import_setup
    ):
        job = await _backup(client, auth_headers, session_factory)
        assert job["status"] == "completed"
        assert job["progress"] == 100
        assert job["file_size"] > 0
        assert job["manifest"]["tables"]["suppliers"] == 2
        assert "backup_jobs" not in job["manifest"]["tables"]

        resp = await client.get(f"/api/backup/download/{job['id']}", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/zip"
        with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
            assert {MANIFEST_NAME, DATABASE_NAME} <= set(zf.namelist())

    async def test_download_before_completion(self, client, auth_headers):
        job = (await client.post("/api/backup/start", headers=auth_headers)).json()
        resp = await client.get(f"/api/backup/download/{job['id']}", headers=auth_headers)
        assert resp.status_code == 400

    async def test_unknown_job(self, client, auth_headers):
        resp = await client.get("/api/backup/jobs/missing", headers=auth_headers)
        assert resp.status_code == 404

    async def test_manager_only(self, client, viewer_headers):
        resp = await client.get("/api/backup/jobs", headers=viewer_headers)
        assert resp.status_code == 403
        resp = await client.post("/api/backup/start", headers=viewer_headers)
        assert resp.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestUploadAndRestore:

    async def test_upload_accepts_zip_only(self, client, auth_headers):
        resp = await client.post(
            "/api/backup/upload", headers=auth_headers,
            files={"file": ("notes.txt", b"hello", "text/plain")},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"

        resp = await client.post(
            "/api/backup/upload", headers=auth_headers,
            files={"file": ("backup.zip", b"PK\x05\x06" + b"\x00" * 18, "application/zip")},
        )
        assert resp.status_code == 201
        assert resp.json()["backup_path"].endswith("backup.zip")
        assert resp.json()["file_size"] == 22

    async def test_upload_respects_size_limit(self, client, auth_headers, monkeypatch):
        monkeypatch.setattr(settings, "max_upload_bytes", 10)
        resp = await client.post(
            "/api/backup/upload", headers=auth_headers,
            files={"file": ("backup.zip", b"PK\x05\x06" + b"\x00" * 18, "application/zip")},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["details"]["fields"][0]["field"] == "file"

    async def test_restore_needs_existing_file(self, client, auth_headers, backup_runner):
        resp = await client.post(
            "/api/restore/start", headers=auth_headers, json={"backup_path": "/nowhere/backup.zip"}
        )
        assert resp.status_code == 400
        assert backup_runner.started == []

    async def test_restore_round_trip(
        self, client, auth_headers, backup_runner, session_factory, import_setup
    ):
        backup = await _backup(client, auth_headers, session_factory)
        await client.post("/api/suppliers/", headers=auth_headers, json={"name": "Added later"})
        assert "Added later" in await _supplier_names(client, auth_headers)

        resp = await client.post(
            "/api/restore/start", headers=auth_headers, json={"backup_path": backup["output_path"]}
        )
        assert resp.status_code == 202
        restore_id = resp.json()["id"]
        assert backup_runner.started[-1] == restore_id

        await run_restore_job(session_factory, restore_id, backup["output_path"])
        job = (await client.get(f"/api/backup/jobs/{restore_id}", headers=auth_headers)).json()
        assert job["status"] == "completed", job["error"]
        assert job["manifest"]["restored"]["suppliers"] == 2

        assert sorted(await _supplier_names(client, auth_headers)) == [
            "Guangzhou Textiles", "Yiwu Toys",
        ]
        # Job history is kept across a restore
        jobs = (await client.get("/api/backup/jobs", headers=auth_headers)).json()
        assert {j["id"] for j in jobs} == {backup["id"], restore_id}

    async def test_invalid_archive_fails_job(
        self, client, auth_headers, backup_runner, session_factory
    ):
        upload = (await client.post(
            "/api/backup/upload", headers=auth_headers,
            files={"file": ("broken.zip", b"not a zip", "application/zip")},
        )).json()
        resp = await client.post(
            "/api/restore/start", headers=auth_headers, json={"backup_path": upload["backup_path"]}
        )
        job_id = resp.json()["id"]

        await run_restore_job(session_factory, job_id, upload["backup_path"])
        job = (await client.get(f"/api/backup/jobs/{job_id}", headers=auth_headers)).json()
        assert job["status"] == "failed"
        assert "Invalid backup" in job["error"]
        # Nothing was touched
        assert await _supplier_names(client, auth_headers) == []


@pytest.mark.unit
class TestUploadNames:

    @pytest.mark.parametrize("name,ok", [
        ("backup.zip", True),
        ("BACKUP.ZIP", True),
        ("backup.tar.gz", False),
        ("", False),
        (None, False),
    ])
    def test_allowed(self, name, ok):
        assert allowed_upload_name(name) is ok
