"""
Bulk ZIP image upload tests.

Verifies:
- Only image entries are stored (folders, __MACOSX and dotfiles skipped)
- The CSV report lists every processed file with its outcome
- Per-file storage failures are reported, the job still completes
- Jobs are finalized and the uploader is notified
- The endpoint is restricted to super admins and returns 202
"""

import csv
import io
import zipfile

import pytest

from storefront.errors import ValidationError
from storefront.extensions import db
from storefront.models import UploadJob
from storefront.services import upload_service
from storefront.services.upload_service import JOB_COMPLETED, JOB_FAILED, JOB_PROCESSING


def _zip(entries):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in entries.items():
            archive.writestr(name, data)
    return buffer.getvalue()


SAMPLE_ZIP_ENTRIES = {
    "photos/": b"",
    "photos/TEE-1_front.png": b"png-bytes",
    "photos/TEE-1_back.JPG": b"jpg-bytes",
    "__MACOSX/photos/._TEE-1_front.png": b"junk",
    ".DS_Store": b"junk",
    "readme.txt": b"not an image",
}


class RecordingBlobStore:
    """In-memory blob store; names listed in `broken` raise OSError."""

    def __init__(self, broken=(), fail_reports=False):
        self.blobs = {}
        self.broken = set(broken)
        self.fail_reports = fail_reports

    def store(self, data, name, content_type):
        if name in self.broken or (self.fail_reports and name.startswith("reports/")):
            raise OSError(f"disk full writing {name}")
        self.blobs[name] = (data, content_type)
        return f"http://blobs/{name}"


def _report_rows(blob_store):
    (name, (data, content_type)), = [
        (n, v) for n, v in blob_store.blobs.items() if n.startswith("reports/")
    ]
    assert content_type == "text/csv"
    return list(csv.reader(io.StringIO(data.decode("utf-8"))))


def _job(admin):
    job = UploadJob(original_zip_name="photos.zip", status=JOB_PROCESSING, uploaded_by_admin_id=admin.id)
    db.session.add(job)
    db.session.commit()
    return job


# =============================================================================
# SERVICE
# =============================================================================


class TestProcessZipUpload:

    def test_image_entries_filter(self):
        with zipfile.ZipFile(io.BytesIO(_zip(SAMPLE_ZIP_ENTRIES))) as archive:
            names = [info.filename for info in upload_service.image_entries(archive)]
        assert names == ["photos/TEE-1_front.png", "photos/TEE-1_back.JPG"]

    def test_stores_images_and_writes_report(self, app, super_admin, notifier):
        job = _job(super_admin)
        blob_store = RecordingBlobStore()

        result = upload_service.process_zip_upload(
            job.id, _zip(SAMPLE_ZIP_ENTRIES),
            blob_store=blob_store, notifier=notifier, recipient="root@example.com",
        )

        assert result.status == JOB_COMPLETED
        assert (result.total_files, result.succeeded, result.failed) == (2, 2, 0)
        assert blob_store.blobs["TEE-1_front.png"] == (b"png-bytes", "image/png")
        assert blob_store.blobs["TEE-1_back.JPG"] == (b"jpg-bytes", "image/jpeg")

        rows = _report_rows(blob_store)
        assert rows[0] == ["FILENAME", "URL", "STATUS", "ERROR"]
        assert rows[1] == ["TEE-1_front.png", "http://blobs/TEE-1_front.png", "success", ""]
        assert result.report_csv_url.startswith(f"http://blobs/reports/report-{job.id}-")

        assert notifier.kinds() == ["zip.report"]
        payload = notifier.events[0][1]
        assert payload["recipients"] == ["root@example.com"]
        assert payload["report_url"] == result.report_csv_url

    def test_per_file_failure_is_reported(self, app, super_admin):
        job = _job(super_admin)
        blob_store = RecordingBlobStore(broken={"TEE-1_back.JPG"})

        result = upload_service.process_zip_upload(job.id, _zip(SAMPLE_ZIP_ENTRIES), blob_store=blob_store)

        assert result.status == JOB_COMPLETED
        assert (result.succeeded, result.failed) == (1, 1)
        failed_row = [r for r in _report_rows(blob_store) if r[0] == "TEE-1_back.JPG"][0]
        assert failed_row[2] == "failed"
        assert "disk full" in failed_row[3]

    def test_report_failure_fails_job(self, app, super_admin, notifier):
        job = _job(super_admin)

        result = upload_service.process_zip_upload(
            job.id, _zip(SAMPLE_ZIP_ENTRIES),
            blob_store=RecordingBlobStore(fail_reports=True), notifier=notifier, recipient="root@example.com",
        )

        assert result.status == JOB_FAILED
        assert "disk full" in result.error_message
        assert result.completed_at is not None
        assert notifier.events == []

    def test_missing_job(self, app):
        assert upload_service.process_zip_upload(999, _zip({}), blob_store=RecordingBlobStore()) is None

    @pytest.mark.parametrize("payload", [b"", b"definitely not a zip"])
    def test_start_rejects_bad_archives(self, app, super_admin, notifier, payload):
        with pytest.raises(ValidationError):
            upload_service.start_zip_upload(
                payload, "x.zip", super_admin, blob_store=RecordingBlobStore(), dispatcher=notifier,
            )
        assert db.session.query(UploadJob).count() == 0


# =============================================================================
# ROUTES
# =============================================================================


class TestUploadRoutes:

    def _post(self, client, headers, data):
        return client.post(
            "/api/uploads/zip",
            data={"zipfile": (io.BytesIO(data), "photos.zip")},
            content_type="multipart/form-data",
            headers=headers,
        )

    def test_super_admin_upload(self, app, client, super_admin_headers, notifier):
        resp = self._post(client, super_admin_headers, _zip(SAMPLE_ZIP_ENTRIES))

        assert resp.status_code == 202
        body = resp.get_json()
        assert body["filename"] == "photos.zip"
        # The test dispatcher runs the job inline
        assert body["job"]["status"] == JOB_COMPLETED
        assert body["job"]["succeeded"] == 2
        assert body["job"]["uploaded_by"]["email"] == "root@example.com"
        assert notifier.kinds() == ["zip.report"]

        media = client.get("/media/TEE-1_front.png")
        assert media.status_code == 200
        assert media.data == b"png-bytes"

    def test_plain_admin_forbidden(self, client, admin_headers):
        resp = self._post(client, admin_headers, _zip(SAMPLE_ZIP_ENTRIES))
        assert resp.status_code == 403

    def test_missing_file(self, client, super_admin_headers):
        resp = client.post("/api/uploads/zip", data={}, content_type="multipart/form-data", headers=super_admin_headers)
        assert resp.status_code == 400

    def test_not_a_zip(self, client, super_admin_headers):
        resp = self._post(client, super_admin_headers, b"plain text")
        assert resp.status_code == 400

    def test_list_jobs(self, client, super_admin, super_admin_headers, admin_headers):
        self._post(client, super_admin_headers, _zip(SAMPLE_ZIP_ENTRIES))

        resp = client.get("/api/uploads/jobs", headers=admin_headers)

        assert resp.status_code == 200
        assert [j["original_zip_name"] for j in resp.get_json()] == ["photos.zip"]
