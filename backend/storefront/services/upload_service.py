# Overview: Bulk image ingestion from ZIP archives with a downloadable CSV report.

"""
ZIP Upload Service

WHY: Product images arrive in bulk. An admin uploads one ZIP; the request
returns immediately with a job id and the archive is processed on the
background executor. Every image entry is stored through the blob store
and a per-file report is written back to the store under reports/.

Job lifecycle: processing -> completed | failed
"""

from __future__ import annotations

import csv
import io
import posixpath
import zipfile

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Admin, UploadJob
from ..time_utils import utcnow
from .notification_service import KIND_ZIP_REPORT, publish
from .storage_service import BlobStore


JOB_PROCESSING = "processing"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"

IMAGE_CONTENT_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

REPORT_HEADER = ["FILENAME", "URL", "STATUS", "ERROR"]


def image_entries(archive: zipfile.ZipFile) -> list[zipfile.ZipInfo]:
    """Image members of the archive, skipping folders and macOS resource forks."""
    entries = []
    for info in archive.infolist():
        if info.is_dir() or info.filename.startswith("__MACOSX/"):
            continue
        name = posixpath.basename(info.filename)
        if name.startswith("."):
            continue
        if posixpath.splitext(name)[1].lower() in IMAGE_CONTENT_TYPES:
            entries.append(info)
    return entries


def build_report(results: list[dict]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(REPORT_HEADER)
    for r in results:
        writer.writerow([r["filename"], r["url"], r["status"], r["error"]])
    return buffer.getvalue().encode("utf-8")


def start_zip_upload(
    zip_bytes: bytes,
    original_zip_name: str,
    admin: Admin,
    *,
    blob_store: BlobStore,
    dispatcher,
) -> UploadJob:
    """
    Register an UploadJob and hand the archive to the background executor.

    The archive is checked up front so an obviously broken upload is
    rejected with a 400 instead of producing a failed job.
    """
    if not zip_bytes:
        raise ValidationError("No ZIP file uploaded.")
    if not zipfile.is_zipfile(io.BytesIO(zip_bytes)):
        raise ValidationError("Invalid file type. Only ZIP files are allowed.")

    job = UploadJob(
        original_zip_name=original_zip_name or "upload.zip",
        status=JOB_PROCESSING,
        uploaded_by_admin_id=admin.id,
    )
    db.session.add(job)
    db.session.commit()

    current_app.logger.info("Upload job %s queued for %s", job.id, job.original_zip_name)
    dispatcher.submit(
        process_zip_upload,
        job.id,
        zip_bytes,
        blob_store=blob_store,
        notifier=dispatcher,
        recipient=admin.email,
    )
    return job


def process_zip_upload(job_id: int, zip_bytes: bytes, *, blob_store: BlobStore, notifier=None, recipient: str | None = None) -> UploadJob | None:
    """
    Store every image in the archive and finalize the job.

    Per-file failures are recorded in the report; only archive-level or
    report-storage failures mark the whole job failed.
    """
    job = db.session.get(UploadJob, job_id)
    if job is None:
        current_app.logger.error("Upload job %s vanished before processing", job_id)
        return None

    results = []
    try:
        with zipfile.ZipFile(io.BytesIO(zip_bytes)) as archive:
            entries = image_entries(archive)
            current_app.logger.info("Job %s: found %d image(s) to process", job_id, len(entries))
            for info in entries:
                filename = posixpath.basename(info.filename)
                content_type = IMAGE_CONTENT_TYPES[posixpath.splitext(filename)[1].lower()]
                try:
                    url = blob_store.store(archive.read(info), filename, content_type)
                    results.append({"filename": filename, "url": url, "status": "success", "error": ""})
                except (OSError, ValueError, zipfile.BadZipFile) as exc:
                    current_app.logger.warning("Job %s: failed to store %s (%s)", job_id, filename, exc)
                    results.append({"filename": filename, "url": "", "status": "failed", "error": str(exc)})

        report_name = f"reports/report-{job_id}-{utcnow().strftime('%Y%m%d%H%M%S')}.csv"
        report_url = blob_store.store(build_report(results), report_name, "text/csv")
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        current_app.logger.exception("Job %s: ZIP processing failed", job_id)
        job.status = JOB_FAILED
        job.error_message = str(exc)
        job.total_files = len(results)
        job.completed_at = utcnow()
        db.session.commit()
        return job

    job.status = JOB_COMPLETED
    job.report_csv_url = report_url
    job.total_files = len(results)
    job.succeeded = sum(1 for r in results if r["status"] == "success")
    job.failed = job.total_files - job.succeeded
    job.completed_at = utcnow()
    db.session.commit()

    current_app.logger.info(
        "Job %s: completed, %d stored, %d failed, report at %s",
        job_id, job.succeeded, job.failed, report_url,
    )
    if recipient:
        publish(notifier, KIND_ZIP_REPORT, {
            "recipients": [recipient],
            "original_zip_name": job.original_zip_name,
            "report_url": report_url,
            "status": job.status,
        })
    return job


def list_upload_jobs() -> list[UploadJob]:
    return db.session.query(UploadJob).order_by(UploadJob.created_at.desc(), UploadJob.id.desc()).all()
