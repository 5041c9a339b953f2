# Overview: Flask API routes for bulk image uploads; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_admin, require_super_admin
from ..errors import StorefrontError
from ..extensions import db
from ..models import Admin
from ..services import upload_service


uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/uploads")


@uploads_bp.post("/zip")
@require_super_admin
def upload_zip_route():
    """
    Accept a ZIP of product images for background processing.

    Returns 202 with the job; the report link is emailed to the uploader
    and also appears on the job once it completes.
    """
    upload = request.files.get("zipfile") or request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "No ZIP file uploaded."}), 400

    try:
        admin = db.session.get(Admin, g.admin_id)
        job = upload_service.start_zip_upload(
            upload.stream.read(),
            upload.filename,
            admin,
            blob_store=current_app.extensions["storefront.blob_store"],
            dispatcher=current_app.extensions["storefront.notifier"],
        )
        return jsonify({
            "message": "File received. The ZIP file is being processed. You will receive an email notification with a link to the report once completed.",
            "filename": job.original_zip_name,
            "job": job.to_dict(),
        }), 202

    except StorefrontError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to queue ZIP upload")
        return jsonify({"error": "Internal server error"}), 500


@uploads_bp.get("/jobs")
@require_admin
def list_jobs_route():
    jobs = upload_service.list_upload_jobs()
    return jsonify([job.to_dict() for job in jobs]), 200
