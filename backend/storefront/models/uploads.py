from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class UploadJob(db.Model):
    """
    Status record for one bulk ZIP image upload.

    Unrelated to order processing: jobs never touch the Stock Ledger.
    """
    __tablename__ = "upload_jobs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    original_zip_name = db.Column(db.String(255), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="processing", index=True)
    report_csv_url = db.Column(db.String(1024), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    total_files = db.Column(db.Integer, nullable=False, default=0)
    succeeded = db.Column(db.Integer, nullable=False, default=0)
    failed = db.Column(db.Integer, nullable=False, default=0)

    uploaded_by_admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    uploaded_by = db.relationship("Admin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "original_zip_name": self.original_zip_name,
            "status": self.status,
            "report_csv_url": self.report_csv_url,
            "error_message": self.error_message,
            "total_files": self.total_files,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "uploaded_by_admin_id": self.uploaded_by_admin_id,
            "uploaded_by": (
                {"name": self.uploaded_by.name, "email": self.uploaded_by.email}
                if self.uploaded_by else None
            ),
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
