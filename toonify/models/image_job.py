import uuid
from datetime import datetime, timezone
from toonify.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


class ImageJob(db.Model):
    __tablename__ = "image_jobs"

    NOT_TOONIFIED = "not_toonified"
    IN_QUEUE = "in_queue"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    STATUSES = {NOT_TOONIFIED, IN_QUEUE, PROCESSING, COMPLETE, ERROR}

    # Allowed moves; in_queue -> in_queue absorbs duplicate payment returns
    TRANSITIONS = {
        NOT_TOONIFIED: {IN_QUEUE},
        IN_QUEUE: {IN_QUEUE, PROCESSING},
        PROCESSING: {COMPLETE, ERROR},
        ERROR: {IN_QUEUE},
        COMPLETE: set(),
    }

    REGULAR = "regular"
    PREMIUM = "premium"
    QUALITY_TIERS = {REGULAR, PREMIUM}

    PAYMENT_UNPAID = "unpaid"
    PAYMENT_COMPLETED = "completed"

    id = db.Column(
        db.String(32), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    owner_id = db.Column(db.String(64), nullable=False, index=True)
    original_image_url = db.Column(db.String(1024), nullable=False)
    original_storage_key = db.Column(db.String(512), nullable=False, default="")
    toonified_image_url = db.Column(db.String(1024))
    toonified_storage_key = db.Column(db.String(512))
    quality_tier = db.Column(db.String(20), nullable=False, default=REGULAR)
    status = db.Column(
        db.String(20), nullable=False, default=NOT_TOONIFIED, index=True
    )
    payment_session_id = db.Column(db.String(255))
    payment_status = db.Column(
        db.String(20), nullable=False, default=PAYMENT_UNPAID
    )
    error_message = db.Column(db.String(500))
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def can_transition(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, set())

    @property
    def is_terminal(self):
        return self.status == self.COMPLETE

    def to_dict(self):
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "originalImageUrl": self.original_image_url,
            "toonifiedImageUrl": self.toonified_image_url,
            "qualityTier": self.quality_tier,
            "status": self.status,
            "paymentSessionId": self.payment_session_id,
            "paymentStatus": self.payment_status,
            "errorMessage": self.error_message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ImageJob {self.id} [{self.status}]>"
