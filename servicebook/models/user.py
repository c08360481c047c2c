from servicebook.extensions import db
from servicebook.utils.time_utils import utcnow
import uuid


def gen_uuid(prefix=None):
    uid = str(uuid.uuid4())
    return f"{prefix}-{uid}" if prefix else uid


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(50), primary_key=True, default=lambda: gen_uuid("usr"))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(255))
    phone = db.Column(db.String(32))
    role = db.Column(db.String(50), nullable=False, default="customer")
    # device token used for push delivery
    fcm_token = db.Column(db.String(512), nullable=True)
    joined_at = db.Column(db.DateTime, default=utcnow)

    @property
    def display_name(self):
        return self.full_name or self.email

