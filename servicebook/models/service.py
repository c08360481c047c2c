from servicebook.extensions import db
import uuid


def gen_service_id():
    return f"svc-{str(uuid.uuid4())[:8]}"


class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.String(50), primary_key=True, default=gen_service_id)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
