from trustcore.extensions import db
from trustcore.utils import utcnow


class IntegrityBaseline(db.Model):
    """
    Snapshot único: [{"path": ..., "hash": ...}, ...].
    Regenerar sobrescribe la lista completa.
    """

    __tablename__ = "integrity_baselines"

    id = db.Column(db.Integer, primary_key=True)
    files = db.Column(db.JSON, nullable=False, default=list)
    generated_at = db.Column(db.DateTime, nullable=False, default=utcnow)
