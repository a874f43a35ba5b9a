"""Project domain model — top of the Project -> TestCase -> TestStep hierarchy."""

from datetime import datetime, timezone

from stepwise.models import db


class Project(db.Model):
    """Container for test cases. Owns the test-case sibling set."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    url = db.Column(db.String(500), default="", comment="Application under test")

    # ── Audit
    created_by = db.Column(db.String(100), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    test_cases = db.relationship(
        "TestCase", backref="project", lazy="select",
        cascade="all, delete-orphan", order_by="TestCase.order",
    )

    def to_dict(self, include_counts=False):
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "url": self.url,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_counts:
            result["test_case_count"] = len(self.test_cases)
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.name[:30]}>"
