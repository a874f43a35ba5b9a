"""
Stepwise
Testing domain models.

Models:
    - TestCase:         ordered test case within a project
    - TestStep:         ordered atomic step within a test case
    - TestCaseVersion:  immutable snapshot of a test case's scalar fields
    - TestStepVersion:  immutable snapshot of one step, owned by a TestCaseVersion

Architecture ref:
    Project ──1:N──▶ Test Case ──1:N──▶ Test Step
    Test Case ──1:N──▶ Test Case Version ──1:N──▶ Test Step Version

Sibling sets (unique, dense ``order`` starting at 1):
    - test cases of one project
    - steps of one test case

Version rows are append-only. A session-level ``before_flush`` guard rejects
any UPDATE of a version row and any DELETE that is not a cascade from the
owning test case / test case version.
"""

from datetime import datetime, timezone

from sqlalchemy import event
from sqlalchemy.orm import Session

from stepwise.core.exceptions import ValidationError
from stepwise.models import db


# ── Constants ────────────────────────────────────────────────────────────

TEST_CASE_STATUSES = {"pending", "draft", "passed", "failed"}

DEFAULT_TEST_CASE_VERSION = "1.0.0"

# Content columns shared by live steps and their snapshots.
STEP_CONTENT_FIELDS = ("action", "data", "expected", "selector", "playwright_code")

# Scalar columns of a test case captured by a snapshot.
CASE_SNAPSHOT_FIELDS = (
    "name", "description", "status", "tags", "version",
    "playwright_test_script", "order",
)


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASE
# ═════════════════════════════════════════════════════════════════════════════

class TestCase(db.Model):
    """
    Test case within a project.

    ``order`` positions the case among its project siblings. It is written
    only by the ordering service.
    """

    __tablename__ = "test_cases"
    __table_args__ = (
        db.Index("ix_test_cases_project_order", "project_id", "order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, default=1, comment="Position within project")

    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(
        db.String(30), default="pending",
        comment="pending | draft | passed | failed",
    )
    tags = db.Column(db.Text, default="", comment="Comma separated tags")
    version = db.Column(
        db.String(20), default=DEFAULT_TEST_CASE_VERSION,
        comment="Semantic version label, bumped on each snapshot",
    )
    playwright_test_script = db.Column(db.Text, default="")

    # ── Audit
    created_by = db.Column(db.String(100), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Relationships
    steps = db.relationship(
        "TestStep", backref="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestStep.order",
    )
    versions = db.relationship(
        "TestCaseVersion", backref="test_case", lazy="select",
        cascade="all, delete-orphan", order_by="TestCaseVersion.version_no",
    )

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "order": self.order,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "tags": self.tags,
            "version": self.version,
            "playwright_test_script": self.playwright_test_script,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.steps]
        return result

    def __repr__(self):
        return f"<TestCase {self.id}: project#{self.project_id} order#{self.order}>"


# ═════════════════════════════════════════════════════════════════════════════
# TEST STEP
# ═════════════════════════════════════════════════════════════════════════════

class TestStep(db.Model):
    """Atomic step within a test case."""

    __tablename__ = "test_steps"
    __table_args__ = (
        db.Index("ix_test_steps_case_order", "test_case_id", "order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    order = db.Column(db.Integer, nullable=False, comment="Position within test case")

    action = db.Column(db.Text, nullable=False, comment="Action to perform")
    data = db.Column(db.Text, default="", comment="Input data for this step")
    expected = db.Column(db.Text, default="", comment="Expected outcome")
    selector = db.Column(db.Text, default="", comment="Target element selector")
    playwright_code = db.Column(db.Text, default="", comment="Generated automation code")
    disabled = db.Column(db.Boolean, nullable=False, default=False)

    # ── Audit
    created_by = db.Column(db.String(100), nullable=True)
    updated_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "order": self.order,
            "action": self.action,
            "data": self.data,
            "expected": self.expected,
            "selector": self.selector,
            "playwright_code": self.playwright_code,
            "disabled": self.disabled,
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TestStep {self.id}: case#{self.test_case_id} order#{self.order}>"


# ═════════════════════════════════════════════════════════════════════════════
# VERSION SNAPSHOTS
# ═════════════════════════════════════════════════════════════════════════════

class TestCaseVersion(db.Model):
    """Point-in-time copy of a test case. Never updated after insert."""

    __tablename__ = "test_case_versions"
    __table_args__ = (
        db.UniqueConstraint("test_case_id", "version_no", name="uq_tcv_case_version_no"),
    )

    id = db.Column(db.Integer, primary_key=True)
    test_case_id = db.Column(
        db.Integer, db.ForeignKey("test_cases.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    version_no = db.Column(db.Integer, nullable=False, comment="Sequential per test case")
    version = db.Column(db.String(20), nullable=False, comment="Semantic label at snapshot time")

    # ── Snapshot of TestCase scalars
    name = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, default="")
    status = db.Column(db.String(30), default="pending")
    tags = db.Column(db.Text, default="")
    playwright_test_script = db.Column(db.Text, default="")
    order = db.Column(db.Integer, nullable=True, comment="Case position at snapshot time")

    change_summary = db.Column(db.Text, default="")
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    step_versions = db.relationship(
        "TestStepVersion", backref="test_case_version", lazy="select",
        cascade="all, delete-orphan", order_by="TestStepVersion.order",
    )

    def to_dict(self, include_steps=False):
        result = {
            "id": self.id,
            "test_case_id": self.test_case_id,
            "version_no": self.version_no,
            "version": self.version,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "tags": self.tags,
            "playwright_test_script": self.playwright_test_script,
            "order": self.order,
            "change_summary": self.change_summary,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_steps:
            result["steps"] = [s.to_dict() for s in self.step_versions]
        return result

    def __repr__(self):
        return f"<TestCaseVersion {self.id}: case#{self.test_case_id} v{self.version_no}>"


class TestStepVersion(db.Model):
    """Frozen copy of a step. ``order`` is captured at snapshot time and never changes."""

    __tablename__ = "test_step_versions"

    id = db.Column(db.Integer, primary_key=True)
    test_case_version_id = db.Column(
        db.Integer, db.ForeignKey("test_case_versions.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    # Plain column: the live step may be deleted after the snapshot.
    source_step_id = db.Column(db.Integer, nullable=True)
    order = db.Column(db.Integer, nullable=False)

    action = db.Column(db.Text, nullable=False)
    data = db.Column(db.Text, default="")
    expected = db.Column(db.Text, default="")
    selector = db.Column(db.Text, default="")
    playwright_code = db.Column(db.Text, default="")
    disabled = db.Column(db.Boolean, nullable=False, default=False)

    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "test_case_version_id": self.test_case_version_id,
            "source_step_id": self.source_step_id,
            "order": self.order,
            "action": self.action,
            "data": self.data,
            "expected": self.expected,
            "selector": self.selector,
            "playwright_code": self.playwright_code,
            "disabled": self.disabled,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TestStepVersion {self.id}: version#{self.test_case_version_id} order#{self.order}>"


# ── Append-only guard ────────────────────────────────────────────────────

@event.listens_for(Session, "before_flush")
def _reject_version_mutation(session, flush_context, instances):
    """Refuse UPDATEs of version rows and DELETEs that are not owner cascades."""
    deleted = set(session.deleted)
    with session.no_autoflush:
        for obj in session.dirty:
            if isinstance(obj, (TestCaseVersion, TestStepVersion)) and obj not in deleted:
                if session.is_modified(obj, include_collections=False):
                    raise ValidationError(f"{type(obj).__name__} rows are immutable")

        for obj in deleted:
            if isinstance(obj, TestCaseVersion) and obj.test_case not in deleted:
                raise ValidationError("TestCaseVersion rows are append-only")
            if isinstance(obj, TestStepVersion) and obj.test_case_version not in deleted:
                raise ValidationError("TestStepVersion rows are append-only")
