"""Core data models for identity, projects, public feedback, and cached analysis documents."""
import uuid
from datetime import datetime

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db


def generate_uuid() -> str:
	return str(uuid.uuid4())


def _iso(value: datetime | None) -> str | None:
	return value.isoformat() if value else None


USER_ROLES: tuple[str, ...] = (
	"ADMIN",
	"CONTRACTOR",
	"GOVERNMENT",
	"PUBLIC",
)

REPORT_STATUSES: tuple[str, ...] = (
	"pending",
	"investigating",
	"resolved",
	"rejected",
)

REPORT_ATTACHMENT_TYPES: tuple[str, ...] = (
	"image",
	"pdf",
	"none",
)

NOTIFICATION_TYPES: tuple[str, ...] = (
	"PROJECT_UPDATE",
	"NEW_COMMENT",
	"CORRUPTION_REPORT",
	"REPORT_STATUS",
)


class User(UserMixin, db.Model):
	__tablename__ = "users"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	name = db.Column(db.String(150), nullable=False)
	email = db.Column(db.String(255), unique=True, nullable=False, index=True)
	phone = db.Column(db.String(30), nullable=True)
	password_hash = db.Column(db.String(255), nullable=False)
	role = db.Column(db.String(20), nullable=False, default="PUBLIC", index=True)
	is_active = db.Column(db.Boolean, default=True, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	last_login_at = db.Column(db.DateTime, nullable=True)

	__table_args__ = (
		db.CheckConstraint("role IN ('ADMIN','CONTRACTOR','GOVERNMENT','PUBLIC')", name="ck_user_role"),
	)

	audit_logs = db.relationship("AuditLog", back_populates="user", lazy="dynamic")

	def set_password(self, password: str) -> None:
		self.password_hash = generate_password_hash(password, method="pbkdf2:sha256", salt_length=16)

	def check_password(self, password: str) -> bool:
		return check_password_hash(self.password_hash, password)

	@property
	def is_admin(self) -> bool:
		return self.role == "ADMIN"

	def public_payload(self) -> dict:
		return {"id": self.id, "name": self.name}

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"name": self.name,
			"email": self.email,
			"phone": self.phone,
			"role": self.role,
			"createdAt": _iso(self.created_at),
		}


class AuditLog(db.Model):
	__tablename__ = "audit_logs"

	id = db.Column(db.Integer, primary_key=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	action_type = db.Column(db.String(50), nullable=False, index=True)
	entity_id = db.Column(db.String(36), nullable=True, index=True)
	ip_address = db.Column(db.String(64), nullable=True)
	user_agent = db.Column(db.String(255), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	user = db.relationship("User", back_populates="audit_logs")


class Project(db.Model):
	__tablename__ = "projects"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	title = db.Column(db.String(255), nullable=False)
	banner_url = db.Column(db.String(1024), nullable=False, default="")
	pdf_url = db.Column(db.String(1024), nullable=False, default="")
	description = db.Column(db.Text, nullable=True)
	location = db.Column(db.JSON, nullable=False, default=dict)
	budget = db.Column(db.Float, nullable=False, default=0)
	expenditure = db.Column(db.Float, nullable=False, default=0)
	likes = db.Column(db.JSON, nullable=False, default=list)
	dislikes = db.Column(db.JSON, nullable=False, default=list)
	inventory = db.Column(db.JSON, nullable=False, default=list)
	used_items = db.Column(db.JSON, nullable=False, default=list)
	updates = db.Column(db.JSON, nullable=False, default=list)
	contractor_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	government_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	completed_at = db.Column(db.DateTime, nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
	version = db.Column(db.Integer, nullable=False)

	__table_args__ = (
		db.CheckConstraint("budget >= 0", name="ck_project_budget"),
		db.CheckConstraint("expenditure >= 0", name="ck_project_expenditure"),
	)
	__mapper_args__ = {"version_id_col": version}

	contractor = db.relationship("User", foreign_keys=[contractor_id])
	government = db.relationship("User", foreign_keys=[government_id])
	comments = db.relationship("Comment", back_populates="project", lazy="dynamic", cascade="all, delete-orphan")
	reports = db.relationship("CorruptionReport", back_populates="project", lazy="dynamic", cascade="all, delete-orphan")
	analysis = db.relationship("ProjectAnalysis", back_populates="project", uselist=False, cascade="all, delete-orphan")

	def is_stakeholder(self, user) -> bool:
		"""Owning government, assigned contractor, or an admin."""
		if not user or not getattr(user, "is_authenticated", False):
			return False
		return user.is_admin or user.id in (self.contractor_id, self.government_id)

	@property
	def remaining_budget(self) -> float:
		return (self.budget or 0) - (self.expenditure or 0)

	def summary_payload(self) -> dict:
		return {
			"id": self.id,
			"title": self.title,
			"bannerUrl": self.banner_url,
			"contractor": self.contractor.public_payload() if self.contractor else None,
			"budget": self.budget,
			"expenditure": self.expenditure,
			"createdAt": _iso(self.created_at),
			"updatedAt": _iso(self.updated_at),
		}

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"title": self.title,
			"bannerUrl": self.banner_url,
			"pdfUrl": self.pdf_url,
			"description": self.description,
			"location": self.location or {},
			"budget": self.budget,
			"expenditure": self.expenditure,
			"likes": list(self.likes or []),
			"dislikes": list(self.dislikes or []),
			"inventory": list(self.inventory or []),
			"usedItems": list(self.used_items or []),
			"updates": list(self.updates or []),
			"contractor": self.contractor.public_payload() if self.contractor else None,
			"government": self.government.public_payload() if self.government else None,
			"completed": self.completed_at is not None,
			"completedAt": _iso(self.completed_at),
			"createdAt": _iso(self.created_at),
			"updatedAt": _iso(self.updated_at),
		}


class Comment(db.Model):
	__tablename__ = "comments"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
	user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	parent_comment_id = db.Column(db.String(36), db.ForeignKey("comments.id"), nullable=True, index=True)
	content = db.Column(db.Text, nullable=False)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	project = db.relationship("Project", back_populates="comments")
	user = db.relationship("User")
	parent = db.relationship("Comment", remote_side=[id])

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"project": self.project_id,
			"user": self.user.public_payload() if self.user else None,
			"parentComment": self.parent_comment_id,
			"content": self.content,
			"createdAt": _iso(self.created_at),
			"updatedAt": _iso(self.updated_at),
		}


class CorruptionReport(db.Model):
	__tablename__ = "corruption_reports"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
	description = db.Column(db.Text, nullable=False)
	file_url = db.Column(db.String(1024), nullable=False, default="")
	file_type = db.Column(db.String(10), nullable=False, default="none")
	reporter_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)
	is_anonymous = db.Column(db.Boolean, nullable=False, default=True)
	ai_analysis = db.Column(db.JSON, nullable=True)
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	rejection_reason = db.Column(db.String(500), nullable=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(
			"status IN ('pending','investigating','resolved','rejected')",
			name="ck_report_status",
		),
		db.CheckConstraint("file_type IN ('image','pdf','none')", name="ck_report_file_type"),
	)

	project = db.relationship("Project", back_populates="reports")
	reporter = db.relationship("User")

	@property
	def severity(self) -> float:
		try:
			return float((self.ai_analysis or {}).get("severity") or 0)
		except (TypeError, ValueError):
			return 0.0

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"project": {"id": self.project_id, "title": self.project.title if self.project else None},
			"description": self.description,
			"fileUrl": self.file_url,
			"fileType": self.file_type,
			"reportedBy": {
				"user": self.reporter.public_payload() if self.reporter else None,
				"isAnonymous": self.is_anonymous,
			},
			"aiAnalysis": self.ai_analysis or {},
			"status": self.status,
			"rejectionReason": self.rejection_reason,
			"createdAt": _iso(self.created_at),
			"updatedAt": _iso(self.updated_at),
		}


class Notification(db.Model):
	__tablename__ = "notifications"

	id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
	recipient_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
	sender_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
	type = db.Column(db.String(30), nullable=False, index=True)
	message = db.Column(db.String(500), nullable=False)
	entity_id = db.Column(db.String(36), nullable=True)
	entity_type = db.Column(db.String(30), nullable=True)
	extra_metadata = db.Column("metadata", db.JSON, nullable=True)
	is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)
	created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

	def to_dict(self) -> dict:
		return {
			"id": self.id,
			"recipientId": self.recipient_id,
			"senderId": self.sender_id,
			"type": self.type,
			"message": self.message,
			"entityId": self.entity_id,
			"entityType": self.entity_type,
			"metadata": self.extra_metadata or {},
			"isRead": self.is_read,
			"createdAt": _iso(self.created_at),
		}


class ProjectAnalysis(db.Model):
	__tablename__ = "project_analyses"

	id = db.Column(db.Integer, primary_key=True)
	project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, unique=True, index=True)
	last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	support_metrics = db.Column(db.JSON, nullable=False, default=dict)
	progress_metrics = db.Column(db.JSON, nullable=False, default=dict)
	financial_metrics = db.Column(db.JSON, nullable=False, default=dict)
	contractor_metrics = db.Column(db.JSON, nullable=False, default=dict)
	comment_analysis = db.Column(db.JSON, nullable=False, default=dict)
	corruption_report_metrics = db.Column(db.JSON, nullable=False, default=dict)

	project = db.relationship("Project", back_populates="analysis")

	def to_dict(self) -> dict:
		return {
			"project": self.project_id,
			"lastUpdated": _iso(self.last_updated),
			"supportMetrics": self.support_metrics or {},
			"progressMetrics": self.progress_metrics or {},
			"financialMetrics": self.financial_metrics or {},
			"contractorMetrics": self.contractor_metrics or {},
			"commentAnalysis": self.comment_analysis or {},
			"corruptionReportMetrics": self.corruption_report_metrics or {},
		}


class AggregateAnalysis(db.Model):
	__tablename__ = "aggregate_analyses"

	id = db.Column(db.Integer, primary_key=True)
	government_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, unique=True, index=True)
	last_updated = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
	project_count = db.Column(db.JSON, nullable=False, default=dict)
	overall_satisfaction = db.Column(db.JSON, nullable=False, default=dict)
	financial_summary = db.Column(db.JSON, nullable=False, default=dict)
	contractor_performance = db.Column(db.JSON, nullable=False, default=dict)
	public_sentiment = db.Column(db.JSON, nullable=False, default=dict)
	corruption_reports = db.Column(db.JSON, nullable=False, default=dict)

	government = db.relationship("User")

	def to_dict(self) -> dict:
		return {
			"governmentId": self.government_id,
			"lastUpdated": _iso(self.last_updated),
			"projectCount": self.project_count or {},
			"overallSatisfaction": self.overall_satisfaction or {},
			"financialSummary": self.financial_summary or {},
			"contractorPerformance": self.contractor_performance or {},
			"publicSentiment": self.public_sentiment or {},
			"corruptionReports": self.corruption_reports or {},
		}
