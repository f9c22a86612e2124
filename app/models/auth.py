"""
Worktrack Platform
Identity & project-membership models.

These tables are owned by the surrounding user/project services; the access
and EOD core only reads them.

Models:
    - User: platform user with a single hierarchical role
    - Project: work container tasks belong to
    - ProjectMember: User ↔ Project membership
"""

import enum

from app.models import db
from app.utils import clock


# ═══════════════════════════════════════════════════════════════
# 1. ROLES
# ═══════════════════════════════════════════════════════════════
class UserRole(str, enum.Enum):
    """Hierarchical platform role."""

    MANAGER = "MANAGER"
    GROUP_HEAD = "GROUP_HEAD"
    TEAM_LEAD = "TEAM_LEAD"
    DEVELOPER = "DEVELOPER"

    @classmethod
    def parse(cls, value):
        """Return the matching role, or None for unknown/empty values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return None


# Roles allowed to grant, revoke and review temporary permissions
GRANT_ADMIN_ROLES = frozenset({UserRole.MANAGER, UserRole.GROUP_HEAD})

# Roles that may always assign tasks without a grant
ASSIGNING_ROLES = frozenset({UserRole.MANAGER, UserRole.GROUP_HEAD, UserRole.TEAM_LEAD})


# ═══════════════════════════════════════════════════════════════
# 2. USERS
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=False, unique=True)
    role = db.Column(db.String(20), nullable=False, default=UserRole.DEVELOPER.value, index=True)
    created_at = db.Column(db.DateTime, default=lambda: clock.now())

    project_memberships = db.relationship(
        "ProjectMember", back_populates="user", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def user_role(self):
        return UserRole.parse(self.role)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
        }

    def __repr__(self):
        return f"<User {self.id} {self.role}>"


# ═══════════════════════════════════════════════════════════════
# 3. PROJECTS
# ═══════════════════════════════════════════════════════════════
class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: clock.now())

    def to_dict(self):
        return {"id": self.id, "name": self.name}

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    joined_at = db.Column(db.DateTime, default=lambda: clock.now())

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        db.Index("ix_project_members_project", "project_id"),
        db.Index("ix_project_members_user", "user_id"),
    )

    user = db.relationship("User", back_populates="project_memberships")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }
