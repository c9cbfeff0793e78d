from models.db import db
from models.types import UTCDateTime, utcnow

# association table for many-to-many User <-> Role
user_roles = db.Table(
    "user_roles",
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("role_id", db.Integer, db.ForeignKey("roles.id"), primary_key=True),
)

USER_STATUSES = ("active", "inactive", "suspended", "pending")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(100), nullable=True)
    last_name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)

    # status values: active, inactive, suspended, pending
    status = db.Column(db.String(20), nullable=False, default="active")

    created_at = db.Column(UTCDateTime, default=utcnow, nullable=False)
    last_login = db.Column(UTCDateTime, nullable=True)

    roles = db.relationship("Role", secondary=user_roles, back_populates="users")

    @property
    def role_names(self):
        return {r.name for r in self.roles}


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), unique=True, nullable=False)  # MEMBER, STAFF, ADMIN

    users = db.relationship("User", secondary=user_roles, back_populates="roles")
