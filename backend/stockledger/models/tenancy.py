from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_OWNER = "OWNER"
ROLE_BOSS = "BOSS"
ROLE_EMPLOYEE = "EMPLOYEE"
BUSINESS_ROLES = (ROLE_OWNER, ROLE_BOSS, ROLE_EMPLOYEE)
MANAGER_ROLES = (ROLE_OWNER, ROLE_BOSS)


class Business(db.Model):
    """
    Tenant root: every item, schema, operation and log belongs to one business.

    All ledger queries are scoped by business_id; an id from another business
    is indistinguishable from an unknown id.
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    settings = db.relationship(
        "BusinessSettings",
        uselist=False,
        back_populates="business",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class BusinessSettings(db.Model):
    """Receipt branding; copied onto each SALE so receipts can be reproduced later."""
    __tablename__ = "business_settings"

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, unique=True)

    logo_url = db.Column(db.String(500), nullable=True)
    receipt_header = db.Column(db.Text, nullable=True)
    receipt_footer = db.Column(db.Text, nullable=True)

    business = db.relationship("Business", back_populates="settings")

    def to_dict(self) -> dict:
        return {
            "businessId": self.business_id,
            "logoUrl": self.logo_url,
            "receiptHeader": self.receipt_header,
            "receiptFooter": self.receipt_footer,
        }


class User(db.Model):
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name}


class BusinessMember(db.Model):
    """
    Membership + role of a user in a business.

    The ledger only consults this table through the authorization gate in
    decorators.py; services assume the caller was already allowed in.
    """
    __tablename__ = "business_members"
    __table_args__ = (
        db.UniqueConstraint("business_id", "user_id", name="uq_business_members_business_user"),
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False, default=ROLE_EMPLOYEE)

    business = db.relationship("Business")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<BusinessMember business_id={self.business_id} user_id={self.user_id} role={self.role}>"
