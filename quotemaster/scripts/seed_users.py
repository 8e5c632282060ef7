"""Seed roles and default dev users.

Run with: python -m quotemaster.scripts.seed_users
"""

import logging

from sqlalchemy.orm import Session

from quotemaster.core.security import create_access_token_for_subject
from quotemaster.database import SessionLocal
from quotemaster.models.domain import Role, RoleName, User

logger = logging.getLogger("quotemaster.seed")

ROLE_DESCRIPTIONS = {
    RoleName.admin: "Administrator",
    RoleName.procurement_manager: "Procurement manager (approves prices)",
    RoleName.procurement_staff: "Procurement staff (compares and negotiates)",
    RoleName.viewer: "Read-only access to comparisons",
}

DEV_USERS = [
    ("admin@quotemaster.local", "Admin", RoleName.admin),
    ("manager@quotemaster.local", "Procurement Manager", RoleName.procurement_manager),
    ("staff@quotemaster.local", "Procurement Staff", RoleName.procurement_staff),
    ("viewer@quotemaster.local", "Viewer", RoleName.viewer),
]


def ensure_base_roles(db: Session) -> dict[RoleName, Role]:
    roles = {r.name: r for r in db.query(Role).all()}
    for role_name, description in ROLE_DESCRIPTIONS.items():
        if role_name not in roles:
            role = Role(name=role_name, description=description)
            db.add(role)
            roles[role_name] = role
    db.flush()
    return roles


def seed_dev_users(db: Session) -> list[str]:
    """Create missing roles and dev users; returns the emails created."""

    roles = ensure_base_roles(db)
    created: list[str] = []
    for email, name, role_name in DEV_USERS:
        if db.query(User).filter(User.email == email).first():
            continue
        db.add(User(email=email, name=name, role_id=roles[role_name].id, active=True))
        created.append(email)
    db.commit()
    return created


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    db = SessionLocal()
    try:
        created = seed_dev_users(db)
        logger.info("dev_users_seeded", extra={"created_users": created})
        for email, _, role_name in DEV_USERS:
            print(f"{role_name.value:<20} {email:<30} {create_access_token_for_subject(email)}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
