from models import db
from models.user import Role
from utils.logger import get_logger

logger = get_logger(__name__)

# ADMIN is the only role that may manage memberships
DEFAULT_ROLES = ("MEMBER", "STAFF", "ADMIN")


def seed_roles():
    existing = {name for (name,) in db.session.query(Role.name)}
    missing = [name for name in DEFAULT_ROLES if name not in existing]
    for name in missing:
        db.session.add(Role(name=name))
    db.session.commit()
    if missing:
        logger.info("Seeded roles: %s", ", ".join(missing))
    return missing
