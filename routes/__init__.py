from .health import health_bp
from .auth import auth_bp
from .booking import booking_bp
from .facilities import facility_bp
from .memberships import membership_bp
from .admin import admin_bp
