# opticlinic/enums.py
# Shared enums. Imported by both the ORM models and the pydantic schemas so the
# HTTP client can use the schemas without pulling in a database engine.
import enum


class UserRole(str, enum.Enum):
    admin = "admin"
    specialist = "specialist"
    receptionist = "receptionist"


class AppointmentStatus(str, enum.Enum):
    scheduled = "scheduled"
    in_progress = "in_progress"
    paused = "paused"
    completed = "completed"


# Statuses in which an appointment is held by a specialist.
HELD_STATUSES = (AppointmentStatus.in_progress, AppointmentStatus.paused)


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    TRANSITION = "TRANSITION"
    ACCESS_DENIED = "ACCESS_DENIED"
    EXPORT = "EXPORT"
