"""
Modelos SQLAlchemy: exportar todos para que Alembic los detecte.
"""

from app.models.user import User, UserRole, UserStatus
from app.models.assignment import UserAssignment
from app.models.patient import Patient
from app.models.consultation import Consultation
from app.models.payment import Payment, PaymentMethod
from app.models.appointment import Appointment, AppointmentStatus
from app.models.archive import Archive, ArchiveType
