from app.models.user import User
from app.models.doctor import Doctor
from app.models.consultation import Consultation
from app.models.appointment import Appointment
from app.models.meeting import Meeting, MeetingParticipant
from app.models.google import GoogleToken
