# clinic/management/commands/ensure_test_users.py
from django.core.management.base import BaseCommand
from django.contrib.auth.hashers import make_password
from clinic.models import AppointmentType, Department, DoctorProfile, PatientProfile, User

TEST_SET = [
    ("admin1", "admin"),
    ("doctor1", "doctor"),
    ("nurse1", "nurse"),
    ("reception1", "receptionist"),
    ("patient1", "patient"),
]

APPOINTMENT_TYPES = [
    ("Consultation", 30, "#3b82f6"),
    ("Follow-up", 20, "#10b981"),
    ("Procedure", 60, "#f59e0b"),
]


class Command(BaseCommand):
    help = "Ensure one test user per role, their profiles and the basic appointment types exist (password=123456, idempotent)."

    def handle(self, *args, **opts):
        dept, _ = Department.objects.get_or_create(code="GEN", defaults={"name": "General Medicine"})
        for username, role in TEST_SET:
            u, created = User.objects.get_or_create(
                username=username,
                defaults={"role": role, "password": make_password("123456"), "is_active": True, "department": dept},
            )
            if not created:
                # reset password, role and active flag
                u.password = make_password("123456")
                u.role = role
                u.is_active = True
                u.save(update_fields=["password", "role", "is_active"])
            if role == User.ROLE_DOCTOR:
                DoctorProfile.objects.get_or_create(
                    user=u, defaults={"department": dept, "available_days": [1, 2, 3, 4, 5]},
                )
            elif role == User.ROLE_PATIENT:
                PatientProfile.objects.get_or_create(user=u, defaults={"name": username})
            self.stdout.write(self.style.SUCCESS(f"ok: {username} ({role})"))
        for name, duration, color in APPOINTMENT_TYPES:
            AppointmentType.objects.get_or_create(name=name, defaults={"duration": duration, "color": color})
        self.stdout.write(self.style.SUCCESS("All test users ensured."))
