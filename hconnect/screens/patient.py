"""
Patient screens – dashboard, booking wizard, medical history and profile.
"""

import asyncio
from datetime import date
from typing import Any, Dict, Optional

from hconnect.analysis import split_patient_appointments
from hconnect.config import (
    PATIENT_RECENT_APPOINTMENTS,
    PATIENT_RECENT_INVOICES,
    PATIENT_RECENT_PRESCRIPTIONS,
    TIME_SLOTS,
)
from hconnect.errors import ValidationError
from hconnect.screens.base import Screen, action, require

NO_PATIENT_RECORD = "No patient record is linked to this account yet."


class PatientDashboard(Screen):
    path = "/patient"
    title = "Dashboard"

    async def load(self) -> Dict[str, Any]:
        patient = await self.patient_row()
        if not patient:
            return {"patient": None, "message": NO_PATIENT_RECORD}
        pid = patient["id"]

        appts_res, invoices_res, consults_res = await asyncio.gather(
            self.gateway.table("appointments")
                .select("*, doctors(specialty, profiles:user_id(full_name)), hospitals(name)")
                .eq("patient_id", pid)
                .order("appointment_date", desc=True)
                .limit(PATIENT_RECENT_APPOINTMENTS)
                .execute(),
            self.gateway.table("invoices").select("*").eq("patient_id", pid)
                .order("created_at", desc=True).limit(PATIENT_RECENT_INVOICES).execute(),
            self.gateway.table("consultations").select("id").eq("patient_id", pid).execute(),
        )

        prescriptions = []
        consultation_ids = [c["id"] for c in consults_res.data or []]
        if consultation_ids:
            rx_res = await self.gateway.table("prescriptions").select("*") \
                .in_("consultation_id", consultation_ids) \
                .order("created_at", desc=True).limit(PATIENT_RECENT_PRESCRIPTIONS).execute()
            prescriptions = rx_res.data or []

        appointments = appts_res.data or []
        upcoming, past = split_patient_appointments(appointments, date.today())
        return {
            "patient": patient,
            "appointments": appointments,
            "upcoming": upcoming,
            "past": past,
            "invoices": invoices_res.data or [],
            "prescriptions": prescriptions,
            "counts": {
                "upcoming": len(upcoming),
                "past": len(past),
                "prescriptions": len(prescriptions),
            },
        }


class BookAppointment(Screen):
    """Wizard: hospital -> doctor -> date and time -> confirm."""

    path = "/patient/book"
    title = "Book Appointment"

    async def load(self) -> Dict[str, Any]:
        hospitals_res = await self.gateway.table("hospitals").select("*").order("name").execute()
        hospital_id = self.params.get("hospital")
        doctors = []
        if hospital_id:
            doctors_res = await self.gateway.table("doctors") \
                .select("*, profiles:user_id(full_name)").eq("hospital_id", hospital_id).execute()
            doctors = doctors_res.data or []

        if not hospital_id:
            step = "hospital"
        elif not self.params.get("doctor"):
            step = "doctor"
        elif not (self.params.get("date") and self.params.get("time")):
            step = "schedule"
        else:
            step = "confirm"
        return {
            "step": step,
            "hospitals": hospitals_res.data or [],
            "doctors": doctors,
            "time_slots": list(TIME_SLOTS),
            "min_date": date.today().isoformat(),
        }

    @action
    async def select_hospital(self, hospital_id: str) -> bool:
        self.params = {"hospital": require(hospital_id, "Please select a hospital")}
        return await self.refresh()

    @action
    async def select_doctor(self, doctor_id: str) -> bool:
        if not self.params.get("hospital"):
            raise ValidationError("Please select a hospital first")
        self.params["doctor"] = require(doctor_id, "Please select a doctor")
        self.params.pop("date", None)
        self.params.pop("time", None)
        return await self.refresh()

    @action
    async def select_slot(self, appointment_date: str, appointment_time: str) -> bool:
        validate_slot(appointment_date, appointment_time)
        self.params["date"] = appointment_date
        self.params["time"] = appointment_time
        return await self.refresh()

    @action
    async def book(self, hospital_id: Optional[str] = None, doctor_id: Optional[str] = None,
                   appointment_date: Optional[str] = None, appointment_time: Optional[str] = None,
                   notes: Optional[str] = None) -> bool:
        hospital_id = hospital_id or self.params.get("hospital")
        doctor_id = doctor_id or self.params.get("doctor")
        appointment_date = appointment_date or self.params.get("date")
        appointment_time = appointment_time or self.params.get("time")

        async def run():
            require(hospital_id, "Please select a hospital")
            require(doctor_id, "Please select a doctor")
            validate_slot(appointment_date, appointment_time)
            patient = await self.patient_row()
            if not patient:
                raise ValidationError("Patient record not found")
            row = {
                "patient_id": patient["id"],
                "doctor_id": doctor_id,
                "hospital_id": hospital_id,
                "appointment_date": appointment_date,
                "appointment_time": appointment_time,
            }
            if notes:
                row["notes"] = notes
            await self.gateway.table("appointments").insert(row).execute()

        booked = await self.mutate(run, "Appointment booked!", refresh=False)
        if booked:
            self.params = {}
            self.redirect_to = "/patient"
        return booked

    def describe_error(self, error) -> str:
        if isinstance(error, ValidationError):
            return error.message
        return f"Booking failed: {error.message}"


def validate_slot(appointment_date: Optional[str], appointment_time: Optional[str]) -> None:
    require(appointment_date, "Please pick a date")
    try:
        day = date.fromisoformat(appointment_date)
    except ValueError:
        raise ValidationError(f"Invalid date: {appointment_date}")
    if day < date.today():
        raise ValidationError("Appointment date cannot be in the past")
    if appointment_time not in TIME_SLOTS:
        raise ValidationError("Please pick one of the available time slots")


class MedicalHistory(Screen):
    path = "/patient/history"
    title = "Medical History"

    async def load(self) -> Dict[str, Any]:
        patient = await self.patient_row()
        if not patient:
            return {"patient": None, "consultations": [], "message": NO_PATIENT_RECORD}
        res = await self.gateway.table("consultations") \
            .select("*, appointments(appointment_date, appointment_time, hospitals(name)), "
                    "doctors(specialty, profiles:user_id(full_name)), prescriptions(*)") \
            .eq("patient_id", patient["id"]) \
            .order("created_at", desc=True) \
            .execute()
        return {"patient": patient, "consultations": res.data or []}


class PatientProfile(Screen):
    path = "/patient/profile"
    title = "Profile"

    async def load(self) -> Dict[str, Any]:
        profile_res, patient_res = await asyncio.gather(
            self.gateway.table("profiles").select("full_name, phone").eq("user_id", self.user_id)
                .maybe_single().execute(),
            self.gateway.table("patients").select("*").eq("user_id", self.user_id)
                .maybe_single().execute(),
        )
        return {"profile": profile_res.data or {}, "patient": patient_res.data}

    @action
    async def save(self, full_name: str, phone: Optional[str] = None, age: Any = None,
                   gender: Optional[str] = None, blood_group: Optional[str] = None,
                   allergies: Optional[str] = None, consent_given: Any = False) -> bool:
        async def run():
            name = require(full_name, "Full name is required")
            patient_values = {
                "age": _parse_age(age),
                "gender": gender or None,
                "blood_group": blood_group or None,
                "allergies": allergies or None,
                "consent_given": _parse_bool(consent_given),
            }
            await _gather_writes(
                self.gateway.table("profiles").update({"full_name": name, "phone": phone or None})
                    .eq("user_id", self.user_id).execute(),
                self.gateway.table("patients").update(patient_values)
                    .eq("user_id", self.user_id).execute(),
            )

        return await self.mutate(run, "Profile updated!")


async def _gather_writes(*writes) -> None:
    """Run writes concurrently; the first failure is raised after all finish."""
    results = await asyncio.gather(*writes, return_exceptions=True)
    for res in results:
        if isinstance(res, BaseException):
            raise res


def _parse_age(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        age = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid age: {value}")
    if age < 0 or age > 150:
        raise ValidationError(f"Invalid age: {value}")
    return age


def _parse_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)
