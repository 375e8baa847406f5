"""
Doctor screens – today's queue, consultation, patient records and hospital requests.
"""

from datetime import date
from typing import Any, Dict, List, Optional

from hconnect.analysis import doctor_queue_counts, filter_by_name
from hconnect.errors import ValidationError
from hconnect.models import PrescriptionEntry
from hconnect.screens.base import Screen, action, require

NO_DOCTOR_RECORD = "No doctor record is linked to this account yet."
CONSULTABLE = ("approved", "in_progress")


class DoctorDashboard(Screen):
    path = "/doctor"
    title = "Dashboard"

    async def load(self) -> Dict[str, Any]:
        doctor = await self.doctor_row()
        if not doctor:
            return {"doctor": None, "appointments": [], "message": NO_DOCTOR_RECORD}
        res = await self.gateway.table("appointments") \
            .select("*, patients(user_id, profiles:user_id(full_name)), hospitals(name)") \
            .eq("doctor_id", doctor["id"]) \
            .eq("appointment_date", date.today().isoformat()) \
            .order("appointment_time") \
            .execute()
        appointments = res.data or []
        for appt in appointments:
            if appt.get("status") in CONSULTABLE:
                appt["consult_path"] = f"/doctor/consult?appointment={appt['id']}"
        return {
            "doctor": doctor,
            "appointments": appointments,
            "counts": doctor_queue_counts(appointments),
        }


class Consultation(Screen):
    path = "/doctor/consult"
    title = "Consultation"

    async def load(self) -> Dict[str, Any]:
        appointment_id = self.params.get("appointment")
        if not appointment_id:
            return {
                "appointment": None,
                "message": "Select an appointment from your dashboard to start a consultation.",
            }
        res = await self.gateway.table("appointments") \
            .select("*, patients(*, profiles:user_id(full_name, phone)), hospitals(name)") \
            .eq("id", appointment_id) \
            .maybe_single() \
            .execute()
        if not res.data:
            return {"appointment": None, "message": "Appointment not found."}
        return {"appointment": res.data}

    @action
    async def save(self, observations: str = "", prescriptions: Optional[List[Dict[str, Any]]] = None) -> bool:
        appointment = self.data.get("appointment")

        async def run():
            if not appointment:
                raise ValidationError("Select an appointment first")
            entries = [e for e in parse_prescriptions(prescriptions) if e.medicine_name.strip()]
            doctor = await self.doctor_row()
            if not doctor:
                raise ValidationError("Doctor record not found")

            consult_res = await self.gateway.table("consultations").insert({
                "appointment_id": appointment["id"],
                "doctor_id": doctor["id"],
                "patient_id": appointment["patient_id"],
                "observations": observations or None,
            }).select().single().execute()

            if entries:
                await self.gateway.table("prescriptions").insert([
                    {
                        "consultation_id": consult_res.data["id"],
                        "medicine_name": e.medicine_name.strip(),
                        "dosage": e.dosage,
                        "duration": e.duration,
                    }
                    for e in entries
                ]).execute()

            await self.gateway.table("appointments").update({"status": "completed"}) \
                .eq("id", appointment["id"]).execute()

        saved = await self.mutate(run, "Consultation saved!", refresh=False)
        if saved:
            self.redirect_to = "/doctor"
        return saved

    def describe_error(self, error) -> str:
        if isinstance(error, ValidationError):
            return error.message
        return f"Failed: {error.message}"


def parse_prescriptions(raw: Optional[List[Any]]) -> List[PrescriptionEntry]:
    entries = []
    for item in raw or []:
        if isinstance(item, PrescriptionEntry):
            entries.append(item)
        elif isinstance(item, dict):
            entries.append(PrescriptionEntry(
                medicine_name=str(item.get("medicine_name") or ""),
                dosage=str(item.get("dosage") or ""),
                duration=str(item.get("duration") or ""),
            ))
        else:
            raise ValidationError(f"Invalid prescription entry: {item!r}")
    return entries


class PatientRecords(Screen):
    path = "/doctor/records"
    title = "Patient Records"

    async def load(self) -> Dict[str, Any]:
        doctor = await self.doctor_row()
        if not doctor:
            return {"doctor": None, "patients": [], "message": NO_DOCTOR_RECORD}

        cons_res = await self.gateway.table("consultations").select("patient_id") \
            .eq("doctor_id", doctor["id"]).execute()
        patient_ids = sorted({c["patient_id"] for c in cons_res.data or [] if c.get("patient_id")})

        patients = []
        if patient_ids:
            pats_res = await self.gateway.table("patients") \
                .select("*, profiles:user_id(full_name, phone)").in_("id", patient_ids).execute()
            patients = pats_res.data or []

        view = {
            "doctor": doctor,
            "patients": filter_by_name(patients, self.params.get("q", "")),
            "selected": None,
            "consultations": [],
        }
        selected_id = self.params.get("patient")
        if selected_id and selected_id in patient_ids:
            view["selected"] = next((p for p in patients if p["id"] == selected_id), None)
            hist_res = await self.gateway.table("consultations") \
                .select("*, appointments(appointment_date), prescriptions(*)") \
                .eq("patient_id", selected_id) \
                .order("created_at", desc=True) \
                .execute()
            view["consultations"] = hist_res.data or []
        return view

    @action
    async def search(self, query: str = "") -> bool:
        self.params["q"] = query or ""
        return await self.refresh()

    @action
    async def select_patient(self, patient_id: str) -> bool:
        self.params["patient"] = require(patient_id, "Please select a patient")
        return await self.refresh()


class HospitalRequests(Screen):
    path = "/doctor/requests"
    title = "Hospital Requests"

    async def load(self) -> Dict[str, Any]:
        doctor = await self.doctor_row()
        if not doctor:
            return {"doctor": None, "requests": [], "message": NO_DOCTOR_RECORD}
        res = await self.gateway.table("doctor_requests") \
            .select("*, hospitals(name, city, address)") \
            .eq("doctor_id", doctor["id"]) \
            .eq("status", "pending") \
            .execute()
        return {"doctor": doctor, "requests": res.data or []}

    async def _pending_request(self, request_id: str) -> Dict[str, Any]:
        doctor = self.data.get("doctor")
        if not doctor:
            raise ValidationError("Doctor record not found")
        res = await self.gateway.table("doctor_requests").select("id, hospital_id, status") \
            .eq("id", require(request_id, "Please select a request")) \
            .eq("doctor_id", doctor["id"]) \
            .maybe_single().execute()
        if not res.data or res.data.get("status") != "pending":
            raise ValidationError("Request is no longer pending")
        return res.data

    @action
    async def accept(self, request_id: str) -> bool:
        async def run():
            request = await self._pending_request(request_id)
            await self.gateway.table("doctor_requests").update({"status": "accepted"}) \
                .eq("id", request["id"]).execute()
            await self.gateway.table("doctors").update({"hospital_id": request["hospital_id"]}) \
                .eq("id", self.data["doctor"]["id"]).execute()

        return await self.mutate(run, "Request accepted! You are now part of the hospital.")

    @action
    async def decline(self, request_id: str) -> bool:
        async def run():
            request = await self._pending_request(request_id)
            await self.gateway.table("doctor_requests").update({"status": "declined"}) \
                .eq("id", request["id"]).execute()

        return await self.mutate(run, "Request declined")
