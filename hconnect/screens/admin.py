"""
Admin screens – hospital dashboard, doctors, appointments, billing and settings.

The admin's hospital is the ``hospital_id`` on their own ``doctors`` row.
"""

import asyncio
from datetime import date
from typing import Any, Dict, List, Optional

from hconnect.analysis import billing_summary, charges_total, distinct_count, paid_revenue
from hconnect.config import (
    ADMIN_APPOINTMENT_LIMIT,
    APPOINTMENT_STATUSES,
    HOSPITAL_ADMIN_SPECIALTY,
    UNIQUE_VIOLATION,
)
from hconnect.errors import GatewayError, ValidationError
from hconnect.models import ChargeItem
from hconnect.screens.base import Screen, action, require

NO_HOSPITAL = "No hospital is linked to this account. Set one up under Hospital settings."

# Allowed invoice status moves: current -> next.
INVOICE_TRANSITIONS = {"draft": "sent", "sent": "paid"}


class AdminScreen(Screen):
    """Resolves the admin's hospital before loading hospital-scoped data."""

    async def load(self) -> Dict[str, Any]:
        hospital_id = await self.admin_hospital_id()
        if not hospital_id:
            return {"hospital_id": None, "message": NO_HOSPITAL}
        data = await self.load_hospital(hospital_id)
        data["hospital_id"] = hospital_id
        return data

    async def load_hospital(self, hospital_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @property
    def hospital_id(self) -> Optional[str]:
        return self.data.get("hospital_id")

    def _require_hospital(self) -> str:
        if not self.hospital_id:
            raise ValidationError(NO_HOSPITAL)
        return self.hospital_id


class AdminDashboard(AdminScreen):
    path = "/admin"
    title = "Dashboard"

    async def load_hospital(self, hospital_id: str) -> Dict[str, Any]:
        today = date.today().isoformat()
        appts_res, doctors_res, patients_res, today_res, paid_res = await asyncio.gather(
            self.gateway.table("appointments").select("id", count="exact", head=True)
                .eq("hospital_id", hospital_id).execute(),
            self.gateway.table("doctors").select("id", count="exact", head=True)
                .eq("hospital_id", hospital_id).execute(),
            self.gateway.table("appointments").select("patient_id")
                .eq("hospital_id", hospital_id).execute(),
            self.gateway.table("appointments")
                .select("*, patients(profiles:user_id(full_name)), doctors(profiles:user_id(full_name))")
                .eq("hospital_id", hospital_id)
                .eq("appointment_date", today)
                .order("appointment_time")
                .execute(),
            self.gateway.table("invoices").select("total")
                .eq("hospital_id", hospital_id).eq("status", "paid").execute(),
        )
        return {
            "stats": {
                "appointments": appts_res.count or 0,
                "doctors": doctors_res.count or 0,
                "patients": distinct_count(patients_res.data, "patient_id"),
                "revenue": paid_revenue(paid_res.data),
            },
            "today": today_res.data or [],
        }


class DoctorManagement(AdminScreen):
    path = "/admin/doctors"
    title = "Doctors"

    async def load_hospital(self, hospital_id: str) -> Dict[str, Any]:
        current_res, others_res, requests_res = await asyncio.gather(
            self.gateway.table("doctors").select("*, profiles:user_id(full_name, phone)")
                .eq("hospital_id", hospital_id).execute(),
            self.gateway.table("doctors").select("*, profiles:user_id(full_name, phone)")
                .or_(f"hospital_id.neq.{hospital_id},hospital_id.is.null").execute(),
            self.gateway.table("doctor_requests").select("*, doctors(*, profiles:user_id(full_name))")
                .eq("hospital_id", hospital_id).eq("status", "pending").execute(),
        )
        return {
            "doctors": current_res.data or [],
            "available_doctors": [d for d in others_res.data or [] if d.get("user_id") != self.user_id],
            "pending_requests": requests_res.data or [],
        }

    @action
    async def edit_specialty(self, doctor_id: str, specialty: str) -> bool:
        async def run():
            hospital_id = self._require_hospital()
            await self.gateway.table("doctors") \
                .update({"specialty": require(specialty, "Specialty is required")}) \
                .eq("id", require(doctor_id, "Please select a doctor")) \
                .eq("hospital_id", hospital_id).execute()

        return await self.mutate(run, "Doctor updated!")

    @action
    async def remove_doctor(self, doctor_id: str) -> bool:
        async def run():
            hospital_id = self._require_hospital()
            await self.gateway.table("doctors").update({"hospital_id": None}) \
                .eq("id", require(doctor_id, "Please select a doctor")) \
                .eq("hospital_id", hospital_id).execute()

        return await self.mutate(run, "Doctor removed from hospital.")

    @action
    async def send_request(self, doctor_id: str) -> bool:
        async def run():
            await self.gateway.table("doctor_requests").insert({
                "hospital_id": self._require_hospital(),
                "doctor_id": require(doctor_id, "Please select a doctor"),
                "status": "pending",
            }).execute()

        return await self.mutate(run, "Request sent to doctor!")

    @action
    async def cancel_request(self, request_id: str) -> bool:
        async def run():
            hospital_id = self._require_hospital()
            await self.gateway.table("doctor_requests").delete() \
                .eq("id", require(request_id, "Please select a request")) \
                .eq("hospital_id", hospital_id).eq("status", "pending").execute()

        return await self.mutate(run, "Request cancelled")

    def describe_error(self, error) -> str:
        if isinstance(error, GatewayError) and error.code == UNIQUE_VIOLATION:
            return "Request already sent to this doctor"
        return error.message


class AppointmentManagement(AdminScreen):
    path = "/admin/appointments"
    title = "Appointments"

    @property
    def status_filter(self) -> str:
        return self.params.get("status") or "all"

    async def load_hospital(self, hospital_id: str) -> Dict[str, Any]:
        query = self.gateway.table("appointments") \
            .select("*, patients(profiles:user_id(full_name)), doctors(specialty, profiles:user_id(full_name))") \
            .eq("hospital_id", hospital_id) \
            .order("appointment_date", desc=True)
        if self.status_filter != "all":
            query = query.eq("status", self.status_filter)
        res = await query.limit(ADMIN_APPOINTMENT_LIMIT).execute()
        return {
            "filter": self.status_filter,
            "statuses": ["all"] + list(APPOINTMENT_STATUSES),
            "appointments": res.data or [],
        }

    @action
    async def filter(self, status: str = "all") -> bool:
        status = (status or "all").strip().lower()
        if status != "all" and status not in APPOINTMENT_STATUSES:
            raise ValidationError(f"Unknown appointment status: {status}")
        self.params["status"] = status
        return await self.refresh()

    async def _set_status(self, appointment_id: str, status: str) -> None:
        hospital_id = self._require_hospital()
        res = await self.gateway.table("appointments").select("id, status") \
            .eq("id", require(appointment_id, "Please select an appointment")) \
            .eq("hospital_id", hospital_id).maybe_single().execute()
        if not res.data:
            raise ValidationError("Appointment not found")
        if res.data.get("status") != "pending":
            raise ValidationError("Only pending appointments can be changed")
        await self.gateway.table("appointments").update({"status": status}) \
            .eq("id", appointment_id).eq("status", "pending").execute()

    @action
    async def approve(self, appointment_id: str) -> bool:
        return await self.mutate(lambda: self._set_status(appointment_id, "approved"),
                                 "Appointment approved")

    @action
    async def cancel(self, appointment_id: str) -> bool:
        return await self.mutate(lambda: self._set_status(appointment_id, "cancelled"),
                                 "Appointment cancelled")


class Billing(AdminScreen):
    path = "/admin/billing"
    title = "Billing"

    async def load_hospital(self, hospital_id: str) -> Dict[str, Any]:
        invoices_res, completed_res = await asyncio.gather(
            self.gateway.table("invoices")
                .select("*, patients(profiles:user_id(full_name)), appointments(appointment_date)")
                .eq("hospital_id", hospital_id).order("created_at", desc=True).execute(),
            self.gateway.table("appointments").select("*, patients(profiles:user_id(full_name))")
                .eq("hospital_id", hospital_id).eq("status", "completed").execute(),
        )
        invoices = invoices_res.data or []
        return {
            "invoices": invoices,
            "completed_appointments": completed_res.data or [],
            "summary": billing_summary(invoices),
        }

    @action
    async def create_invoice(self, appointment_id: str, charges: List[Dict[str, Any]]) -> bool:
        async def run():
            hospital_id = self._require_hospital()
            items = parse_charges(charges)
            appt = next((a for a in self.data.get("completed_appointments", [])
                         if a["id"] == appointment_id), None)
            if appt is None:
                raise ValidationError("Please select a completed appointment")
            rows = [{"description": c.description, "amount": c.amount} for c in items]
            await self.gateway.table("invoices").insert({
                "appointment_id": appointment_id,
                "hospital_id": hospital_id,
                "patient_id": appt["patient_id"],
                "charges": rows,
                "total": charges_total(rows),
                "status": "draft",
            }).execute()

        return await self.mutate(run, "Invoice created!")

    async def _advance(self, invoice_id: str, target: str) -> None:
        invoice = next((i for i in self.data.get("invoices", []) if i["id"] == invoice_id), None)
        if invoice is None:
            raise ValidationError("Invoice not found")
        if INVOICE_TRANSITIONS.get(invoice.get("status")) != target:
            raise ValidationError(f"Cannot mark a {invoice.get('status')} invoice as {target}")
        await self.gateway.table("invoices").update({"status": target}) \
            .eq("id", invoice_id).eq("hospital_id", self._require_hospital()).execute()

    @action
    async def mark_sent(self, invoice_id: str) -> bool:
        return await self.mutate(lambda: self._advance(invoice_id, "sent"), "Invoice marked as sent")

    @action
    async def mark_paid(self, invoice_id: str) -> bool:
        return await self.mutate(lambda: self._advance(invoice_id, "paid"), "Invoice marked as paid")

    def describe_error(self, error) -> str:
        if isinstance(error, GatewayError):
            return f"Failed: {error.message}"
        return error.message


def parse_charges(raw: Optional[List[Any]]) -> List[ChargeItem]:
    items = []
    for entry in raw or []:
        if isinstance(entry, ChargeItem):
            item = entry
        elif isinstance(entry, dict):
            try:
                amount = float(entry.get("amount") or 0)
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid amount: {entry.get('amount')}")
            item = ChargeItem(description=str(entry.get("description") or "").strip(), amount=amount)
        else:
            raise ValidationError(f"Invalid charge line: {entry!r}")
        if item.amount < 0:
            raise ValidationError("Charge amounts cannot be negative")
        if item.description or item.amount:
            items.append(item)
    if not items:
        raise ValidationError("Add at least one charge")
    return items


class HospitalSettings(Screen):
    path = "/admin/hospital"
    title = "Hospital"

    async def load(self) -> Dict[str, Any]:
        hospital_id = await self.admin_hospital_id()
        if not hospital_id:
            return {"hospital": None, "message": "Create your hospital to get started."}
        res = await self.gateway.table("hospitals").select("*").eq("id", hospital_id) \
            .maybe_single().execute()
        return {"hospital": res.data}

    @action
    async def save(self, name: str, address: Optional[str] = None, city: Optional[str] = None,
                   phone: Optional[str] = None, email: Optional[str] = None) -> bool:
        existing = self.data.get("hospital")

        async def run():
            values = {
                "name": require(name, "Hospital name is required"),
                "address": address or None,
                "city": city or None,
                "phone": phone or None,
                "email": email or None,
            }
            if existing:
                await self.gateway.table("hospitals").update(values).eq("id", existing["id"]).execute()
                return
            created = await self.gateway.table("hospitals").insert(values).select().single().execute()
            await self._link_admin(created.data["id"])

        return await self.mutate(run, "Hospital updated!" if existing else "Hospital created!")

    async def _link_admin(self, hospital_id: str) -> None:
        doctor = await self.doctor_row("id")
        if doctor:
            await self.gateway.table("doctors").update({"hospital_id": hospital_id}) \
                .eq("user_id", self.user_id).execute()
        else:
            await self.gateway.table("doctors").insert({
                "user_id": self.user_id,
                "hospital_id": hospital_id,
                "specialty": HOSPITAL_ADMIN_SPECIALTY,
            }).execute()
