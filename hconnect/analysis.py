"""
Dashboard analysis utilities – appointment splits, queue counts and billing totals.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

Rows = List[Dict[str, Any]]


def _frame(rows: Optional[Rows], columns: List[str]) -> pd.DataFrame:
    df = pd.DataFrame(rows or [])
    for col in columns:
        if col not in df.columns:
            df[col] = None
    return df


def _records(df: pd.DataFrame, rows: Rows) -> Rows:
    """Map filtered frame rows back to the original dicts (keeps nested joins intact)."""
    return [rows[i] for i in df.index]


# ── Patient ──────────────────────────────────────────────────────────

def split_patient_appointments(rows: Rows, today: date) -> Tuple[Rows, Rows]:
    """
    Split appointments into (upcoming, past).
    Upcoming: date >= today and not cancelled/completed. Past: completed.
    """
    if not rows:
        return [], []
    df = _frame(rows, ["appointment_date", "status"])
    dates = pd.to_datetime(df["appointment_date"], errors="coerce")
    open_status = ~df["status"].isin(["cancelled", "completed"])
    upcoming = df[(dates >= pd.Timestamp(today)) & open_status]
    past = df[df["status"] == "completed"]
    return _records(upcoming, rows), _records(past, rows)


# ── Doctor ───────────────────────────────────────────────────────────

def doctor_queue_counts(rows: Rows) -> Dict[str, int]:
    """Waiting (approved), in-progress and completed counts for a day's list."""
    counts = _frame(rows, ["status"])["status"].value_counts()
    return {
        "waiting": int(counts.get("approved", 0)),
        "in_progress": int(counts.get("in_progress", 0)),
        "completed": int(counts.get("completed", 0)),
    }


def filter_by_name(rows: Rows, query: str, key: str = "full_name") -> Rows:
    """Case-insensitive substring match on a (possibly nested) name field."""
    needle = (query or "").strip().lower()
    if not needle:
        return list(rows)
    return [r for r in rows if needle in (_name_of(r, key) or "").lower()]


def _name_of(row: Dict[str, Any], key: str) -> Optional[str]:
    if row.get(key):
        return row[key]
    profile = row.get("profiles") or {}
    return profile.get(key) if isinstance(profile, dict) else None


# ── Admin ────────────────────────────────────────────────────────────

def distinct_count(rows: Rows, column: str) -> int:
    df = _frame(rows, [column])
    return int(df[column].dropna().nunique())


def paid_revenue(rows: Rows) -> float:
    df = _frame(rows, ["total"])
    return round(float(pd.to_numeric(df["total"], errors="coerce").fillna(0).sum()), 2)


def billing_summary(invoices: Rows) -> Dict[str, Dict[str, float]]:
    """Per-status invoice count and total."""
    if not invoices:
        return {}
    df = _frame(invoices, ["status", "total"])
    df["total"] = pd.to_numeric(df["total"], errors="coerce").fillna(0)
    grouped = df.groupby("status")["total"].agg(["count", "sum"])
    return {
        str(status): {"count": int(row["count"]), "total": round(float(row["sum"]), 2)}
        for status, row in grouped.iterrows()
    }


def charges_total(charges: List[Dict[str, Any]]) -> float:
    if not charges:
        return 0.0
    amounts = pd.to_numeric(pd.Series([c.get("amount") for c in charges]), errors="coerce")
    return round(float(amounts.fillna(0).sum()), 2)
