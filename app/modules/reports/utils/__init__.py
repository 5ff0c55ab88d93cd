"""
Utilities for Reports module

Normalización de rangos de fechas y exportación CSV.
"""

import csv
import io
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from fastapi import HTTPException, Response, status

from app.core.config import settings

END_OF_DAY = time(23, 59, 59, 999000)


def business_timezone(tz_name: Optional[str] = None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.BUSINESS_TIMEZONE)


def normalize_date_range(start_date: date, end_date: date,
                         tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """
    Convierte [start_date, end_date] en límites UTC (naive) que cubren los
    días completos en la zona del negocio: 00:00:00.000 a 23:59:59.999.

    Así "hoy" significa lo mismo sin importar la zona de quien consulta.
    """
    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="end_date must be greater than or equal to start_date"
        )

    tz = business_timezone(tz_name)
    start_local = datetime.combine(start_date, time.min, tzinfo=tz)
    end_local = datetime.combine(end_date, END_OF_DAY, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def to_local(value: datetime, tz_name: Optional[str] = None) -> datetime:
    """Marca UTC naive guardada en base → hora local del negocio."""
    return value.replace(tzinfo=timezone.utc).astimezone(business_timezone(tz_name))


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Dict[str, str] = None
) -> Response:
    """
    Create a CSV response from a list of dictionaries.

    Args:
        data: List of dictionaries with report data
        filename: Name for the CSV file
        headers: Optional mapping of field names to CSV headers

    Returns:
        FastAPI Response with CSV content
    """
    if not data:
        csv_content = ""
        if headers:
            csv_content = ",".join(headers.values()) + "\n"
    else:
        output = io.StringIO()

        fieldnames = list(headers.keys()) if headers else list(data[0].keys())
        csv_headers = list(headers.values()) if headers else fieldnames

        writer = csv.DictWriter(output, fieldnames=fieldnames)
        writer.writerow(dict(zip(fieldnames, csv_headers)))

        for row in data:
            writer.writerow({
                key: format_csv_value(value)
                for key, value in row.items() if key in fieldnames
            })

        csv_content = output.getvalue()
        output.close()

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )


def format_csv_value(value: Any) -> str:
    """
    Format a value for CSV export.
    """
    if value is None:
        return ""
    elif isinstance(value, Decimal):
        return str(value)
    elif isinstance(value, (date, datetime)):
        return value.isoformat()
    elif isinstance(value, bool):
        return "Sí" if value else "No"
    return str(value)


def prepare_cash_cuts_csv(report_data: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Prepare cash cut audit rows for CSV export"""
    csv_data = []
    for session in report_data["sessions"]:
        csv_data.append({
            "session_id": session.id,
            "opened_at": session.opened_at,
            "closed_at": session.closed_at,
            "closed_by_name": session.closed_by_name or "",
            "initial_float": session.initial_float,
            "expected_amount": session.expected_amount,
            "declared_amount": session.declared_amount,
            "difference": session.difference,
        })
    return csv_data


CSV_HEADERS = {
    "cash_cuts": {
        "session_id": "Sesión",
        "opened_at": "Apertura",
        "closed_at": "Cierre",
        "closed_by_name": "Cajero",
        "initial_float": "Fondo inicial",
        "expected_amount": "Monto esperado",
        "declared_amount": "Monto declarado",
        "difference": "Diferencia",
    }
}
