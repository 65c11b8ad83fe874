"""Generación de Excel formateado para entrega médica."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pandas as pd
from openpyxl.styles import Alignment, Border, Font, Side

from lecturas_tool.categories import categorize_bp, categorize_glucose
from lecturas_tool.model import BloodPressureReading, BloodSugarReading
from lecturas_tool.validation import parse_timestamp

_DIA_SEMANA: tuple[str, ...] = ("lun", "mar", "mie", "jue", "vie", "sab", "dom")

_HEADER_MAP: dict[str, str] = {
    "weekday": "Día",
    "datetime": "Fecha / Hora",
    "systolic": "Sistólica\n(mmHg)",
    "diastolic": "Diastólica\n(mmHg)",
    "pulse": "Pulso\n(lpm)",
    "glucose": "Glucosa (mg/dL)",
    "test_type": "Tipo",
    "category": "Categoría",
    "medication": "Medicación",
    "notes": "Notas",
}

_WIDTHS: tuple[tuple[str, int], ...] = (
    ("Día", 6),
    ("Fecha / Hora", 18),
    ("Sistólica\n(mmHg)", 11),
    ("Diastólica\n(mmHg)", 11),
    ("Pulso\n(lpm)", 8),
    ("Glucosa (mg/dL)", 14),
    ("Tipo", 12),
    ("Categoría", 20),
    ("Medicación", 22),
    ("Notas", 30),
)

_NUMBER_FORMATS: dict[str, str] = {
    "Fecha / Hora": "dd/mm/yyyy hh:mm",
    "Sistólica\n(mmHg)": "0",
    "Diastólica\n(mmHg)": "0",
    "Pulso\n(lpm)": "0",
    "Glucosa (mg/dL)": "0",
}

BP_COLUMNS = [
    "datetime",
    "systolic",
    "diastolic",
    "pulse",
    "category",
    "medication",
    "notes",
]
BS_COLUMNS = ["datetime", "glucose", "test_type", "category", "medication", "notes"]


@dataclass(frozen=True)
class ExcelLayout:
    """Sheet names for the doctor workbook."""

    bp_sheet_name: str = "Presión arterial"
    bs_sheet_name: str = "Glucosa"


def bp_readings_to_frame(readings: Sequence[BloodPressureReading]) -> pd.DataFrame:
    """One row per blood pressure reading, oldest first."""
    rows = [
        {
            "datetime": _local_naive(r.timestamp),
            "systolic": r.systolic,
            "diastolic": r.diastolic,
            "pulse": r.pulse,
            "category": categorize_bp(r.systolic, r.diastolic).label,
            "medication": r.medication,
            "notes": r.notes,
        }
        for r in readings
    ]
    return _sorted_frame(rows, BP_COLUMNS)


def bs_readings_to_frame(readings: Sequence[BloodSugarReading]) -> pd.DataFrame:
    """One row per glucose reading, oldest first."""
    rows = [
        {
            "datetime": _local_naive(r.timestamp),
            "glucose": r.glucose,
            "test_type": r.test_type.value,
            "category": categorize_glucose(r.glucose, r.test_type).label,
            "medication": r.medication,
            "notes": r.notes,
        }
        for r in readings
    ]
    return _sorted_frame(rows, BS_COLUMNS)


def write_readings_xlsx(
    bp_readings: Sequence[BloodPressureReading],
    bs_readings: Sequence[BloodSugarReading],
    out_path: Path,
    layout: ExcelLayout,
) -> None:
    """Write a formatted workbook with one sheet per category.

    Args:
        bp_readings: Blood pressure readings.
        bs_readings: Glucose readings.
        out_path: Output path for the XLSX file.
        layout: Sheet names.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    sheets = (
        (layout.bp_sheet_name, bp_readings_to_frame(bp_readings)),
        (layout.bs_sheet_name, bs_readings_to_frame(bs_readings)),
    )
    with pd.ExcelWriter(out_path, engine="openpyxl") as writer:
        for sheet_name, df in sheets:
            export_df = _add_weekday_column(df).rename(columns=_HEADER_MAP)
            export_df.to_excel(writer, index=False, sheet_name=sheet_name)
            _format_sheet(writer.book[sheet_name])


def _local_naive(value: str) -> pd.Timestamp:
    dt = parse_timestamp(value)
    if dt is None:
        return pd.NaT
    # Excel has no timezone support.
    return pd.Timestamp(dt.astimezone().replace(tzinfo=None))


def _sorted_frame(rows: list[dict[str, object]], columns: list[str]) -> pd.DataFrame:
    if not rows:
        return pd.DataFrame(columns=columns)
    df = pd.DataFrame(rows, columns=columns)
    return df.sort_values("datetime", na_position="last").reset_index(drop=True)


def _weekday_label(i: object) -> str:
    """Convierte índice 0-6 (lunes-domingo) a etiqueta de 3 letras."""
    try:
        if i is None or (isinstance(i, float) and pd.isna(i)):
            return ""
        if isinstance(i, int | float):
            idx = int(i)
            return _DIA_SEMANA[idx] if 0 <= idx < 7 else ""
        return ""
    except (ValueError, TypeError):
        return ""


def _add_weekday_column(export_df: pd.DataFrame) -> pd.DataFrame:
    """Añade columna weekday (Día) a partir de datetime."""
    if "datetime" not in export_df.columns or export_df.empty:
        return export_df
    weekday_series = pd.to_datetime(export_df["datetime"], errors="coerce").dt.weekday
    export_df = export_df.copy()
    export_df["weekday"] = weekday_series.map(_weekday_label)
    cols = ["weekday"] + [c for c in export_df.columns if c != "weekday"]
    return export_df[cols]


def _style_header_row(ws: Any) -> None:
    """Aplica fuente negrita, alineación y borde a la fila de cabecera."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    header_font = Font(bold=True)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for cell in ws[1]:
        cell.font = header_font
        cell.alignment = center
        cell.border = border


def _style_body_rows(ws: Any) -> None:
    """Aplica alineación y borde a las filas de datos."""
    thin = Side(style="thin")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    center = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for row in ws.iter_rows(min_row=2):
        for cell in row:
            cell.alignment = center
            cell.border = border


def _get_header_col_index(ws: Any) -> dict[str, int]:
    """Devuelve mapa nombre de cabecera -> índice de columna (1-based)."""
    headers = [str(cell.value) for cell in ws[1]]
    return {name: idx + 1 for idx, name in enumerate(headers)}


def _apply_column_widths(ws: Any, col_index: dict[str, int]) -> None:
    for header, width in _WIDTHS:
        idx = col_index.get(header)
        if idx is not None:
            letter = ws.cell(row=1, column=idx).column_letter
            ws.column_dimensions[letter].width = width


def _apply_number_formats(ws: Any, col_index: dict[str, int]) -> None:
    for row in ws.iter_rows(min_row=2):
        for header, fmt in _NUMBER_FORMATS.items():
            idx = col_index.get(header)
            if idx is not None:
                row[idx - 1].number_format = fmt


def _format_sheet(ws: Any) -> None:
    """Apply borders, widths and number formats to a worksheet.

    Args:
        ws: openpyxl worksheet.
    """
    _style_header_row(ws)
    _style_body_rows(ws)
    col_index = _get_header_col_index(ws)
    _apply_column_widths(ws, col_index)
    _apply_number_formats(ws, col_index)
