"""CLI para registrar lecturas de presión y glucosa con detección de duplicados."""

from __future__ import annotations

import argparse
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime
from pathlib import Path

from dateutil import tz

from lecturas_tool.alerts import generate_health_alerts
from lecturas_tool.categories import categorize_bp, categorize_glucose
from lecturas_tool.duplicates import (
    MAX_TIME_WINDOW_MINUTES,
    DuplicateOptions,
    check_for_bp_duplicate,
    check_for_bs_duplicate,
    find_bulk_duplicates,
    format_duplicate_details,
    is_valid_time_window,
)
from lecturas_tool.excel_writer import ExcelLayout, write_readings_xlsx
from lecturas_tool.logging_setup import configure_logging
from lecturas_tool.model import (
    BloodPressureReading,
    BloodSugarReading,
    Category,
    Location,
    Reading,
    TestType,
)
from lecturas_tool.sources.backup import (
    BackupPaths,
    BackupSource,
    default_backup_name,
    write_backup,
)
from lecturas_tool.storage import (
    AppConfig,
    JsonFileStore,
    ReadingStore,
    SQLiteStore,
)
from lecturas_tool.validation import (
    ReadingValidationError,
    validate_bp,
    validate_bs,
    validate_entry_time,
)

logger = logging.getLogger(__name__)

_LOCAL_TZ = tz.tzlocal()
_CATEGORY_CHOICES = ("bp", "bs", "all")

Confirm = Callable[[str], bool]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed argparse namespace.
    """
    parser = argparse.ArgumentParser(
        description="Registro de presión arterial y glucosa con detección de duplicados."
    )
    parser.add_argument(
        "--db",
        default=str(Path.home() / ".lecturas" / "lecturas.sqlite3"),
        help="Base SQLite (default: ~/.lecturas/lecturas.sqlite3).",
    )
    parser.add_argument(
        "--json-dir",
        default=None,
        help="Guardar en archivos JSON dentro de este directorio en lugar de SQLite.",
    )
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING...")
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Logs como un objeto JSON por línea en stderr.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    bp = sub.add_parser("add-bp", help="Registrar presión arterial.")
    bp.add_argument("--systolic", type=int, required=True)
    bp.add_argument("--diastolic", type=int, required=True)
    bp.add_argument("--pulse", type=int, default=None)
    _add_common_reading_args(bp)

    bs = sub.add_parser("add-bs", help="Registrar glucosa.")
    bs.add_argument("--glucose", type=int, required=True)
    bs.add_argument(
        "--test-type",
        choices=[t.value for t in TestType],
        default=TestType.RANDOM.value,
    )
    bs.add_argument("--meal-info", default=None)
    _add_common_reading_args(bs)

    ls = sub.add_parser("list", help="Listar lecturas (más recientes primero).")
    ls.add_argument("--category", choices=_CATEGORY_CHOICES, default="all")
    ls.add_argument("--limit", type=int, default=None)

    rm = sub.add_parser("delete", help="Borrar una lectura por id.")
    rm.add_argument("--category", choices=("bp", "bs"), required=True)
    rm.add_argument("--id", required=True)

    clear = sub.add_parser("clear", help="Borrar todas las lecturas.")
    clear.add_argument("--category", choices=_CATEGORY_CHOICES, default="all")
    clear.add_argument("--yes", action="store_true", help="No pedir confirmación.")

    imp = sub.add_parser("import", help="Importar una copia de seguridad JSON.")
    imp.add_argument("path", help="Archivo de backup o directorio con backups.")
    imp.add_argument(
        "--force",
        action="store_true",
        help="Importar también las lecturas duplicadas.",
    )

    exp = sub.add_parser("export", help="Exportar lecturas.")
    exp.add_argument("--json", dest="json_path", default=None)
    exp.add_argument("--xlsx", dest="xlsx_path", default=None)

    sub.add_parser("alerts", help="Alertas de salud de los últimos días.")

    cfg = sub.add_parser("config", help="Ver o cambiar la configuración.")
    cfg.add_argument("--time-window", type=float, default=None)
    cfg.add_argument("--import-time-window", type=float, default=None)
    cfg.add_argument("--set-log-level", default=None)

    return parser.parse_args(argv)


def _add_common_reading_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--time", default=None, help="ISO-8601 (default: ahora).")
    parser.add_argument("--notes", default=None)
    parser.add_argument("--medication", default=None)
    parser.add_argument("--symptoms", default=None)
    parser.add_argument(
        "--location",
        choices=[loc.value for loc in Location],
        default=Location.HOME.value,
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Guardar aunque sea un duplicado.",
    )


def open_store(ns: argparse.Namespace) -> ReadingStore:
    """Store selected by the global flags."""
    if ns.json_dir:
        return JsonFileStore(Path(ns.json_dir).expanduser().resolve())
    return SQLiteStore(Path(ns.db).expanduser().resolve())


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI.

    Returns:
        Exit code (0 on success, 1 when data was not saved, 2 on invalid input).
    """
    ns = parse_args(argv)
    store = open_store(ns)
    config = store.load_config()
    configure_logging(ns.log_level or config.log_level, json_format=ns.log_json)

    try:
        return _dispatch(ns, store, config, _ask)
    except ReadingValidationError as exc:
        print(f"ERROR: {exc}")
        return 2


def _dispatch(
    ns: argparse.Namespace,
    store: ReadingStore,
    config: AppConfig,
    confirm: Confirm,
) -> int:
    if ns.command == "add-bp":
        return add_reading(store, config, _bp_from_args(ns), ns.yes, confirm)
    if ns.command == "add-bs":
        return add_reading(store, config, _bs_from_args(ns), ns.yes, confirm)
    if ns.command == "list":
        return list_readings(store, _categories(ns.category), ns.limit)
    if ns.command == "delete":
        return delete_reading(store, Category(ns.category), ns.id)
    if ns.command == "clear":
        return clear_readings(store, _categories(ns.category), ns.yes, confirm)
    if ns.command == "import":
        return import_backup(store, config, Path(ns.path).expanduser(), ns.force)
    if ns.command == "export":
        return export_readings(store, ns.json_path, ns.xlsx_path)
    if ns.command == "alerts":
        return show_alerts(store)
    if ns.command == "config":
        return update_config(
            store, config, ns.time_window, ns.import_time_window, ns.set_log_level
        )
    raise ValueError(f"Unknown command: {ns.command}")


def _ask(prompt: str) -> bool:
    return input(prompt).strip().lower() in {"s", "si", "sí", "y", "yes"}


def _entry_time(value: str | None) -> str:
    if value is None:
        return datetime.now(tz=_LOCAL_TZ).isoformat(timespec="seconds")
    return validate_entry_time(value).isoformat()


def _bp_from_args(ns: argparse.Namespace) -> BloodPressureReading:
    reading = BloodPressureReading(
        systolic=ns.systolic,
        diastolic=ns.diastolic,
        pulse=ns.pulse,
        timestamp=_entry_time(ns.time),
        notes=ns.notes,
        medication=ns.medication,
        symptoms=ns.symptoms,
        location=Location(ns.location),
    )
    validate_bp(reading)
    return reading


def _bs_from_args(ns: argparse.Namespace) -> BloodSugarReading:
    reading = BloodSugarReading(
        glucose=ns.glucose,
        test_type=TestType(ns.test_type),
        timestamp=_entry_time(ns.time),
        notes=ns.notes,
        medication=ns.medication,
        meal_info=ns.meal_info,
        symptoms=ns.symptoms,
        location=Location(ns.location),
    )
    validate_bs(reading)
    return reading


def _categories(choice: str) -> list[Category]:
    if choice == "all":
        return [Category.BLOOD_PRESSURE, Category.BLOOD_SUGAR]
    return [Category(choice)]


def _new_id() -> str:
    return uuid.uuid4().hex


def add_reading(
    store: ReadingStore,
    config: AppConfig,
    reading: Reading,
    assume_yes: bool,
    confirm: Confirm,
) -> int:
    """Check a new reading for duplicates and save it on confirmation."""
    options = DuplicateOptions(time_window_minutes=config.time_window_minutes)
    if isinstance(reading, BloodPressureReading):
        category = Category.BLOOD_PRESSURE
        existing = store.get(category)
        result = check_for_bp_duplicate(reading, existing, options)
    else:
        category = Category.BLOOD_SUGAR
        existing = store.get(category)
        result = check_for_bs_duplicate(reading, existing, options)

    if result.is_duplicate and result.duplicate_entry is not None:
        print(result.message)
        print(format_duplicate_details(result.duplicate_entry, category))
        if not assume_yes and not confirm("¿Guardar de todos modos? [s/N] "):
            print("Cancelado: la lectura no se guardó.")
            return 0

    new_reading = replace(reading, id=_new_id())
    saved = store.save(category, [new_reading, *existing])
    if not saved:
        print(f"ERROR: la lectura no se guardó ({saved.error}). Intente nuevamente.")
        return 1
    logger.info("Saved %s reading %s", category.value, new_reading.id)
    print(f"OK: lectura guardada ({new_reading.id})")
    return 0


def describe_reading(reading: Reading) -> str:
    """One-line listing with the health category label."""
    if isinstance(reading, BloodPressureReading):
        pulse = f" pulso {reading.pulse}" if reading.pulse else ""
        label = categorize_bp(reading.systolic, reading.diastolic).label
        values = f"{reading.systolic}/{reading.diastolic} mmHg{pulse}"
    else:
        label = categorize_glucose(reading.glucose, reading.test_type).label
        values = f"{reading.glucose} mg/dL ({reading.test_type.value})"
    return f"{reading.timestamp} | {values} | {label} | {reading.id or '-'}"


def list_readings(
    store: ReadingStore, categories: list[Category], limit: int | None
) -> int:
    for category in categories:
        readings = store.get(category)
        print(f"{category.label}: {len(readings)} lecturas")
        for reading in readings[:limit]:
            print(f"  {describe_reading(reading)}")
    return 0


def delete_reading(store: ReadingStore, category: Category, reading_id: str) -> int:
    """Rewrite the category list without the given reading."""
    existing = store.get(category)
    remaining = [r for r in existing if r.id != reading_id]
    if len(remaining) == len(existing):
        print(f"ERROR: no existe la lectura {reading_id}")
        return 1
    saved = store.save(category, remaining)
    if not saved:
        print(f"ERROR: no se pudo borrar ({saved.error}). Intente nuevamente.")
        return 1
    print(f"OK: lectura {reading_id} borrada")
    return 0


def clear_readings(
    store: ReadingStore,
    categories: list[Category],
    assume_yes: bool,
    confirm: Confirm,
) -> int:
    names = ", ".join(c.label for c in categories)
    if not assume_yes and not confirm(f"¿Borrar todas las lecturas de {names}? [s/N] "):
        print("Cancelado.")
        return 0
    code = 0
    for category in categories:
        cleared = store.clear(category)
        if cleared:
            print(f"OK: {category.label} borrado")
        else:
            print(f"ERROR: no se pudo borrar {category.label} ({cleared.error})")
            code = 1
    return code


def import_backup(
    store: ReadingStore, config: AppConfig, path: Path, force: bool
) -> int:
    """Import a backup, skipping readings that duplicate stored ones.

    Raises:
        FileNotFoundError: If the path or directory has no backup.
        ValueError: If the backup is malformed.
    """
    source = BackupSource(BackupPaths(root=path if path.is_dir() else path.parent))
    source.validate()
    backup_file = source.newest_file() if path.is_dir() else path
    contents = source.load(backup_file)
    skipped = contents.skipped
    valid: dict[Category, list[Reading]] = {}
    for category in (Category.BLOOD_PRESSURE, Category.BLOOD_SUGAR):
        valid[category] = []
        for index, reading in enumerate(contents.for_category(category), start=1):
            try:
                _validate(reading)
            except ReadingValidationError as exc:
                print(f"AVISO: {category.label} registro {index}: {exc}")
                skipped += 1
                continue
            valid[category].append(reading)
    if skipped:
        print(f"AVISO: {skipped} registros inválidos omitidos")

    options = DuplicateOptions(time_window_minutes=config.import_time_window_minutes)
    code = 0
    for category, candidates in valid.items():
        if not candidates:
            continue
        existing = store.get(category)
        analysis = find_bulk_duplicates(candidates, existing, category, options)
        for index, dup in enumerate(analysis.duplicates, start=1):
            print(f"Duplicate {index}: {dup.message}")

        to_import = candidates if force else analysis.unique_readings
        with_ids = _with_fresh_ids(to_import, {r.id for r in existing})
        saved = store.save(category, [*existing, *with_ids])
        if not saved:
            print(f"ERROR: {category.label} no se importó ({saved.error})")
            code = 1
            continue
        print(
            f"OK: {category.label}: {len(with_ids)} importadas, "
            f"{len(analysis.duplicates)} duplicadas"
            + (" (importadas igualmente)" if force and analysis.duplicates else "")
        )
    return code


def _validate(reading: Reading) -> None:
    if isinstance(reading, BloodPressureReading):
        validate_bp(reading)
    else:
        validate_bs(reading)


def _with_fresh_ids(
    readings: list[Reading], taken: set[str | None]
) -> list[Reading]:
    """Give a new id to readings without one or whose id is already used."""
    used = set(taken)
    out: list[Reading] = []
    for reading in readings:
        if not reading.id or reading.id in used:
            reading = replace(reading, id=_new_id())
        used.add(reading.id)
        out.append(reading)
    return out


def show_alerts(store: ReadingStore) -> int:
    bp = [
        r
        for r in store.get(Category.BLOOD_PRESSURE)
        if isinstance(r, BloodPressureReading)
    ]
    bs = [
        r for r in store.get(Category.BLOOD_SUGAR) if isinstance(r, BloodSugarReading)
    ]
    alerts = generate_health_alerts(bp, bs)
    if not alerts:
        print("Sin alertas.")
        return 0
    for alert in alerts:
        print(f"[{alert.priority.name}] {alert.title}: {alert.message}")
    return 0


def export_readings(
    store: ReadingStore, json_path: str | None, xlsx_path: str | None
) -> int:
    if json_path is None and xlsx_path is None:
        print("ERROR: indicar --json y/o --xlsx")
        return 2
    bp = [
        r
        for r in store.get(Category.BLOOD_PRESSURE)
        if isinstance(r, BloodPressureReading)
    ]
    bs = [
        r for r in store.get(Category.BLOOD_SUGAR) if isinstance(r, BloodSugarReading)
    ]

    if json_path is not None:
        out = Path(json_path).expanduser()
        if out.is_dir():
            out = out / default_backup_name()
        write_backup(out, bp, bs)
        print(f"OK: backup: {out}")
    if xlsx_path is not None:
        out = Path(xlsx_path).expanduser()
        write_readings_xlsx(bp, bs, out, ExcelLayout())
        print(f"OK: Excel: {out}")
    return 0


def _usable_window(minutes: float) -> bool:
    return minutes > 0 and is_valid_time_window(minutes)


def update_config(
    store: ReadingStore,
    config: AppConfig,
    time_window: float | None,
    import_time_window: float | None,
    log_level: str | None,
) -> int:
    """Print the configuration, updating any value given."""
    limit = f"between 0 and {MAX_TIME_WINDOW_MINUTES} minutes"
    if time_window is not None and not _usable_window(time_window):
        raise ReadingValidationError(f"Time window must be {limit}")
    if import_time_window is not None and not _usable_window(import_time_window):
        raise ReadingValidationError(f"Import time window must be {limit}")

    updated = AppConfig(
        time_window_minutes=time_window or config.time_window_minutes,
        import_time_window_minutes=import_time_window
        or config.import_time_window_minutes,
        log_level=(log_level or config.log_level).upper(),
    )
    if updated != config:
        saved = store.save_config(updated)
        if not saved:
            print(f"ERROR: la configuración no se guardó ({saved.error})")
            return 1
    print(f"time_window_minutes = {updated.time_window_minutes}")
    print(f"import_time_window_minutes = {updated.import_time_window_minutes}")
    print(f"log_level = {updated.log_level}")
    return 0
