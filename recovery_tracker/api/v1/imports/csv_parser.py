"""
Parsers for the two spreadsheets exported by the school office.

Both files are ';'-separated UTF-8 (an Excel BOM is tolerated) with a header
line that is skipped. Blank lines are ignored and do not count as rows; row
numbers in errors and warnings are 1-based with the header as row 1.
Parsing never raises for bad rows: each one ends up in `errors` and the rest
of the file is still processed.
"""

import csv
import io
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import ValidationError

from recovery_tracker.core.models.recovery_activity import MODULE_MINUTES

from .schemas import ActivityCsvRow, BudgetCsvRow, ImportRowError, ImportRowWarning

BUDGET_COLUMNS = 5
ACTIVITY_MIN_COLUMNS = 6
ACTIVITY_MAX_COLUMNS = 7
LONG_ACTIVITY_MINUTES = 300

ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass
class ParsedBudgetCsv:
    rows: List[Tuple[int, BudgetCsvRow]] = field(default_factory=list)
    errors: List[ImportRowError] = field(default_factory=list)
    warnings: List[ImportRowWarning] = field(default_factory=list)


@dataclass
class ParsedActivityCsv:
    rows: List[Tuple[int, ActivityCsvRow]] = field(default_factory=list)
    errors: List[ImportRowError] = field(default_factory=list)
    warnings: List[ImportRowWarning] = field(default_factory=list)


def _read_rows(text: str, errors: List[ImportRowError]) -> List[List[str]]:
    """Split into non-blank rows, header included."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter=";")
    try:
        return [row for row in reader if any(cell.strip() for cell in row)]
    except csv.Error as e:
        errors.append(ImportRowError(row=reader.line_num, error=f"Errore di lettura CSV: {e}"))
        return []


def _parse_int(raw: Optional[str], column: str) -> int:
    value = (raw or "").strip() or "0"
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{column}: '{value}' non è un numero intero")


def _describe(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )


def split_teacher_name(full_name: str) -> Tuple[str, str]:
    """
    "COGNOME NOME" -> (surname, given_name). The first token is the surname and
    the rest the given name, so compound surnames ("De Luca Marco") split wrong.
    A single token yields an empty given name.
    """
    parts = full_name.split()
    if len(parts) < 2:
        return full_name.strip(), ""
    return parts[0], " ".join(parts[1:])


def parse_budget_csv(text: str) -> ParsedBudgetCsv:
    """Docente;Minuti/Settimana;Tesoretto Annuale (min);Moduli Annui (50min);Saldo (min)"""
    result = ParsedBudgetCsv()
    for index, row in enumerate(_read_rows(text, result.errors)):
        if index == 0:
            continue
        row_number = index + 1
        if len(row) != BUDGET_COLUMNS:
            result.errors.append(
                ImportRowError(
                    row=row_number,
                    error=f"Numero di colonne non valido: attese {BUDGET_COLUMNS}, trovate {len(row)}",
                )
            )
            continue

        name = row[0].strip()
        if not name:
            result.errors.append(ImportRowError(row=row_number, error="Nome del docente mancante"))
            continue

        try:
            parsed = BudgetCsvRow(
                teacher_name=name,
                minutes_weekly=_parse_int(row[1], "Minuti/Settimana"),
                minutes_annual=_parse_int(row[2], "Tesoretto Annuale"),
                modules_annual=_parse_int(row[3], "Moduli Annui"),
                balance=_parse_int(row[4], "Saldo"),
            )
        except ValidationError as e:
            result.errors.append(ImportRowError(row=row_number, teacher=name, error=_describe(e)))
            continue
        except ValueError as e:
            result.errors.append(ImportRowError(row=row_number, teacher=name, error=str(e)))
            continue

        expected_modules = parsed.minutes_annual // MODULE_MINUTES
        if abs(expected_modules - parsed.modules_annual) > 1:
            result.warnings.append(
                ImportRowWarning(
                    row=row_number,
                    teacher=name,
                    message=(
                        f"Moduli annui ({parsed.modules_annual}) non corrispondono al calcolo atteso "
                        f"({expected_modules} da {parsed.minutes_annual} minuti)"
                    ),
                )
            )
        if parsed.balance != parsed.minutes_annual:
            result.warnings.append(
                ImportRowWarning(
                    row=row_number,
                    teacher=name,
                    message=(
                        f"Saldo ({parsed.balance}) diverso dal tesoretto annuale ({parsed.minutes_annual}). "
                        "Potrebbe indicare un utilizzo precedente."
                    ),
                )
            )
        result.rows.append((row_number, parsed))
    return result


def parse_activity_csv(text: str) -> ParsedActivityCsv:
    """Cognome;Nome;Data;Tipologia;Durata;Titolo[;Descrizione]"""
    result = ParsedActivityCsv()
    for index, row in enumerate(_read_rows(text, result.errors)):
        if index == 0:
            continue
        row_number = index + 1
        if not ACTIVITY_MIN_COLUMNS <= len(row) <= ACTIVITY_MAX_COLUMNS:
            result.errors.append(
                ImportRowError(
                    row=row_number,
                    error=(
                        f"Numero di colonne non valido: attese {ACTIVITY_MIN_COLUMNS}-{ACTIVITY_MAX_COLUMNS}, "
                        f"trovate {len(row)}"
                    ),
                )
            )
            continue

        cells = [cell.strip() for cell in row]
        surname, given_name, raw_date, recovery_type, raw_duration, title = cells[:6]
        description = cells[6] if len(cells) > 6 else ""
        teacher = f"{surname} {given_name}".strip()
        if not surname or not given_name:
            result.errors.append(ImportRowError(row=row_number, teacher=teacher, error="Cognome o nome mancante"))
            continue

        try:
            if not ISO_DATE_RE.match(raw_date):
                raise ValueError(f"Data deve essere in formato YYYY-MM-DD (trovato '{raw_date}')")
            parsed = ActivityCsvRow(
                surname=surname,
                given_name=given_name,
                activity_date=raw_date,
                recovery_type=recovery_type,
                duration_minutes=_parse_int(raw_duration, "Durata"),
                title=title,
                description=description or None,
            )
        except ValidationError as e:
            result.errors.append(ImportRowError(row=row_number, teacher=teacher, error=_describe(e)))
            continue
        except ValueError as e:
            result.errors.append(ImportRowError(row=row_number, teacher=teacher, error=str(e)))
            continue

        if parsed.duration_minutes > LONG_ACTIVITY_MINUTES:
            result.warnings.append(
                ImportRowWarning(
                    row=row_number,
                    teacher=teacher,
                    message=f"Durata molto alta ({parsed.duration_minutes} minuti). Verificare se è corretta.",
                )
            )
        result.rows.append((row_number, parsed))
    return result
