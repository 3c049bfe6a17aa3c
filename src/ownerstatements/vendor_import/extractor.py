#!/usr/bin/env python3
"""
Document Extractor

Turns an uploaded vendor document into ExtractedLineItems.

Spreadsheets (.xlsx, .xls, .csv) are read with pandas: first sheet, first row
is the header, and the columns property/date/description/vendor/amount are
found by case-insensitive substring. Bad rows are collected as "Row N: ..."
errors; the import continues as long as at least one row is usable.

PDFs are sent to the document AI with a JSON-only prompt listing the month's
known property names as context. Vendor and description for PDF items come
from the import request.
"""

import asyncio
import io
import logging
from dataclasses import dataclass, field

import pandas as pd

from ..core.config import VendorImportConfig
from ..core.dates import FinancialDate
from ..core.json_utils import parse_json_object
from ..core.models import ProcessingResult
from ..core.money import Money
from .ai import AIClient
from .errors import AIServiceUnavailable, NoExpensesFound, ValidationError
from .models import DocumentType, ExtractedLineItem

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("property", "date", "description", "vendor", "amount")


def summarize_errors(errors: list[str], limit: int = 3) -> str:
    """
    Join the first few row errors for display.

    Example:
        summarize_errors(["Row 2: a", "Row 3: b", "Row 4: c", "Row 5: d"])
        -> "Row 2: a; Row 3: b; Row 4: c; ...and more"
    """
    shown = "; ".join(errors[:limit])
    if len(errors) > limit:
        shown += "; ...and more"
    return shown


@dataclass
class ExtractionResult:
    """Line items read from one document plus per-row outcome counts."""

    items: list[ExtractedLineItem]
    report: ProcessingResult = field(default_factory=lambda: ProcessingResult(0, 0, 0))

    @property
    def errors(self) -> list[str]:
        return self.report.errors

    @property
    def identifiers(self) -> list[str]:
        """Distinct raw property identifiers in first-seen order."""
        return list(dict.fromkeys(item.raw_property for item in self.items))


def _cell_text(value) -> str:
    if value is None:
        return ""
    try:
        if pd.isna(value):
            return ""
    except (TypeError, ValueError):
        pass
    return str(value).strip()


def _find_columns(headers: list[str]) -> dict[str, str]:
    """
    Map each required field to a header.

    Exact (case-insensitive) header names win over substring matches, and
    one header is never used for two fields.

    Raises:
        ValidationError: Naming every missing column
    """
    normalized = {header: str(header).strip().lower() for header in headers}
    columns: dict[str, str] = {}
    for required in REQUIRED_COLUMNS:
        exact = [h for h, n in normalized.items() if n == required and h not in columns.values()]
        partial = [h for h, n in normalized.items() if required in n and h not in columns.values()]
        candidates = exact or partial
        if candidates:
            columns[required] = candidates[0]

    missing = [required for required in REQUIRED_COLUMNS if required not in columns]
    if missing:
        raise ValidationError(
            f"Missing required columns: {', '.join(missing)}. "
            f"The header row must contain {', '.join(REQUIRED_COLUMNS)}."
        )
    return columns


def _build_pdf_prompt(property_names: list[str]) -> str:
    known = "\n".join(f"- {name}" for name in property_names) or "- (none on file)"
    return f"""Extract expense data from this table-based invoice PDF.

EXPECTED OUTPUT: JSON object where each key is a property name/address from the invoice, and each value is an array of expense objects.

KNOWN PROPERTIES (context only; keep names exactly as written in the invoice):
{known}

EXTRACTION RULES:
1. Find the main table/list of properties and their associated costs
2. For each property row, extract:
   - The property name/address (exactly as shown)
   - The total amount/cost for that property
   - The line date, or an empty string if not clear per line

OUTPUT FORMAT:
{{
  "Property Name/Address": [{{"date": "YYYY-MM-DD or empty", "amount": number}}]
}}

EXAMPLE:
{{
  "Arrowbrook": [{{"date": "", "amount": 760.00}}],
  "5405 Royal Yacht": [{{"date": "", "amount": 235.00}}]
}}

IMPORTANT:
- Extract the total cost per property (if multiple line items, sum them)
- Use property names/addresses exactly as they appear in the invoice
- Respond with ONLY the JSON object, no explanations"""


class DocumentExtractor:
    """
    Extracts expense line items from PDFs and spreadsheets.

    Args:
        config: Import limits (max rows, max file size)
        ai_client: Document AI used for PDFs; PDFs fail with
            AIServiceUnavailable when None
    """

    def __init__(self, config: VendorImportConfig, ai_client: AIClient | None = None):
        self.config = config
        self.ai_client = ai_client

    def check_size(self, data: bytes) -> None:
        """Reject empty or oversized uploads before any parsing."""
        if not data:
            raise ValidationError("The uploaded file is empty")
        if len(data) > self.config.max_file_bytes:
            limit_mb = self.config.max_file_bytes / (1024 * 1024)
            raise ValidationError(f"File is too large. Maximum size is {limit_mb:g} MB.")

    async def extract(
        self,
        data: bytes,
        filename: str,
        property_names: list[str],
        vendor: str | None = None,
        description: str | None = None,
    ) -> ExtractionResult:
        """
        Extract line items from a document.

        Args:
            data: Raw file bytes
            filename: Original file name (type is detected from the extension)
            property_names: The month's canonical property names, context only
            vendor: Vendor applied to PDF items
            description: Description applied to PDF items

        Raises:
            ValidationError: Bad type, size, columns, or too many rows
            NoExpensesFound: No usable line items
            AIServiceUnavailable: PDF extraction could not reach the AI
        """
        document_type = DocumentType.from_filename(filename)
        self.check_size(data)

        if document_type == DocumentType.PDF:
            if not vendor or not description:
                raise ValidationError("PDF imports need a vendor and a description")
            return await self.extract_pdf(data, property_names, vendor, description)
        return await asyncio.to_thread(self.extract_spreadsheet, data, filename)

    # Spreadsheets

    def _read_frame(self, data: bytes, filename: str) -> pd.DataFrame:
        buffer = io.BytesIO(data)
        # One extra row tells us the ceiling was exceeded
        nrows = self.config.max_rows + 1
        try:
            if filename.lower().endswith(".csv"):
                return pd.read_csv(
                    buffer, dtype=object, keep_default_na=False, skip_blank_lines=False, nrows=nrows
                )
            engine = "openpyxl" if filename.lower().endswith(".xlsx") else None
            return pd.read_excel(buffer, sheet_name=0, dtype=object, engine=engine, nrows=nrows)
        except Exception as e:
            logger.warning("Could not read spreadsheet %s: %s", filename, e)
            raise ValidationError(f'Could not read spreadsheet "{filename}". Check the file format.') from e

    def extract_spreadsheet(self, data: bytes, filename: str = "upload.xlsx") -> ExtractionResult:
        """
        Parse spreadsheet rows into line items.

        Raises:
            ValidationError: Unreadable file, missing columns, no data rows, too many rows
            NoExpensesFound: Every data row was invalid
        """
        df = self._read_frame(data, filename)
        columns = _find_columns([str(column) for column in df.columns])
        df.columns = [str(column) for column in df.columns]

        if len(df) > self.config.max_rows:
            raise ValidationError(f"Too many rows. Maximum is {self.config.max_rows} expense rows per file.")

        items: list[ExtractedLineItem] = []
        errors: list[str] = []
        processed = 0

        for index, row in df.iterrows():
            row_number = int(index) + 2  # 1-based, after the header row
            cells = {field_name: _cell_text(row[column]) for field_name, column in columns.items()}
            if not any(_cell_text(value) for value in row.tolist()):
                continue

            processed += 1
            missing = [field_name for field_name in REQUIRED_COLUMNS if not cells[field_name]]
            if missing:
                errors.append(f"Row {row_number}: Missing required information ({', '.join(missing)})")
                continue

            try:
                amount = Money.from_dollars(row[columns["amount"]])
            except ValueError:
                errors.append(f'Row {row_number}: Invalid amount format "{cells["amount"]}"')
                continue

            try:
                expense_date = FinancialDate.from_value(row[columns["date"]])
            except ValueError:
                errors.append(f'Row {row_number}: Invalid date "{cells["date"]}"')
                continue

            items.append(
                ExtractedLineItem(
                    raw_property=cells["property"],
                    amount=amount,
                    vendor=cells["vendor"],
                    description=cells["description"],
                    date=expense_date,
                    source_row=row_number,
                )
            )

        report = ProcessingResult(
            total_processed=processed,
            successful=len(items),
            failed=len(errors),
            errors=errors,
        )

        if processed == 0:
            raise ValidationError("The spreadsheet has no data rows below the header")
        if not items:
            raise NoExpensesFound(f"No valid expense rows found. {summarize_errors(errors)}")

        if errors:
            logger.warning(
                "Skipped %d of %d spreadsheet rows: %s", len(errors), processed, summarize_errors(errors)
            )
        logger.info("Extracted %d expense rows from %s", len(items), filename)
        return ExtractionResult(items=items, report=report)

    # PDFs

    async def extract_pdf(
        self, data: bytes, property_names: list[str], vendor: str, description: str
    ) -> ExtractionResult:
        """
        Extract line items from a PDF invoice with the document AI.

        Raises:
            AIServiceUnavailable: No client configured, or the AI call failed
            NoExpensesFound: Empty or unusable reply
        """
        if self.ai_client is None:
            raise AIServiceUnavailable("AI service is unavailable for PDF imports. Please try again later.")

        reply = await self.ai_client.read_document(_build_pdf_prompt(property_names), data, "application/pdf")
        expenses_map = parse_json_object(reply)
        if not expenses_map:
            raise NoExpensesFound(f'No property expenses found in the "{vendor}" invoice')

        items: list[ExtractedLineItem] = []
        errors: list[str] = []
        for raw_identifier, entries in expenses_map.items():
            identifier = str(raw_identifier).strip()
            if not identifier:
                continue
            if isinstance(entries, dict):
                entries = [entries]
            if not isinstance(entries, list):
                errors.append(f'{identifier}: unexpected value "{entries}"')
                continue

            for entry in entries:
                if not isinstance(entry, dict):
                    errors.append(f'{identifier}: unexpected value "{entry}"')
                    continue
                try:
                    amount = Money.from_dollars(entry.get("amount"))
                except ValueError:
                    errors.append(f'{identifier}: Invalid amount "{entry.get("amount")}"')
                    continue
                try:
                    expense_date = FinancialDate.from_value(entry.get("date"))
                except ValueError:
                    logger.debug("Ignoring unreadable PDF date %r for %s", entry.get("date"), identifier)
                    expense_date = None
                items.append(
                    ExtractedLineItem(
                        raw_property=identifier,
                        amount=amount,
                        vendor=vendor,
                        description=description,
                        date=expense_date,
                    )
                )

        if not items:
            raise NoExpensesFound(f'No property expenses found in the "{vendor}" invoice')
        if len(items) > self.config.max_rows:
            raise ValidationError(f"Too many rows. Maximum is {self.config.max_rows} expense rows per file.")

        if errors:
            logger.warning("Skipped %d PDF entries: %s", len(errors), summarize_errors(errors))
        logger.info("Extracted %d expense lines for %d properties from PDF", len(items), len(expenses_map))
        report = ProcessingResult(
            total_processed=len(items) + len(errors),
            successful=len(items),
            failed=len(errors),
            errors=errors,
        )
        return ExtractionResult(items=items, report=report)
