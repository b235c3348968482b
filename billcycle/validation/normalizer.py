"""
Stored Document Normalizer

DESIGN DECISION: Normalization happens in two distinct stages:

STAGE 1 - FIELD NAMES:
- Historical names (cutoffDay, settlementDay, dueDay, paymentDay...) are
  mapped onto the canonical camelCase names
- When both a historical and a canonical name are present, the canonical
  one wins

STAGE 2 - VALUES:
- Dates stored as datetime strings keep only their calendar day
- Non-numeric amounts fall back to 0
- Non-numeric installment terms fall back to 1
- Cycle days given as numeric strings become integers

Every repair is reported as a ValidationIssue so the caller can audit it.
Only problems with no safe default (a missing transaction date, a cycle
day outside 1-31) are errors; the record is then not loaded at all.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from billcycle.engine.dates import parse_day, to_decimal
from billcycle.models.records import LedgerRecord
from billcycle.models.views import ValidationIssue, ValidationResult
from billcycle.services.storage.interface import RECORD_MODELS, RecordKind

logger = structlog.get_logger(__name__)

# canonical name -> historical names, checked in order
LEGACY_FIELDS: dict[RecordKind, dict[str, tuple[str, ...]]] = {
    RecordKind.CARD: {
        "cycleCloseDay": ("cutoffDay", "cutoff_day", "settlementDay", "settlement_day"),
        "paymentDueDay": ("dueDay", "due_day", "paymentDay", "payment_day"),
    },
    RecordKind.STATEMENT: {
        "customCycleCloseDay": (
            "customCutoffDay",
            "custom_cutoff_day",
            "customSettlementDay",
            "custom_settlement_day",
        ),
    },
}

DATE_FIELDS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.TRANSACTION: ("date", "paidDate"),
    RecordKind.STATEMENT: ("customDueDate", "customCloseDate", "customPaymentDate"),
    RecordKind.BUDGET: ("startDate", "endDate"),
}
REQUIRED_DATES: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.TRANSACTION: ("date",),
    RecordKind.BUDGET: ("startDate",),
}
RULE_DATE_FIELDS = ("startDate", "endDate", "nextDate", "lastDate")

AMOUNT_FIELDS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.TRANSACTION: ("amount", "transferFee"),
    RecordKind.STATEMENT: ("amount", "paidAmount"),
    RecordKind.BANK_ACCOUNT: ("initialBalance",),
    RecordKind.BANK_BALANCE: ("balance",),
    RecordKind.LOAN_PLAN: ("totalAmount", "downPayment", "interestRate"),
}

DAY_FIELDS: dict[RecordKind, tuple[str, ...]] = {
    RecordKind.CARD: ("cycleCloseDay", "paymentDueDay"),
    RecordKind.STATEMENT: ("customCycleCloseDay",),
}


def _is_valid(issues: list[ValidationIssue]) -> bool:
    return not any(issue.severity == "error" for issue in issues)


class RecordNormalizer:
    """
    Maps stored documents onto the canonical record shapes.

    Usage:
        normalizer = RecordNormalizer()
        card, result = normalizer.load(RecordKind.CARD, {"cutoffDay": 10, ...})
    """

    def _rename_legacy(self, kind: RecordKind, doc: dict) -> list[ValidationIssue]:
        issues = []
        for canonical, legacy_names in LEGACY_FIELDS.get(kind, {}).items():
            for legacy in legacy_names:
                if legacy not in doc:
                    continue
                value = doc.pop(legacy)
                if canonical in doc:
                    issues.append(ValidationIssue(
                        field=legacy,
                        issue_type="legacy_field",
                        message=f"Ignored {legacy}; {canonical} is already set",
                        severity="warning",
                    ))
                    continue
                doc[canonical] = value
                issues.append(ValidationIssue(
                    field=canonical,
                    issue_type="legacy_field",
                    message=f"Loaded historical field {legacy} as {canonical}",
                    severity="info",
                    suggested_fix=f"Store the value as {canonical}",
                ))
        return issues

    def _normalize_date(
        self,
        doc: dict,
        field: str,
        required: bool,
        prefix: str = "",
    ) -> Optional[ValidationIssue]:
        if field not in doc or doc[field] is None or doc[field] == "":
            if required:
                return ValidationIssue(
                    field=prefix + field,
                    issue_type="missing",
                    message=f"{prefix + field} is required",
                    severity="error",
                )
            doc.pop(field, None)
            return None

        raw = doc[field]
        day = parse_day(raw)
        if day is None:
            if required:
                return ValidationIssue(
                    field=prefix + field,
                    issue_type="invalid_date",
                    message=f"{prefix + field} is not a date: {raw!r}",
                    severity="error",
                )
            doc[field] = None
            return ValidationIssue(
                field=prefix + field,
                issue_type="invalid_date",
                message=f"Dropped unparsable {prefix + field}: {raw!r}",
                severity="warning",
            )
        doc[field] = day.isoformat()
        return None

    def _normalize_amount(self, doc: dict, field: str) -> Optional[ValidationIssue]:
        if field not in doc or doc[field] is None:
            return None
        raw = doc[field]
        value = to_decimal(raw, default=None)
        if value is not None:
            doc[field] = str(value)
            return None
        doc[field] = "0"
        return ValidationIssue(
            field=field,
            issue_type="invalid_amount",
            message=f"{field} is not a number ({raw!r}); using 0",
            severity="warning",
        )

    def _normalize_day(self, doc: dict, field: str) -> Optional[ValidationIssue]:
        if field not in doc or doc[field] is None:
            return None
        raw = doc[field]
        try:
            value = int(str(raw).strip())
        except ValueError:
            value = None
        if value is None or not 1 <= value <= 31:
            return ValidationIssue(
                field=field,
                issue_type="invalid_day",
                message=f"{field} must be a day between 1 and 31, got {raw!r}",
                severity="error",
            )
        doc[field] = value
        return None

    def _normalize_rule(self, rule: dict) -> list[ValidationIssue]:
        issues = []
        for field in RULE_DATE_FIELDS:
            issue = self._normalize_date(rule, field, required=False, prefix="recurringRule.")
            if issue:
                issues.append(issue)

        for field in ("currentTerm", "totalTerms"):
            raw = rule.get(field)
            if raw is None:
                continue
            try:
                value = int(str(raw).strip())
            except ValueError:
                value = 0
            if value < 1:
                rule[field] = 1
                issues.append(ValidationIssue(
                    field=f"recurringRule.{field}",
                    issue_type="invalid_term",
                    message=f"recurringRule.{field} is not a positive number ({raw!r}); using 1",
                    severity="warning",
                ))
            else:
                rule[field] = value

        raw = rule.get("totalPrincipal")
        if raw is not None and to_decimal(raw, default=None) is None:
            rule["totalPrincipal"] = "0"
            issues.append(ValidationIssue(
                field="recurringRule.totalPrincipal",
                issue_type="invalid_amount",
                message=f"recurringRule.totalPrincipal is not a number ({raw!r}); using 0",
                severity="warning",
            ))
        return issues

    def normalize(self, kind: RecordKind, document: dict) -> ValidationResult:
        """
        Map one stored document onto canonical names and values.

        The input is never modified; the repaired copy is returned in
        ``ValidationResult.normalized``.
        """
        doc = dict(document)
        issues = self._rename_legacy(kind, doc)

        required = REQUIRED_DATES.get(kind, ())
        for field in DATE_FIELDS.get(kind, ()):
            issue = self._normalize_date(doc, field, required=field in required)
            if issue:
                issues.append(issue)

        for field in AMOUNT_FIELDS.get(kind, ()):
            issue = self._normalize_amount(doc, field)
            if issue:
                issues.append(issue)

        for field in DAY_FIELDS.get(kind, ()):
            issue = self._normalize_day(doc, field)
            if issue:
                issues.append(issue)

        if kind == RecordKind.TRANSACTION and isinstance(doc.get("recurringRule"), dict):
            rule = dict(doc["recurringRule"])
            issues.extend(self._normalize_rule(rule))
            doc["recurringRule"] = rule

        return ValidationResult(
            record_type=kind.value,
            record_id=doc.get("id"),
            is_valid=_is_valid(issues),
            issues=issues,
            normalized=doc,
        )

    def load(
        self,
        kind: RecordKind,
        document: dict,
    ) -> tuple[Optional[LedgerRecord], ValidationResult]:
        """
        Normalize and validate a stored document.

        Returns (record, result). The record is None when the document has
        an error no default can repair or fails model validation; the
        reason is in ``result.issues``.
        """
        result = self.normalize(kind, document)
        if not result.is_valid:
            logger.warning(
                "stored_record_rejected",
                record_type=result.record_type,
                record_id=result.record_id,
                error_count=result.error_count,
                issues=[i.message for i in result.issues if i.severity == "error"],
            )
            return None, result

        try:
            record = RECORD_MODELS[kind].model_validate(result.normalized)
        except ValidationError as e:
            issues = [
                *result.issues,
                *(
                    ValidationIssue(
                        field=".".join(str(p) for p in err["loc"]) or "document",
                        issue_type="schema",
                        message=err["msg"],
                        severity="error",
                    )
                    for err in e.errors()
                ),
            ]
            logger.warning(
                "stored_record_rejected",
                record_type=result.record_type,
                record_id=result.record_id,
                error_count=e.error_count(),
            )
            return None, result.model_copy(update={"is_valid": False, "issues": issues})

        if result.warnings:
            logger.info(
                "stored_record_repaired",
                record_type=result.record_type,
                record_id=result.record_id,
                warnings=result.warnings,
            )
        return record, result

    def load_many(
        self,
        kind: RecordKind,
        documents: list[dict],
    ) -> tuple[list[LedgerRecord], list[ValidationResult]]:
        """Load every loadable document; results with issues are returned for auditing."""
        records = []
        reported = []
        for document in documents:
            record, result = self.load(kind, document)
            if record is not None:
                records.append(record)
            if result.issues:
                reported.append(result)
        return records, reported
