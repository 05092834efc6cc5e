# audit_backend/validation.py
"""
Field rules for inbound audit submissions.

- validate_submission(raw) -> ValidationResult(data, errors)
- validate_update(raw) -> ValidationResult(data, errors)

Every rule runs; errors are collected (never short-circuited) and reported
in field order: name, email, company, website, message (then status for
updates).
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import email_validator
from email_validator import EmailNotValidError, validate_email

from audit_backend.schemas import AuditStatus, FieldError

REQUIRED = "required"
TOO_LONG = "too_long"
INVALID_FORMAT = "invalid_format"
INVALID_URL = "invalid_url"
INVALID_CHOICE = "invalid_choice"

# scheme://host[:port][/path...] with no whitespace anywhere
URL_REGEX = re.compile(
    r"^https?://"
    r"(?:[^\s:@/]+(?::[^\s@/]*)?@)?"
    r"(?:localhost|\[[0-9a-f:.]+\]|[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)+)"
    r"(?::\d{1,5})?"
    r"(?:[/?#]\S*)?$",
    flags=re.I,
)


@dataclass(frozen=True)
class TextRule:
    field: str
    label: str
    max_length: Optional[int] = None
    kind: str = "text"  # text | email | url


RULES = (
    TextRule("name", "Name", max_length=100),
    TextRule("email", "Email", kind="email"),
    TextRule("company", "Company name", max_length=150),
    TextRule("website", "Website URL", kind="url"),
    TextRule("message", "Message", max_length=1000),
)

FIELDS = tuple(r.field for r in RULES)

# Only syntax is checked: intranet and reserved domains (.local, .test, ...)
# are accepted like any other. The library reads this list on every call.
email_validator.SPECIAL_USE_DOMAIN_NAMES.clear()


@dataclass
class ValidationResult:
    data: Dict[str, Any] = field(default_factory=dict)
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _clean(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_email(value: str) -> str:
    """Raise EmailNotValidError for bad syntax; return the lowercase address."""
    result = validate_email(value, check_deliverability=False, globally_deliverable=False)
    return result.normalized.lower()


def is_valid_url(value: str) -> bool:
    return bool(URL_REGEX.match(value))


def _apply(rule: TextRule, raw_value: Any, out: ValidationResult) -> None:
    value = _clean(raw_value)
    if not value:
        out.errors.append(FieldError(field=rule.field, code=REQUIRED, message=f"{rule.label} is required"))
        return
    if rule.max_length is not None and len(value) > rule.max_length:
        out.errors.append(FieldError(
            field=rule.field, code=TOO_LONG,
            message=f"{rule.label} cannot exceed {rule.max_length} characters",
        ))
        return
    if rule.kind == "email":
        try:
            value = normalize_email(value)
        except EmailNotValidError:
            out.errors.append(FieldError(
                field=rule.field, code=INVALID_FORMAT, message="Please provide a valid email address",
            ))
            return
    elif rule.kind == "url" and not is_valid_url(value):
        out.errors.append(FieldError(field=rule.field, code=INVALID_URL, message="Please provide a valid URL"))
        return
    out.data[rule.field] = value


def validate_submission(raw: Optional[Mapping[str, Any]]) -> ValidationResult:
    raw = raw or {}
    out = ValidationResult()
    for rule in RULES:
        _apply(rule, raw.get(rule.field), out)
    return out


def validate_update(raw: Optional[Mapping[str, Any]]) -> ValidationResult:
    """Validate only the supplied fields; unknown and immutable keys are dropped."""
    raw = raw or {}
    out = ValidationResult()
    for rule in RULES:
        if rule.field in raw:
            _apply(rule, raw[rule.field], out)
    if "status" in raw:
        status = _clean(raw["status"]).lower()
        try:
            out.data["status"] = AuditStatus(status)
        except ValueError:
            choices = ", ".join(s.value for s in AuditStatus)
            out.errors.append(FieldError(
                field="status", code=INVALID_CHOICE, message=f"Status must be one of: {choices}",
            ))
    return out
