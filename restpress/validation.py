"""
Rule-based data validation.

A ruleset maps field names to rules, either as a pipe-delimited string or
as a list::

    validator = Validator(data, {
        "email": "required|email",
        "age": ["integer", "between:18,120"],
        "role": "in:author,editor",
    })
    if not validator.validate():
        validator.errors()  # {"email": ["The email field is required."]}

Every rule of a field is evaluated, in order, and each failure adds one
message to the field's error list. Rules other than ``required`` and
``requiredIf`` are skipped while the value is empty, so optional fields
only get checked when they are filled in.
"""

import logging
import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from email_validator import EmailNotValidError, validate_email

from .exceptions import UnknownRuleError

logger = logging.getLogger(__name__)

# (value, parameter, data, field) -> passed
RuleEvaluator = Callable[[Any, Optional[str], Mapping[str, Any], str], bool]
# (value, parameter, data) -> passed
CustomRule = Callable[[Any, Optional[str], Mapping[str, Any]], bool]

RuleSpec = Union[str, Iterable[str]]

PRESENCE_RULES = frozenset({"required", "requiredIf"})

_NUMERIC_RE = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")
_INTEGER_RE = re.compile(r"^[+-]?(0|[1-9]\d*)$")
_ALPHA_RE = re.compile(r"^[a-zA-Z]+$")
_ALPHA_NUM_RE = re.compile(r"^[a-zA-Z0-9]+$")
_ALPHA_DASH_RE = re.compile(r"^[a-zA-Z0-9_-]+$")
_PHONE_RE = re.compile(r"^[\d\s\-+()]+$")
_USERNAME_RE = re.compile(r"^[a-zA-Z0-9_-]{3,20}$")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%m/%d/%Y",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d %H:%M:%S",
    "%d %B %Y",
    "%d %b %Y",
    "%B %d, %Y",
    "%b %d, %Y",
    "%a, %d %b %Y %H:%M:%S %Z",
)

DEFAULT_MESSAGES: Dict[str, str] = {
    "required": "The {field} field is required.",
    "requiredIf": "The {field} field is required when {parameter}.",
    "email": "The {field} must be a valid email address.",
    "url": "The {field} must be a valid URL.",
    "numeric": "The {field} must be a number.",
    "integer": "The {field} must be an integer.",
    "string": "The {field} must be a string.",
    "array": "The {field} must be an array.",
    "boolean": "The {field} must be true or false.",
    "min": "The {field} must be at least {parameter}.",
    "max": "The {field} must not be greater than {parameter}.",
    "between": "The {field} must be between {parameter}.",
    "in": "The selected {field} is invalid.",
    "notIn": "The selected {field} is invalid.",
    "regex": "The {field} format is invalid.",
    "alpha": "The {field} may only contain letters.",
    "alphaNum": "The {field} may only contain letters and numbers.",
    "alphaDash": "The {field} may only contain letters, numbers, dashes and underscores.",
    "phone": "The {field} must be a valid phone number.",
    "username": "The {field} must be a valid username.",
    "date": "The {field} is not a valid date.",
    "confirmed": "The {field} confirmation does not match.",
    "same": "The {field} and {parameter} must match.",
    "different": "The {field} and {parameter} must be different.",
}

FALLBACK_MESSAGE = "The {field} field is invalid."


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def is_empty(value: Any) -> bool:
    """``None``, ``""`` and empty collections count as empty; ``0`` and ``False`` do not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


def is_numeric(value: Any) -> bool:
    """Numbers and numeric strings; booleans are not numeric."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    return isinstance(value, str) and bool(_NUMERIC_RE.match(value))


def to_number(value: Any) -> Union[int, float]:
    """Numeric value (or numeric string) as an ``int`` when integral, else ``float``."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def stringify(value: Any) -> str:
    """String form used for cross-field comparisons (``True`` -> ``"1"``)."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


def identical(left: Any, right: Any) -> bool:
    """Equal in value and in type (``1`` is not identical to ``"1"`` or ``True``)."""
    return type(left) is type(right) and left == right


def _split_parameter(parameter: Optional[str], expected: int) -> List[str]:
    parts = [part.strip() for part in (parameter or "").split(",", expected - 1)]
    if len(parts) != expected or not all(parts):
        raise ValueError(f"Rule parameter '{parameter}' must have {expected} comma-separated values")
    return parts


def _compile_pattern(pattern: str) -> "re.Pattern[str]":
    """Compile ``/pattern/flags`` style patterns, or a bare pattern."""
    if len(pattern) >= 2 and pattern[0] in "/#~" and pattern.rfind(pattern[0]) > 0:
        delimiter = pattern[0]
        end = pattern.rfind(delimiter)
        flags = 0
        for letter in pattern[end + 1:]:
            flags |= {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE, "u": 0}.get(letter, 0)
        return re.compile(pattern[1:end], flags)
    return re.compile(pattern)


def _size(value: Any) -> Optional[float]:
    """The measured size used by ``min``/``max``, by runtime shape."""
    if is_numeric(value):
        return to_number(value)
    if isinstance(value, str):
        return len(value)
    if isinstance(value, (list, tuple, dict, set)):
        return len(value)
    return None


# ---------------------------------------------------------------------------
# Built-in rules
# ---------------------------------------------------------------------------


def rule_required(value, parameter, data, field):
    return not is_empty(value)


def rule_required_if(value, parameter, data, field):
    if not parameter:
        return True
    other, expected = _split_parameter(parameter, 2)
    if other in data and stringify(data[other]) == expected:
        return not is_empty(value)
    return True


def rule_email(value, parameter, data, field):
    if not isinstance(value, str):
        return False
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def rule_url(value, parameter, data, field):
    if not isinstance(value, str) or any(ch.isspace() for ch in value):
        return False
    parsed = urlparse(value)
    return bool(parsed.scheme) and parsed.scheme.isalpha() and bool(parsed.netloc)


def rule_numeric(value, parameter, data, field):
    return is_numeric(value)


def rule_integer(value, parameter, data, field):
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    if isinstance(value, float):
        return value.is_integer()
    return isinstance(value, str) and bool(_INTEGER_RE.match(value.strip()))


def rule_string(value, parameter, data, field):
    return isinstance(value, str)


def rule_array(value, parameter, data, field):
    return isinstance(value, (list, tuple, dict))


def rule_boolean(value, parameter, data, field):
    if isinstance(value, bool):
        return True
    if isinstance(value, int):
        return value in (0, 1)
    return value in ("0", "1")


def rule_min(value, parameter, data, field):
    size = _size(value)
    return size is not None and size >= to_number(parameter)


def rule_max(value, parameter, data, field):
    size = _size(value)
    return size is not None and size <= to_number(parameter)


def rule_between(value, parameter, data, field):
    low, high = _split_parameter(parameter, 2)
    return rule_min(value, low, data, field) and rule_max(value, high, data, field)


def rule_in(value, parameter, data, field):
    choices = [choice.strip() for choice in (parameter or "").split(",")]
    if is_numeric(value):
        number = to_number(value)
        return any(is_numeric(choice) and to_number(choice) == number for choice in choices)
    return isinstance(value, str) and value in choices


def rule_not_in(value, parameter, data, field):
    return not rule_in(value, parameter, data, field)


def rule_regex(value, parameter, data, field):
    return _compile_pattern(parameter or "").search(stringify(value)) is not None


def rule_alpha(value, parameter, data, field):
    return bool(_ALPHA_RE.match(stringify(value)))


def rule_alpha_num(value, parameter, data, field):
    return bool(_ALPHA_NUM_RE.match(stringify(value)))


def rule_alpha_dash(value, parameter, data, field):
    return bool(_ALPHA_DASH_RE.match(stringify(value)))


def rule_phone(value, parameter, data, field):
    text = stringify(value)
    return bool(_PHONE_RE.match(text)) and len(re.sub(r"\D", "", text)) >= 10


def rule_username(value, parameter, data, field):
    return bool(_USERNAME_RE.match(stringify(value)))


def rule_date(value, parameter, data, field):
    if isinstance(value, datetime):
        return True
    if not isinstance(value, str):
        return False
    text = value.strip()
    try:
        datetime.fromisoformat(text.replace("Z", "+00:00"))
        return True
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            continue
    return False


def rule_confirmed(value, parameter, data, field):
    confirmation = f"{field}_confirmation"
    return confirmation in data and identical(value, data[confirmation])


def rule_same(value, parameter, data, field):
    return parameter in data and identical(value, data[parameter])


def rule_different(value, parameter, data, field):
    return parameter not in data or not identical(value, data[parameter])


BUILTIN_RULES: Dict[str, RuleEvaluator] = {
    "required": rule_required,
    "requiredIf": rule_required_if,
    "email": rule_email,
    "url": rule_url,
    "numeric": rule_numeric,
    "integer": rule_integer,
    "string": rule_string,
    "array": rule_array,
    "boolean": rule_boolean,
    "min": rule_min,
    "max": rule_max,
    "between": rule_between,
    "in": rule_in,
    "notIn": rule_not_in,
    "regex": rule_regex,
    "alpha": rule_alpha,
    "alphaNum": rule_alpha_num,
    "alphaDash": rule_alpha_dash,
    "phone": rule_phone,
    "username": rule_username,
    "date": rule_date,
    "confirmed": rule_confirmed,
    "same": rule_same,
    "different": rule_different,
}


class RuleRegistry:
    """Lookup from rule name to evaluator.

    Built-in rules are registered by the constructor; ``extend`` adds custom
    rules (or replaces a rule of the same name). Rules are never removed.
    """

    def __init__(self):
        self._rules: Dict[str, RuleEvaluator] = dict(BUILTIN_RULES)

    def extend(self, name: str, callback: CustomRule) -> None:
        """Register ``callback(value, parameter, data) -> bool`` under ``name``."""

        def evaluate(value, parameter, data, field):
            return bool(callback(value, parameter, data))

        self._rules[name] = evaluate

    def get(self, name: str) -> RuleEvaluator:
        try:
            return self._rules[name]
        except KeyError:
            raise UnknownRuleError(name)

    def has(self, name: str) -> bool:
        return name in self._rules

    def names(self) -> List[str]:
        return list(self._rules)


# Shared by every Validator that is not given its own registry
default_rules = RuleRegistry()


def parse_rules(spec: RuleSpec) -> List[Tuple[str, Optional[str]]]:
    """Split a rule spec into ``(name, parameter)`` pairs.

    ``"required|max:100"`` -> ``[("required", None), ("max", "100")]``
    """
    atoms = spec.split("|") if isinstance(spec, str) else list(spec)
    parsed = []
    for atom in atoms:
        atom = atom.strip()
        if not atom:
            continue
        name, sep, parameter = atom.partition(":")
        parsed.append((name.strip(), parameter if sep else None))
    return parsed


class Validator:
    """Evaluates a ruleset against a data mapping.

    Args:
        data: The values to validate, keyed by field
        rules: Field -> rule spec (``"required|email"`` or ``["required", "email"]``)
        messages: Custom messages keyed by ``"field.rule"``
        registry: Rule lookup to use instead of the shared default registry
    """

    def __init__(
        self,
        data: Mapping[str, Any],
        rules: Mapping[str, RuleSpec],
        messages: Optional[Mapping[str, str]] = None,
        registry: Optional[RuleRegistry] = None,
    ):
        self.data = data
        self.rules = rules
        self.messages = dict(messages or {})
        self.registry = registry if registry is not None else default_rules
        self._errors: Dict[str, List[str]] = {}

    @classmethod
    def make(
        cls,
        data: Mapping[str, Any],
        rules: Mapping[str, RuleSpec],
        messages: Optional[Mapping[str, str]] = None,
    ) -> "Validator":
        return cls(data, rules, messages)

    @classmethod
    def extend(cls, name: str, callback: CustomRule) -> None:
        """Register a custom rule usable by every validator in the process."""
        default_rules.extend(name, callback)

    def validate(self) -> bool:
        """Run every rule; True when no field collected an error."""
        self._errors = {}

        for field, spec in self.rules.items():
            value = self.data.get(field)
            for name, parameter in parse_rules(spec):
                if is_empty(value) and name not in PRESENCE_RULES:
                    continue
                evaluator = self.registry.get(name)
                if not evaluator(value, parameter, self.data, field):
                    self._add_error(field, name, parameter)

        if self._errors:
            logger.debug(f"Validation failed for fields: {', '.join(self._errors)}")
        return not self._errors

    def passes(self) -> bool:
        return self.validate()

    def fails(self) -> bool:
        return not self.validate()

    def errors(self) -> Dict[str, List[str]]:
        return self._errors

    def first_error(self) -> Optional[str]:
        for messages in self._errors.values():
            if messages:
                return messages[0]
        return None

    def validated(self) -> Dict[str, Any]:
        """The values of the ruled fields that are present in the data."""
        return {field: self.data[field] for field in self.rules if field in self.data}

    def _add_error(self, field: str, rule: str, parameter: Optional[str]) -> None:
        key = f"{field}.{rule}"
        if key in self.messages:
            message = self.messages[key]
        else:
            template = DEFAULT_MESSAGES.get(rule, FALLBACK_MESSAGE)
            message = template.format(field=field, parameter=parameter)
        self._errors.setdefault(field, []).append(message)
