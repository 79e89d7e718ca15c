"""
Duplicate detection comparator profile.

The detector walks every stored application and applies each comparator in
the active profile. The built-in profile compares Aadhaar and primary phone
numbers exactly; PAN, bank account, alternate phone and a fuzzy
name-plus-address comparator ship as named built-ins that an override can
switch on.

Configuration is file-backed. Operators can point ``DEDUPE_PROFILE_PATH`` at a
JSON or YAML document such as::

    comparators:
      - Aadhaar
      - Phone
      - PAN
      - field: Name + Address
        kind: fuzzy
        floor: 0.9

String items reference built-ins by field label; mappings define (or tune) a
comparator inline.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence

import yaml

EXACT = "exact"
FUZZY = "fuzzy"
COMPARATOR_KINDS = (EXACT, FUZZY)


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ComparatorRule:
    """
    One identity comparison applied to a candidate/stored record pair.

    Attributes:
        field: Label reported on findings (``"Aadhaar"``, ``"Phone"`` ...).
        kind: ``exact`` (normalized equality, confidence 1.0) or ``fuzzy``.
        attributes: Candidate attributes read for the comparison.
        record_attributes: Stored-record attributes compared against; defaults
            to ``attributes``.
        normalizer: Identity normalizer name for exact comparators.
        floor: Minimum similarity for a fuzzy comparator to emit a finding.
        name_weight: Weight of name similarity in the fuzzy score.
        address_weight: Weight of address similarity in the fuzzy score.
        indexed_key: Normalized key column usable for indexed candidate lookup.
    """

    field: str
    kind: str = EXACT
    attributes: Sequence[str] = ()
    record_attributes: Sequence[str] | None = None
    normalizer: str | None = None
    floor: float = 0.9
    name_weight: float = 0.6
    address_weight: float = 0.4
    indexed_key: str | None = None

    @property
    def compared_attributes(self) -> Sequence[str]:
        return self.record_attributes if self.record_attributes is not None else self.attributes


@dataclass(frozen=True)
class DedupeProfile:
    key: str
    label: str
    comparators: Sequence[ComparatorRule]

    @property
    def has_fuzzy(self) -> bool:
        return any(rule.kind == FUZZY for rule in self.comparators)

    @property
    def indexable(self) -> bool:
        """True when every comparator can be served from an indexed key column."""
        return all(rule.indexed_key for rule in self.comparators)


# ---------------------------------------------------------------------------
# Built-in comparators
# ---------------------------------------------------------------------------

AADHAAR = ComparatorRule("Aadhaar", attributes=("aadhaar",), normalizer="aadhaar", indexed_key="aadhaar_key")
PHONE = ComparatorRule("Phone", attributes=("phone_primary",), normalizer="phone", indexed_key="phone_key")
PAN = ComparatorRule("PAN", attributes=("pan",), normalizer="pan")
BANK_ACCOUNT = ComparatorRule("Bank Account", attributes=("bank_account",), normalizer="bank_account")
ALT_PHONE = ComparatorRule(
    "Alternate Phone",
    attributes=("phone_primary", "phone_alt"),
    record_attributes=("phone_alt",),
    normalizer="phone",
)
NAME_ADDRESS = ComparatorRule(
    "Name + Address",
    kind=FUZZY,
    attributes=("applicant_name", "address_line1", "address_line2", "city", "pincode"),
)

BUILTIN_COMPARATORS: dict[str, ComparatorRule] = {
    rule.field: rule for rule in (AADHAAR, PHONE, PAN, BANK_ACCOUNT, ALT_PHONE, NAME_ADDRESS)
}

DEFAULT_PROFILE = DedupeProfile(
    key="default",
    label="Aadhaar and primary phone",
    comparators=(AADHAAR, PHONE),
)


# ---------------------------------------------------------------------------
# Loading helpers
# ---------------------------------------------------------------------------


class DedupeConfigError(RuntimeError):
    """Raised when a dedupe profile override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise DedupeConfigError(f"Dedupe profile file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise DedupeConfigError(f"Unable to read dedupe profile file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise DedupeConfigError(f"Dedupe profile file {path} is not valid: {exc}") from exc

    if not isinstance(data, Mapping):
        raise DedupeConfigError("Dedupe profile must be a JSON/YAML object.")
    return dict(data)


def _coerce_attributes(value: object, *, name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value.strip(),)
    if isinstance(value, Sequence):
        return tuple(str(item).strip() for item in value if str(item).strip())
    raise DedupeConfigError(f"Expected sequence for {name}, got {type(value).__name__}.")


def _coerce_unit_float(value: object, *, name: str) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise DedupeConfigError(f"{name} must be a number.") from exc
    if not 0.0 <= number <= 1.0:
        raise DedupeConfigError(f"{name} must be between 0.0 and 1.0.")
    return number


def _coerce_comparator(raw: object) -> ComparatorRule:
    if isinstance(raw, str):
        label = raw.strip()
        if label not in BUILTIN_COMPARATORS:
            raise DedupeConfigError(f"Unknown built-in comparator '{label}'.")
        return BUILTIN_COMPARATORS[label]
    if not isinstance(raw, Mapping):
        raise DedupeConfigError("Each comparator must be a built-in name or an object.")

    label = str(raw.get("field") or "").strip()
    if not label:
        raise DedupeConfigError("Each comparator requires a non-empty field.")
    base = BUILTIN_COMPARATORS.get(label, ComparatorRule(label))

    kind = str(raw.get("kind") or base.kind).strip().lower()
    if kind not in COMPARATOR_KINDS:
        raise DedupeConfigError(f"Comparator {label} has unknown kind '{kind}'.")
    attributes = (
        _coerce_attributes(raw["attributes"], name=f"{label}.attributes") if "attributes" in raw else base.attributes
    )
    if not attributes:
        raise DedupeConfigError(f"Comparator {label} requires at least one attribute.")
    record_attributes = base.record_attributes
    if "record_attributes" in raw:
        record_attributes = _coerce_attributes(raw["record_attributes"], name=f"{label}.record_attributes")
    normalizer = raw.get("normalizer", base.normalizer)
    if kind == EXACT and not normalizer:
        raise DedupeConfigError(f"Exact comparator {label} requires a normalizer.")

    rule = replace(
        base,
        kind=kind,
        attributes=attributes,
        record_attributes=record_attributes,
        normalizer=str(normalizer) if normalizer else None,
        floor=_coerce_unit_float(raw.get("floor", base.floor), name=f"{label}.floor"),
        name_weight=_coerce_unit_float(raw.get("name_weight", base.name_weight), name=f"{label}.name_weight"),
        address_weight=_coerce_unit_float(
            raw.get("address_weight", base.address_weight), name=f"{label}.address_weight"
        ),
    )
    # Indexed lookup only applies when the comparison is unchanged from the built-in.
    if rule != base:
        rule = replace(rule, indexed_key=None)
    return rule


def _coerce_profile(raw: Mapping[str, object]) -> DedupeProfile:
    key = str(raw.get("key") or "custom").strip() or "custom"
    label = str(raw.get("label") or key).strip() or key
    raw_comparators = raw.get("comparators")
    if raw_comparators is None:
        return replace(DEFAULT_PROFILE, key=key, label=label)
    if isinstance(raw_comparators, (str, bytes)) or not isinstance(raw_comparators, Sequence):
        raise DedupeConfigError("comparators must be a sequence.")
    comparators = tuple(_coerce_comparator(item) for item in raw_comparators)
    if not comparators:
        raise DedupeConfigError("A dedupe profile needs at least one comparator.")
    labels = [rule.field for rule in comparators]
    if len(set(labels)) != len(labels):
        raise DedupeConfigError("Comparator fields must be unique within a profile.")
    return DedupeProfile(key=key, label=label, comparators=comparators)


def load_profile(env: Mapping[str, object] | None = None) -> DedupeProfile:
    """
    Load the active dedupe profile.

    If ``DEDUPE_PROFILE_PATH`` is set in ``env`` (a Flask config or
    ``os.environ``), its JSON/YAML content replaces the default profile.
    """

    env_map = env or {}
    override_path = env_map.get("DEDUPE_PROFILE_PATH")
    if not override_path:
        return DEFAULT_PROFILE
    return _coerce_profile(_load_override(Path(str(override_path))))


__all__ = [
    "BUILTIN_COMPARATORS",
    "ComparatorRule",
    "DEFAULT_PROFILE",
    "DedupeConfigError",
    "DedupeProfile",
    "EXACT",
    "FUZZY",
    "load_profile",
]
