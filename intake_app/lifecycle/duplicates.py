"""
Duplicate detection across every stored application.

The detector compares a candidate (a record or a plain mapping of field
values) against all stored records, regardless of project or lifecycle stage,
and reports one finding per matching comparator per record. Findings are
computed on demand and never cached; ``duplicate_flags`` on a record is only
a reporting snapshot.
"""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence

from rapidfuzz import fuzz, utils
from rapidfuzz.distance import JaroWinkler

from config.dedupe import DEFAULT_PROFILE, EXACT, FUZZY, ComparatorRule, DedupeProfile
from intake_app.lifecycle.identity import get_normalizer
from intake_app.lifecycle.store import RecordStore
from intake_app.models import ApplicationRecord, LifecycleStage

logger = logging.getLogger(__name__)

# Fuzzy matches never claim the certainty of an identity-number match.
MAX_FUZZY_CONFIDENCE = 0.99


class MatchType(str, enum.Enum):
    EXACT = "EXACT"
    FUZZY = "FUZZY"


@dataclass(frozen=True)
class DuplicateFinding:
    """One potential collision between a candidate and a stored record."""

    source_id: str
    match_type: MatchType
    field: str
    confidence: float
    matched_stage: LifecycleStage

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourceId": self.source_id,
            "matchType": self.match_type.value,
            "field": self.field,
            "confidence": self.confidence,
            "matchedStage": self.matched_stage.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DuplicateFinding":
        return cls(
            source_id=str(data["sourceId"]),
            match_type=MatchType(data["matchType"]),
            field=str(data["field"]),
            confidence=float(data["confidence"]),
            matched_stage=LifecycleStage(data["matchedStage"]),
        )


def serialize_findings(findings: Iterable[DuplicateFinding]) -> str | None:
    """Flatten findings for ``duplicate_flags``; ``None`` when there are none."""
    payload = [finding.to_dict() for finding in findings]
    if not payload:
        return None
    return json.dumps(payload)


def parse_findings(text: str | None) -> list[DuplicateFinding]:
    if not text:
        return []
    return [DuplicateFinding.from_dict(item) for item in json.loads(text)]


def _read(candidate: ApplicationRecord | Mapping[str, Any], attribute: str) -> Any:
    if isinstance(candidate, Mapping):
        return candidate.get(attribute)
    return getattr(candidate, attribute, None)


def _clean_text(value: object | None) -> str:
    if value is None:
        return ""
    return str(value).strip()


class DuplicateDetector:
    """
    Scan the record store for records sharing identity signals with a candidate.

    Args:
        store: Record store read on every call.
        profile: Comparator profile; defaults to Aadhaar + primary phone.
        use_index: Fetch candidate rows through the indexed normalized key
            columns instead of scanning every record. Ignored when any
            comparator cannot be served from an index (fuzzy, PAN ...).
    """

    def __init__(self, store: RecordStore, profile: DedupeProfile | None = None, *, use_index: bool = False):
        self.store = store
        self.profile = profile or DEFAULT_PROFILE
        self.use_index = use_index

    def find_duplicates(self, candidate: ApplicationRecord | Mapping[str, Any]) -> list[DuplicateFinding]:
        candidate_id = _clean_text(_read(candidate, "id"))
        if not candidate_id:
            return []

        prepared = [(rule, self._candidate_values(rule, candidate)) for rule in self.profile.comparators]
        findings: list[DuplicateFinding] = []
        for record in self._records_to_scan(prepared):
            if record.id == candidate_id:
                continue
            for rule, values in prepared:
                finding = self._compare(rule, values, candidate, record)
                if finding is not None:
                    findings.append(finding)

        if findings:
            logger.debug(
                "Candidate %s has %d duplicate finding(s): %s",
                candidate_id,
                len(findings),
                ", ".join(f"{f.field}->{f.source_id}" for f in findings),
            )
        return findings

    # Internals -----------------------------------------------------------------

    def _records_to_scan(self, prepared: Sequence[tuple[ComparatorRule, set[str]]]) -> list[ApplicationRecord]:
        if self.use_index and self.profile.indexable:
            keys = {rule.indexed_key: sorted(values) for rule, values in prepared}
            return self.store.candidates_by_keys(keys)
        return self.store.list_all_records_global()

    @staticmethod
    def _normalized(rule: ComparatorRule, source, attributes: Sequence[str]) -> set[str]:
        normalize = get_normalizer(rule.normalizer)
        values = set()
        for attribute in attributes:
            value = normalize(_read(source, attribute))
            if value:
                values.add(value)
        return values

    def _candidate_values(self, rule: ComparatorRule, candidate) -> set[str]:
        if rule.kind != EXACT:
            return set()
        return self._normalized(rule, candidate, rule.attributes)

    def _compare(
        self,
        rule: ComparatorRule,
        candidate_values: set[str],
        candidate,
        record: ApplicationRecord,
    ) -> DuplicateFinding | None:
        if rule.kind == EXACT:
            if not candidate_values:
                return None
            if candidate_values.isdisjoint(self._normalized(rule, record, rule.compared_attributes)):
                return None
            return DuplicateFinding(record.id, MatchType.EXACT, rule.field, 1.0, record.lifecycle_stage)

        if rule.kind == FUZZY:
            score = fuzzy_identity_score(rule, candidate, record)
            if score is None or score < rule.floor:
                return None
            return DuplicateFinding(record.id, MatchType.FUZZY, rule.field, score, record.lifecycle_stage)

        return None


def fuzzy_identity_score(rule: ComparatorRule, candidate, record) -> float | None:
    """
    Weighted name + address similarity between two applicants (0..0.99).

    The first attribute of the rule is the name; the rest are joined as the
    address. Returns ``None`` when either side lacks a name or an address.
    """

    name_attr, *address_attrs = rule.attributes
    name1 = utils.default_process(_clean_text(_read(candidate, name_attr)))
    name2 = utils.default_process(_clean_text(_read(record, name_attr)))
    address1 = " ".join(filter(None, (utils.default_process(_clean_text(_read(candidate, a))) for a in address_attrs)))
    address2 = " ".join(filter(None, (utils.default_process(_clean_text(_read(record, a))) for a in address_attrs)))
    if not (name1 and name2 and address1 and address2):
        return None

    name_score = JaroWinkler.normalized_similarity(name1, name2)
    address_score = fuzz.token_set_ratio(address1, address2) / 100.0
    total_weight = rule.name_weight + rule.address_weight
    if total_weight <= 0:
        return None
    score = (rule.name_weight * name_score + rule.address_weight * address_score) / total_weight
    return round(max(0.0, min(MAX_FUZZY_CONFIDENCE, score)), 4)


__all__ = [
    "DuplicateDetector",
    "DuplicateFinding",
    "MatchType",
    "fuzzy_identity_score",
    "parse_findings",
    "serialize_findings",
]
