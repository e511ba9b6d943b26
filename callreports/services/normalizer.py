"""
Record Normalizer

Maps every upstream report row into the CanonicalRecord schema using the
static per-kind table in report_config, and derives the fields some tenants
omit:

- talk / wait durations from answered, hangup and called timestamps
- the inbound abandonment flag (always recomputed, upstream value ignored)
- the dialed country (phone_country heuristic)
- the extension (agent field, first agent leg, or empty per kind)

Normalization never fails: absent or malformed fields degrade to empty
defaults. Inbound queue pages are additionally collapsed to one row per call
because upstream emits one row per agent leg.
"""

import hashlib
import json
import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from callreports.models import (
    AbandonedFlag,
    AgentLeg,
    CanonicalRecord,
    QueueVisit,
    ReportKind,
)
from callreports.services.phone_country import extract_country
from callreports.services.report_config import (
    EXTENSION_FROM_AGENT_FIELD,
    EXTENSION_FROM_FIRST_LEG,
    ReportSpec,
    get_report_spec,
)

logger = logging.getLogger(__name__)

# Epoch values below this are seconds, above it milliseconds
EPOCH_MILLIS_THRESHOLD = 1e11

TIME_FIELDS = ('event_time', 'answered_time', 'hangup_time')
NUMBER_FIELDS = ('talk_duration', 'wait_duration')


# =============================================================================
# Value coercion helpers
# =============================================================================

def _present(value: Any) -> bool:
    return value is not None and value != ''


def _first(row: Dict[str, Any], fields: Iterable[str]) -> Any:
    for field in fields:
        value = row.get(field)
        if _present(value):
            return value
    return None


def _text(value: Any) -> str:
    if value is None:
        return ''
    return str(value)


def _number(value: Any) -> Optional[float]:
    if value is None or value == '' or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_timestamp(value: Any) -> Optional[float]:
    """
    Convert an upstream timestamp into epoch seconds.

    Accepts epoch seconds, epoch milliseconds (numbers or digit strings) and
    ISO-8601 strings. Naive ISO values are taken as UTC.

    Returns:
        Epoch seconds, or None when the value is missing or unreadable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        numeric = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        numeric = _number(text)
        if numeric is None:
            try:
                parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
            except ValueError:
                return None
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            return parsed.timestamp()

    if not math.isfinite(numeric) or numeric <= 0:
        return None
    if numeric >= EPOCH_MILLIS_THRESHOLD:
        return numeric / 1000.0
    return numeric


def parse_history(value: Any) -> Optional[List[Any]]:
    """
    Read a history field that may arrive as a list or as JSON text.

    Returns:
        The list, [] for unparseable text, None when the field is absent.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if isinstance(value, list):
        return value
    return []


def _full_name(entry: Dict[str, Any]) -> str:
    first = _text(entry.get('first_name'))
    last = _text(entry.get('last_name'))
    return f"{first} {last}".strip() or _text(entry.get('name'))


# =============================================================================
# Derived fields
# =============================================================================

def derive_durations(
    row: Dict[str, Any],
    answered: Optional[float],
    hangup: Optional[float],
    called: Optional[float],
) -> Tuple[Optional[float], Optional[float]]:
    """
    Fill missing talk / wait durations from the call timestamps.

    talk = hangup - answered, when both are present.
    wait = answered - called, or hangup - called if the call was never answered.

    Returns:
        (talk_duration, wait_duration) in seconds.
    """
    talk = _number(row.get('talked_duration'))
    wait = _number(row.get('wait_duration'))

    if not talk and hangup is not None and answered is not None:
        talk = hangup - answered

    if not wait and called is not None:
        if answered is not None:
            wait = answered - called
        elif hangup is not None:
            wait = hangup - called

    return talk, wait


def _leg_answered(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    if entry.get('answered_time') or entry.get('connected'):
        return True
    action = entry.get('agent_action') or ''
    if isinstance(action, list):
        return 'transfer' in action
    return 'transfer' in str(action)


def compute_abandoned(row: Dict[str, Any]) -> AbandonedFlag:
    """
    Derive the abandonment flag of an inbound queue call.

    A call is abandoned when its agent history is missing, empty or made of
    empty objects, when it has no answered_time, or when no agent leg was
    answered (answer timestamp or connected flag) or transferred.
    """
    history = parse_history(row.get('agent_history'))

    history_missing = (
        not history
        or all(isinstance(entry, dict) and not entry for entry in history)
    )
    if history_missing or not row.get('answered_time'):
        return AbandonedFlag.YES

    if not any(_leg_answered(entry) for entry in history):
        return AbandonedFlag.YES
    return AbandonedFlag.NO


def derive_extension(spec: ReportSpec, row: Dict[str, Any], history: List[Any]) -> str:
    """Extension column: agent field for campaigns, first leg for queues, empty for CDRs."""
    if spec.extension_rule == EXTENSION_FROM_AGENT_FIELD:
        return _text(row.get('agent_extension'))
    if spec.extension_rule == EXTENSION_FROM_FIRST_LEG:
        if history and isinstance(history[0], dict):
            return _text(history[0].get('ext'))
    return ''


def derive_country(spec: ReportSpec, row: Dict[str, Any]) -> str:
    """Country of the kind-specific dialed number; first field that classifies wins."""
    for field in spec.dialed_number_fields:
        country = extract_country(row.get(field))
        if country:
            return country
    return ''


def _answered_from_history(history: List[Any]) -> Optional[float]:
    for entry in history:
        if not isinstance(entry, dict):
            continue
        if entry.get('event') == 'answer' or entry.get('connected'):
            return parse_timestamp(entry.get('last_attempt'))
    return None


def _sub_dispositions(row: Dict[str, Any]) -> Tuple[str, str]:
    sub = row.get('agent_subdisposition')
    if isinstance(sub, list):
        sub = sub[0] if sub else None
    if not isinstance(sub, dict):
        return '', ''
    nested = sub.get('subdisposition')
    second = nested.get('name') if isinstance(nested, dict) else None
    return _text(sub.get('name')), _text(second)


def _fallback_call_id(kind: ReportKind, row: Dict[str, Any]) -> str:
    # Stable across re-fetches so dedup still recognises the row
    digest = hashlib.sha1(
        json.dumps(row, sort_keys=True, default=str).encode('utf-8')
    ).hexdigest()[:16]
    return f"{kind.value}:{digest}"


# =============================================================================
# History mapping
# =============================================================================

def _agent_leg(entry: Dict[str, Any]) -> AgentLeg:
    return AgentLeg(
        timestamp=parse_timestamp(entry.get('last_attempt')),
        agent_name=_full_name(entry),
        extension=_text(entry.get('ext')),
        event_type=_text(entry.get('event') or entry.get('type')),
        connected=bool(entry.get('connected')),
        hangup_cause=_text(entry.get('hangup_cause')),
    )


def _lead_leg(entry: Dict[str, Any]) -> AgentLeg:
    agent = entry.get('agent') if isinstance(entry.get('agent'), dict) else {}
    return AgentLeg(
        timestamp=parse_timestamp(entry.get('last_attempt')),
        agent_name=_full_name(agent),
        extension=_text(agent.get('ext')),
        event_type=_text(entry.get('type') or entry.get('event')),
        connected=bool(entry.get('connected')),
        hangup_cause=_text(entry.get('hangup_cause')),
    )


def _queue_visits(row: Dict[str, Any], first_only: bool) -> List[QueueVisit]:
    history = parse_history(row.get('queue_history')) or []
    visits = [
        QueueVisit(
            timestamp=parse_timestamp(entry.get('ts')),
            queue_name=_text(entry.get('queue_name')),
        )
        for entry in history
        if isinstance(entry, dict)
    ]
    if first_only:
        return visits[:1]
    return visits


# =============================================================================
# Public API
# =============================================================================

def dedup_legs(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Keep the first row seen per call_id, dropping later agent legs.

    Rows without a call_id cannot be grouped and are all kept.
    """
    seen = set()
    kept: List[Dict[str, Any]] = []
    for row in rows:
        call_id = row.get('call_id')
        if not call_id:
            kept.append(row)
            continue
        if call_id in seen:
            continue
        seen.add(call_id)
        kept.append(row)

    dropped = len(rows) - len(kept)
    if dropped:
        logger.debug(f"Dropped {dropped} tail agent legs")
    return kept


def normalize(kind: ReportKind, row: Dict[str, Any]) -> CanonicalRecord:
    """
    Map one upstream row into the canonical schema.

    Args:
        kind: Report kind the row came from
        row: Row as returned by the upstream endpoint

    Returns:
        CanonicalRecord with every derived field populated
    """
    spec = get_report_spec(kind)
    if not isinstance(row, dict):
        row = {}

    values: Dict[str, Any] = {}
    for field, sources in spec.mapping.items():
        raw = _first(row, sources)
        if field in TIME_FIELDS:
            values[field] = parse_timestamp(raw)
        elif field in NUMBER_FIELDS:
            values[field] = _number(raw)
        else:
            values[field] = _text(raw)

    agent_history = parse_history(row.get('agent_history')) or []
    legs = [_agent_leg(entry) for entry in agent_history if isinstance(entry, dict)]
    if spec.history_field != 'agent_history':
        extra = parse_history(row.get(spec.history_field)) or []
        legs.extend(_lead_leg(entry) for entry in extra if isinstance(entry, dict))

    if spec.derive_durations:
        values['talk_duration'], values['wait_duration'] = derive_durations(
            row,
            answered=values['answered_time'],
            hangup=values['hangup_time'],
            called=values['event_time'],
        )

    abandoned = compute_abandoned(row) if spec.derive_abandoned else None

    # Display fallback, applied after abandonment was derived from the raw row
    if values['answered_time'] is None:
        values['answered_time'] = _answered_from_history(agent_history)

    if not values.get('agent_name') and agent_history and isinstance(agent_history[0], dict):
        values['agent_name'] = _full_name(agent_history[0])

    sub_1, sub_2 = _sub_dispositions(row)
    call_id = values.pop('call_id') or _fallback_call_id(kind, row)

    return CanonicalRecord(
        **values,
        call_id=call_id,
        kind=kind,
        agent_history=legs,
        queue_history=_queue_visits(row, spec.first_queue_only),
        sub_disposition_1=sub_1,
        sub_disposition_2=sub_2,
        abandoned=abandoned,
        country=derive_country(spec, row),
        extension=derive_extension(spec, row, agent_history),
    )


def normalize_page(kind: ReportKind, rows: List[Dict[str, Any]]) -> List[CanonicalRecord]:
    """Normalize a page of rows, collapsing agent legs first where the kind requires it."""
    spec = get_report_spec(kind)
    if spec.dedup_legs:
        rows = dedup_legs(rows)
    return [normalize(kind, row) for row in rows]
