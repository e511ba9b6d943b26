"""
Static per-kind configuration table for upstream report sources.

Every kind-specific rule lives here and is consulted uniformly by the fetch
client (endpoint, field projection) and the normalizer (field mapping and
derived-field rules):

| kind              | endpoint                                  | event time          |
|-------------------|-------------------------------------------|---------------------|
| inbound-queue     | /api/v2/reports/queues_cdrs               | called_time         |
| outbound-queue    | /api/v2/reports/queues_outbound_cdrs      | called_time         |
| campaign-activity | /api/v2/reports/campaigns/leads/history   | timestamp, datetime |
| cdr               | /api/v2/reports/cdrs                      | timestamp, datetime |

The projected column lists are a fixed contract with the upstream API and
are sent verbatim.
"""

from dataclasses import dataclass
from typing import Dict, Tuple

from callreports.models.enums import ReportKind


# =============================================================================
# Extension derivation rules
# =============================================================================

EXTENSION_FROM_AGENT_FIELD = 'agent_field'
EXTENSION_FROM_FIRST_LEG = 'first_leg'
EXTENSION_NONE = 'none'


@dataclass(frozen=True)
class ReportSpec:
    """
    Everything that differs between report kinds.

    Attributes:
        kind: Report kind this entry describes.
        endpoint: Path appended to the upstream base URL.
        fields: Upstream column projection, sent as a CSV `fields` parameter.
        mapping: Canonical field -> upstream fields tried in order. An empty
            tuple pins the canonical field to its empty default.
        dialed_number_fields: Fields classified by the country heuristic, first
            non-empty classification wins.
        extension_rule: How the canonical extension is derived.
        history_field: Upstream field holding the per-leg attempt events.
        dedup_legs: Keep only the first row per call_id (one row per agent leg upstream).
        derive_abandoned: Recompute the abandonment flag from the raw row.
        derive_durations: Fill missing talk/wait durations from timestamps.
        first_queue_only: Truncate queue history to its oldest element.
    """
    kind: ReportKind
    endpoint: str
    fields: Tuple[str, ...]
    mapping: Dict[str, Tuple[str, ...]]
    dialed_number_fields: Tuple[str, ...]
    extension_rule: str
    history_field: str = 'agent_history'
    dedup_legs: bool = False
    derive_abandoned: bool = False
    derive_durations: bool = False
    first_queue_only: bool = False

    @property
    def fields_param(self) -> str:
        return ','.join(self.fields)


# =============================================================================
# Field projections
# =============================================================================

INBOUND_QUEUE_FIELDS: Tuple[str, ...] = (
    'called_time',
    'caller_id_number',
    'caller_id_name',
    'answered_time',
    'hangup_time',
    'wait_duration',
    'talked_duration',
    'queue_name',
    'abandoned',
    'queue_history',
    'agent_history',
    'agent_attempts',
    'agent_hangup',
    'call_id',
    'bleg_call_id',
    'event_timestamp',
    'agent_first_name',
    'agent_last_name',
    'agent_extension',
    'agent_email',
    'agent_talk_time',
    'agent_connect_time',
    'agent_action',
    'agent_transfer',
    'csat',
    'media_recording_id',
    'recording_filename',
    'callee_id_number',
    'a_leg',
    'interaction_id',
    'agent_disposition',
    'agent_subdisposition',
)

OUTBOUND_QUEUE_FIELDS: Tuple[str, ...] = (
    'called_time',
    'agent_name',
    'agent_ext',
    'destination',
    'answered_time',
    'hangup_time',
    'wait_duration',
    'talked_duration',
    'queue_name',
    'queue_history',
    'agent_history',
    'agent_hangup',
    'call_id',
    'bleg_call_id',
    'event_timestamp',
    'agent_first_name',
    'agent_last_name',
    'agent_extension',
    'agent_email',
    'agent_talk_time',
    'agent_connect_time',
    'agent_action',
    'agent_transfer',
    'csat',
    'media_recording_id',
    'recording_filename',
    'caller_id_name',
    'caller_id_number',
    'a_leg',
    'interaction_id',
    'agent_disposition',
    'agent_subdisposition',
)

CAMPAIGN_ACTIVITY_FIELDS: Tuple[str, ...] = (
    'datetime',
    'timestamp',
    'campaign_name',
    'campaign_type',
    'lead_name',
    'lead_first_name',
    'lead_last_name',
    'lead_number',
    'lead_ticket_id',
    'lead_type',
    'agent_name',
    'agent_extension',
    'agent_talk_time',
    'lead_history',
    'call_id',
    'campaign_timestamps',
    'media_recording_id',
    'recording_filename',
    'status',
    'customer_wait_time_sla',
    'customer_wait_time_over_sla',
    'disposition',
    'hangup_cause',
    'lead_disposition',
    'agent_subdisposition',
    'answered_time',
)

CDR_FIELDS: Tuple[str, ...] = (
    'call_id',
    'datetime',
    'timestamp',
    'caller_id_name',
    'caller_id_number',
    'callee_id_name',
    'callee_id_number',
    'to',
    'from',
    'duration_seconds',
    'billing_seconds',
    'ringing_seconds',
    'hangup_cause',
    'media_recording_id',
    'recording_filename',
    'a_leg',
    'interaction_id',
    'answered_time',
)


# =============================================================================
# Canonical field mappings
# =============================================================================

_QUEUE_MAPPING: Dict[str, Tuple[str, ...]] = {
    'call_id': ('call_id', 'callid'),
    'event_time': ('called_time',),
    'answered_time': ('answered_time',),
    'hangup_time': ('hangup_time',),
    'caller_number': ('caller_id_number',),
    'caller_name': ('caller_id_name',),
    'queue_or_campaign': ('queue_name',),
    'campaign_type': (),
    'talk_duration': ('talked_duration',),
    'wait_duration': ('wait_duration',),
    'status': (),
    'disposition': (),
    'agent_disposition': ('agent_disposition',),
    'lead_disposition': (),
    'recording': ('media_recording_id', 'recording_filename'),
}

INBOUND_QUEUE_MAPPING: Dict[str, Tuple[str, ...]] = {
    **_QUEUE_MAPPING,
    'callee_number': ('callee_id_number',),
}

OUTBOUND_QUEUE_MAPPING: Dict[str, Tuple[str, ...]] = {
    **_QUEUE_MAPPING,
    'callee_number': ('to', 'destination'),
}

CAMPAIGN_ACTIVITY_MAPPING: Dict[str, Tuple[str, ...]] = {
    'call_id': ('call_id', 'callid'),
    'event_time': ('timestamp', 'datetime'),
    'answered_time': ('answered_time',),
    'hangup_time': (),
    # Campaign rows put the lead in the caller/callee columns and the agent
    # extension in the caller number column.
    'caller_number': ('agent_extension',),
    'caller_name': ('lead_name',),
    'callee_number': ('lead_number',),
    'queue_or_campaign': ('campaign_name',),
    'campaign_type': ('campaign_type',),
    'agent_name': ('agent_name',),
    'talk_duration': ('agent_talk_time',),
    'wait_duration': (),
    'status': ('status',),
    'disposition': ('disposition',),
    # Not in the campaign projection
    'agent_disposition': (),
    'lead_disposition': ('lead_disposition',),
    'recording': ('media_recording_id', 'recording_filename'),
}

CDR_MAPPING: Dict[str, Tuple[str, ...]] = {
    'call_id': ('call_id',),
    'event_time': ('timestamp', 'datetime'),
    'answered_time': ('answered_time',),
    'hangup_time': (),
    'caller_number': ('caller_id_number',),
    'caller_name': ('caller_id_name',),
    'callee_number': ('callee_id_number', 'to'),
    'queue_or_campaign': (),
    'campaign_type': (),
    'talk_duration': ('duration_seconds',),
    'wait_duration': (),
    'status': (),
    'disposition': ('hangup_cause',),
    'agent_disposition': (),
    'lead_disposition': (),
    'recording': ('media_recording_id', 'recording_filename'),
}


# =============================================================================
# The table
# =============================================================================

REPORT_SPECS: Dict[ReportKind, ReportSpec] = {
    ReportKind.INBOUND_QUEUE: ReportSpec(
        kind=ReportKind.INBOUND_QUEUE,
        endpoint='/api/v2/reports/queues_cdrs',
        fields=INBOUND_QUEUE_FIELDS,
        mapping=INBOUND_QUEUE_MAPPING,
        dialed_number_fields=('caller_id_number',),
        extension_rule=EXTENSION_FROM_FIRST_LEG,
        dedup_legs=True,
        derive_abandoned=True,
        derive_durations=True,
    ),
    ReportKind.OUTBOUND_QUEUE: ReportSpec(
        kind=ReportKind.OUTBOUND_QUEUE,
        endpoint='/api/v2/reports/queues_outbound_cdrs',
        fields=OUTBOUND_QUEUE_FIELDS,
        mapping=OUTBOUND_QUEUE_MAPPING,
        dialed_number_fields=('to', 'destination', 'callee_id_number'),
        extension_rule=EXTENSION_FROM_FIRST_LEG,
        derive_durations=True,
        first_queue_only=True,
    ),
    ReportKind.CAMPAIGN_ACTIVITY: ReportSpec(
        kind=ReportKind.CAMPAIGN_ACTIVITY,
        endpoint='/api/v2/reports/campaigns/leads/history',
        fields=CAMPAIGN_ACTIVITY_FIELDS,
        mapping=CAMPAIGN_ACTIVITY_MAPPING,
        dialed_number_fields=('lead_number',),
        extension_rule=EXTENSION_FROM_AGENT_FIELD,
        history_field='lead_history',
    ),
    ReportKind.CDR: ReportSpec(
        kind=ReportKind.CDR,
        endpoint='/api/v2/reports/cdrs',
        fields=CDR_FIELDS,
        mapping=CDR_MAPPING,
        dialed_number_fields=('caller_id_number', 'callee_id_number'),
        extension_rule=EXTENSION_NONE,
    ),
}


def get_report_spec(kind: ReportKind) -> ReportSpec:
    """Look up the configuration entry for a report kind."""
    return REPORT_SPECS[kind]
