"""
Audit phase sections.

Each section of an engagement (basics, planning, materiality, auditEvidence,
communication, reporting) is one subtree under engagements/{id}/{section}.
A SectionSchema gives its defaults, its current schema version and the
migrations that bring older stored documents up to date. A SectionForm holds
a live local copy of one section and writes changes straight back.
"""
import copy
import logging
import threading

from firebase_models import engagement_path
from models import keyed_roster
from utils import deep_merge

SCHEMA_VERSION_FIELD = 'schemaVersion'


class UnknownSectionError(KeyError):
    pass


class SectionSchema:
    """Defaults, version and read-time migrations for one section"""

    def __init__(self, name, title, defaults, version=1, migrations=None, list_fields=(), protected_fields=()):
        self.name = name
        self.title = title
        self.defaults = defaults
        self.version = version
        # {from_version: function(doc) -> doc at from_version + 1}
        self.migrations = migrations or {}
        self.list_fields = tuple(list_fields)
        # Written only through their own services, never by the form
        self.protected_fields = tuple(protected_fields)

    def stored_version(self, document):
        if not isinstance(document, dict):
            return self.version
        return int(document.get(SCHEMA_VERSION_FIELD) or 1)

    def migrate(self, document):
        """Bring a stored document up to the current version"""
        document = copy.deepcopy(document) if isinstance(document, dict) else {}
        version = self.stored_version(document)
        while version < self.version:
            migration = self.migrations.get(version)
            if migration:
                document = migration(document)
            version += 1
        document[SCHEMA_VERSION_FIELD] = self.version
        return document

    def load(self, document):
        """Stored value -> complete local copy, defaults filled in"""
        migrated = self.migrate(document)
        data = deep_merge(self.defaults, migrated)
        # Sparse arrays come back from the store as int-keyed dicts
        for field in self.list_fields:
            value = data.get(field)
            if isinstance(value, dict):
                data[field] = list(value.values())
            elif not isinstance(value, list):
                data[field] = []
        return data


def _migrate_basics_v1(document):
    """Array rosters become keyed by member id; accessLevel becomes permission"""
    if document.get('teamMembers'):
        document['teamMembers'] = keyed_roster(document['teamMembers'])
    return document


def _checklist(*keys):
    return {key: False for key in keys}


def _communication_item(item_id, text):
    return {'id': item_id, 'text': text, 'checked': False, 'draftTemplate': 'Draft Content...'}


BASICS = SectionSchema('basics', 'Basics', {
    'agmDate': '',
    'appointmentDate': '',
    'previousAuditor': '',
    'partnerName': '',
    'partnerMembership': '',
    'acceptanceChecks': _checklist('integrity', 'competence', 'ethics', 'preconditions'),
    'sa210Checks': _checklist('preconditions', 'responsibilities', 'termsAgreed'),
    'ethicsChecks': _checklist('integrity', 'objectivity', 'competence', 'confidentiality', 'behavior'),
}, version=2, migrations={1: _migrate_basics_v1}, protected_fields=('teamMembers',))

PLANNING = SectionSchema('planning', 'Planning and Risk Assessment', {
    'overallStrategy': '',
    'auditPlan': '',
    'inquiries': '',
    'analyticalProcedures': '',
    'observationInspection': '',
    'internalControl': '',
})

MATERIALITY = SectionSchema('materiality', 'Materiality & Sampling', {
    'benchmark': 'Profit Before Tax',
    'benchmarkAmount': 0,
    'overallPercent': 5,
    'performancePercent': 75,
    'justification': '',
    'samplingPlans': [],
}, list_fields=('samplingPlans',))

AUDIT_EVIDENCE = SectionSchema('auditEvidence', 'Audit Evidence', {
    'sa500': {
        'checklist': _checklist('inspection', 'observation', 'externalConfirmation', 'recalculation',
                                'reperformance', 'analyticalProcedures', 'inquiry'),
        'summary': '',
        'workPapers': {
            'inspection': [],
            'recalculation': [],
            'reperformance': '',
            'observation': '',
            'inquiry': '',
            'analyticalProcedures': '',
            'externalConfirmation': '',
        },
    },
    'sa501': {
        'inventory': {'attendedCount': False, 'countDate': '', 'locations': '', 'observations': ''},
        'litigation': {'inquiryManagement': False, 'reviewedLegalExpenses': False, 'legalCounselResponse': ''},
        'segment': {'understandingMethods': False, 'testingApplication': False,
                    'analyticalProcedures': False, 'conclusion': ''},
    },
    'sa505': {'requests': []},
    'sa510': {
        'checklist': _checklist('agreePriorPeriod', 'consistentPolicies', 'reviewedPredecessorWP'),
        'notes': '',
    },
    'sa550': {'parties': [], 'transactionsReview': ''},
    'sa560': {
        'checklist': _checklist('inquiryManagement', 'reviewMinutes', 'reviewInterimFS'),
        'eventsNoted': '',
    },
    'sa570': {
        'indicators': _checklist('netLiability', 'borrowingMaturity', 'lossKeyManagement', 'negativeCashFlow'),
        'conclusion': 'Appropriate',
        'justification': '',
    },
    'sa580': {
        'letterDate': '',
        'checklist': _checklist('respPreparation', 'respInformation', 'respTransactions'),
    },
})

COMMUNICATION = SectionSchema('communication', 'Communication', {
    'sa260': [
        _communication_item('sa260-1', "Auditor's responsibilities in relation to the financial statement audit."),
        _communication_item('sa260-2', 'Planned scope and timing of the audit.'),
        _communication_item('sa260-3', 'Significant findings from the audit.'),
    ],
    'sa265': [
        _communication_item('sa265-1', 'Identified significant deficiencies in internal control.'),
    ],
}, list_fields=('sa260', 'sa265'))

REPORTING = SectionSchema('reporting', 'Reporting & Conclusion', {
    'engagementPartnerName': '',
    'designation': '',
    'auditFirmName': '',
    'reportDate': '',
    'reportPlace': '',
    'keyAuditMatters': '',
    'udin': '',
    'firmRegistrationNumber': '',
    'includeOtherInformation': True,
})

SECTIONS = {schema.name: schema for schema in (BASICS, PLANNING, MATERIALITY, AUDIT_EVIDENCE, COMMUNICATION, REPORTING)}
SECTION_ORDER = list(SECTIONS)


def get_schema(section):
    try:
        return SECTIONS[section]
    except KeyError:
        raise UnknownSectionError(section)


def materiality_figures(data):
    """Overall and performance materiality from the benchmark inputs"""
    def number(value):
        try:
            return float(value or 0)
        except (TypeError, ValueError):
            return 0.0

    overall = number(data.get('benchmarkAmount')) * number(data.get('overallPercent')) / 100
    performance = overall * number(data.get('performancePercent')) / 100
    return {'overallMateriality': overall, 'performanceMateriality': performance}


class SectionForm:
    """Live, editable local copy of one engagement section.

    open() keeps the copy live through a subscription, whose first value may
    arrive later on a listener thread; fetch() reads it once for use within a
    request. Read-only forms still receive updates from other collaborators
    but never write.
    """

    def __init__(self, database, engagement_id, section, read_only=False):
        self.db = database
        self.engagement_id = engagement_id
        self.schema = get_schema(section)
        self.read_only = read_only
        self.data = self.schema.load(None)
        self.loaded = False
        self._listeners = []
        self._unsubscribe = None
        self._lock = threading.RLock()

    @property
    def path(self):
        return engagement_path(self.engagement_id, self.schema.name)

    def open(self):
        if self._unsubscribe is None:
            self._unsubscribe = self.db.subscribe(self.path, self._on_value)
        return self

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def add_listener(self, callback):
        self._listeners.append(callback)

    def fetch(self):
        """Read the section once, for request-scoped use without a listener"""
        self._apply(self.db.get(self.path))
        return self

    def _apply(self, value):
        needs_upgrade = value is not None and self.schema.stored_version(value) < self.schema.version
        with self._lock:
            self.data = self.schema.load(value)
            self.loaded = True
            snapshot = copy.deepcopy(self.data)
        if needs_upgrade and not self.read_only:
            logging.info(f"Upgrading {self.path} to schema version {self.schema.version}")
            self.db.update(self.path, self.schema.migrate(value))
        return snapshot

    def _on_value(self, value):
        snapshot = self._apply(value)
        for listener in list(self._listeners):
            listener(snapshot)

    def snapshot(self):
        with self._lock:
            return copy.deepcopy(self.data)

    def update(self, changes):
        """Apply changes locally and merge-write only those fields"""
        if self.read_only:
            logging.debug(f"Suppressed write to read-only section {self.path}")
            return False
        changes = {
            key: value for key, value in (changes or {}).items()
            if key != SCHEMA_VERSION_FIELD and key not in self.schema.protected_fields
        }
        if not changes:
            return False
        with self._lock:
            self.data.update(copy.deepcopy(changes))
        changes[SCHEMA_VERSION_FIELD] = self.schema.version
        self.db.update(self.path, changes)
        return True

    def replace(self, field, value):
        """Replace one field wholesale (used for list-valued checklists)"""
        if self.read_only:
            logging.debug(f"Suppressed write to read-only section {self.path}/{field}")
            return False
        if field == SCHEMA_VERSION_FIELD or field in self.schema.protected_fields:
            return False
        with self._lock:
            self.data[field] = copy.deepcopy(value)
        self.db.update(self.path, {field: value, SCHEMA_VERSION_FIELD: self.schema.version})
        return True
