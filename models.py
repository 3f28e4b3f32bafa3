from dataclasses import dataclass, field, asdict
from typing import Optional

from utils import is_blank

ENGAGEMENT_STATUS_IN_PROGRESS = 'In Progress'

PERMISSION_OWNER = 'owner'
PERMISSION_EDITOR = 'editor'
PERMISSION_VIEWER = 'viewer'
INVITABLE_PERMISSIONS = (PERMISSION_EDITOR, PERMISSION_VIEWER)

STATUS_INVITED = 'invited'
STATUS_ACTIVE = 'active'

# Older roster documents used accessLevel admin/member, or only a status
LEGACY_PERMISSIONS = {
    'admin': PERMISSION_EDITOR,
    'member': PERMISSION_EDITOR,
    'read-only': PERMISSION_VIEWER,
    'readonly': PERMISSION_VIEWER,
}

PRIVATE_COMPANY_MARKERS = ('pvt ltd', 'private limited')


def normalize_permission(value):
    """Map any stored permission/accessLevel value onto owner/editor/viewer"""
    if is_blank(value):
        return None
    value = str(value).strip().lower()
    if value in (PERMISSION_OWNER, PERMISSION_EDITOR, PERMISSION_VIEWER):
        return value
    return LEGACY_PERMISSIONS.get(value, PERMISSION_EDITOR)


def _text(value):
    return '' if value is None else str(value)


@dataclass
class Client:
    name: str
    address: str
    fyPeriodEnd: str
    frf: str
    isListed: Optional[bool] = None
    ownerUserId: Optional[str] = None

    @property
    def is_private_company(self):
        lowered = self.name.lower()
        return any(marker in lowered for marker in PRIVATE_COMPANY_MARKERS)

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        is_listed = data.get('isListed')
        return cls(
            name=_text(data.get('name')),
            address=_text(data.get('address')),
            fyPeriodEnd=_text(data.get('fyPeriodEnd')),
            frf=_text(data.get('frf')),
            isListed=None if is_listed is None else bool(is_listed),
            ownerUserId=data.get('ownerUserId'),
        )

    def to_dict(self):
        return {key: value for key, value in asdict(self).items() if value is not None}


CLIENT_REQUIRED_FIELDS = [
    ('name', 'clientName', 'Client Name is required.'),
    ('address', 'clientAddress', 'Client Address is required.'),
    ('fyPeriodEnd', 'fyPeriodEnd', 'Fiscal Year End is required.'),
    ('frf', 'frf', 'Applicable FRF is required.'),
]


def validate_client(data):
    """Return a {field: message} dict of missing onboarding fields"""
    errors = {}
    for key, field_name, message in CLIENT_REQUIRED_FIELDS:
        if is_blank((data or {}).get(key)):
            errors[field_name] = message
    return errors


def client_from_onboarding(data):
    """Build the Client for a new engagement; private companies never carry the listed flag"""
    client = Client.from_dict(data)
    client.name = client.name.strip()
    client.address = client.address.strip()
    client.fyPeriodEnd = client.fyPeriodEnd.strip()
    client.frf = client.frf.strip()
    if client.is_private_company:
        client.isListed = None
    else:
        client.isListed = bool(client.isListed)
    return client


@dataclass
class AuditReportDetails:
    engagementPartnerName: str = ''
    designation: str = ''
    auditFirmName: str = ''
    reportDate: str = ''
    reportPlace: str = ''
    keyAuditMatters: str = ''
    udin: str = ''
    firmRegistrationNumber: str = ''
    includeOtherInformation: Optional[bool] = None

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        include = data.get('includeOtherInformation')
        return cls(
            engagementPartnerName=_text(data.get('engagementPartnerName')),
            designation=_text(data.get('designation')),
            auditFirmName=_text(data.get('auditFirmName')),
            reportDate=_text(data.get('reportDate')),
            reportPlace=_text(data.get('reportPlace')),
            keyAuditMatters=_text(data.get('keyAuditMatters')),
            udin=_text(data.get('udin')),
            firmRegistrationNumber=_text(data.get('firmRegistrationNumber')),
            includeOtherInformation=None if include is None else bool(include),
        )

    def to_dict(self):
        return asdict(self)


REPORT_REQUIRED_FIELDS = [
    ('engagementPartnerName', 'Engagement Partner Name is required.'),
    ('designation', 'Designation is required.'),
    ('auditFirmName', 'Audit Firm Name is required.'),
    ('reportDate', 'Report Date is required.'),
    ('reportPlace', 'Report Place is required.'),
    ('udin', 'UDIN is required.'),
    ('firmRegistrationNumber', 'Firm Registration Number is required.'),
]


def validate_report_details(data):
    errors = {}
    for key, message in REPORT_REQUIRED_FIELDS:
        if is_blank((data or {}).get(key)):
            errors[key] = message
    return errors


@dataclass
class TeamMember:
    id: str
    name: str = ''
    role: str = ''
    email: str = ''
    permission: Optional[str] = None
    status: Optional[str] = None
    invitedAt: Optional[str] = None
    invitedBy: Optional[str] = None
    userId: Optional[str] = None

    @property
    def is_read_only(self):
        return self.permission == PERMISSION_VIEWER

    @classmethod
    def from_dict(cls, data, member_id=None):
        """Read a roster entry of any stored revision into the canonical shape"""
        data = data or {}
        permission = data.get('permission')
        if permission is None:
            permission = data.get('accessLevel')
        return cls(
            id=_text(data.get('id') or member_id),
            name=_text(data.get('name')),
            role=_text(data.get('role')),
            email=_text(data.get('email')).strip().lower(),
            permission=normalize_permission(permission),
            status=data.get('status'),
            invitedAt=data.get('invitedAt'),
            invitedBy=data.get('invitedBy'),
            userId=data.get('userId'),
        )

    def to_dict(self):
        return {key: value for key, value in asdict(self).items() if value not in (None, '')}


def keyed_roster(members):
    """Roster as {member_id: entry}, whatever shape it was stored in.

    Array rosters are keyed by each entry's id (index when missing) and the
    legacy accessLevel becomes permission.
    """
    if isinstance(members, list):
        members = {str(index): member for index, member in enumerate(members)}
    roster = {}
    for key, member in (members or {}).items():
        if not isinstance(member, dict):
            continue
        member = dict(member)
        member_id = member.get('id') or key
        member['id'] = member_id
        if 'accessLevel' in member:
            access_level = member.pop('accessLevel')
            member.setdefault('permission', normalize_permission(access_level))
        roster[member_id] = member
    return roster


@dataclass
class Invitation:
    engagementId: str
    memberId: str
    email: str
    role: str
    invitedBy: str = ''
    invitedByUid: Optional[str] = None
    invitedAt: Optional[str] = None
    status: str = 'pending'

    @classmethod
    def from_dict(cls, data, engagement_id=None):
        data = data or {}
        return cls(
            engagementId=_text(data.get('engagementId') or engagement_id),
            memberId=_text(data.get('memberId')),
            email=_text(data.get('email')),
            role=normalize_permission(data.get('role')) or PERMISSION_VIEWER,
            invitedBy=_text(data.get('invitedBy')),
            invitedByUid=data.get('invitedByUid'),
            invitedAt=data.get('invitedAt'),
            status=data.get('status') or 'pending',
        )

    def to_dict(self):
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class EngagementSummary:
    id: str
    client: dict = field(default_factory=dict)
    status: str = ENGAGEMENT_STATUS_IN_PROGRESS
    role: str = PERMISSION_OWNER
    createdAt: Optional[str] = None

    @classmethod
    def from_engagement(cls, engagement_id, engagement, role):
        engagement = engagement or {}
        return cls(
            id=engagement_id,
            client=engagement.get('client') or {},
            status=engagement.get('status') or ENGAGEMENT_STATUS_IN_PROGRESS,
            role=role,
            createdAt=engagement.get('createdAt'),
        )

    def to_dict(self):
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class UserProfile:
    uid: str
    email: str = ''
    displayName: str = ''
    photoURL: str = ''
    lastLogin: Optional[str] = None

    def to_dict(self):
        return {key: value for key, value in asdict(self).items() if value is not None}
