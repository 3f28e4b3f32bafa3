"""
Engagement team membership, invitations and access control.

Writes that touch more than one location (the engagement roster, the global
invitation index keyed by sanitized email, and the per-user engagement index)
are always issued as one multi-path update so they land together.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from firebase_models import (
    EngagementModel, UserModel, engagement_path, team_member_path,
    user_engagement_path, pending_invitation_path, invitation_path,
)
from models import (
    TeamMember, Invitation, EngagementSummary, normalize_permission,
    INVITABLE_PERMISSIONS, PERMISSION_OWNER, PERMISSION_EDITOR, PERMISSION_VIEWER,
    STATUS_INVITED, STATUS_ACTIVE,
)
from utils import is_valid_email, now_iso


class MembershipError(Exception):
    """Base class for roster and invitation failures"""


class EngagementNotFoundError(MembershipError):
    pass


class MemberNotFoundError(MembershipError):
    pass


class DuplicateMemberError(MembershipError):
    pass


class InviteeNotRegisteredError(MembershipError):
    pass


@dataclass
class Access:
    """Effective access of one user to one engagement"""
    permission: Optional[str]
    is_read_only: bool
    is_member: bool

    def to_dict(self):
        return {'permission': self.permission, 'isReadOnly': self.is_read_only, 'isMember': self.is_member}


class MembershipService:

    def __init__(self, database, allow_unregistered_invites=True):
        self.db = database
        self.allow_unregistered_invites = allow_unregistered_invites
        self.engagements = EngagementModel(database)
        self.users = UserModel(database)

    def _require_engagement(self, engagement_id):
        engagement = self.db.get(engagement_path(engagement_id))
        if not engagement:
            raise EngagementNotFoundError(f"Engagement {engagement_id} does not exist.")
        return engagement

    def _find_member(self, engagement_id, member_id):
        self.engagements.ensure_keyed_roster(engagement_id)
        for member in self.engagements.get_team_members(engagement_id):
            if member.id == member_id:
                return member
        raise MemberNotFoundError(f"Team member {member_id} is not on this engagement.")

    def list_team_members(self, engagement_id):
        return self.engagements.get_team_members(engagement_id)

    def add_team_member(self, engagement_id, name, title):
        """Add a roster-only record for someone without an account"""
        name = (name or '').strip()
        title = (title or '').strip()
        if not name or not title:
            raise MembershipError('Please fill in both Name and Role.')
        self._require_engagement(engagement_id)
        self.engagements.ensure_keyed_roster(engagement_id)
        member = TeamMember(id=self.db.new_key(), name=name, role=title)
        self.db.set(team_member_path(engagement_id, member.id), member.to_dict())
        return member

    def invite(self, engagement_id, email, role, inviter_name, name='', title='', inviter_uid=None):
        """Invite email to the engagement with permission role.

        The invitation is keyed by sanitized email so it can be resolved at the
        invitee's first sign-in. Existing accounts also get a pending marker.
        """
        email = (email or '').strip().lower()
        if not is_valid_email(email):
            raise MembershipError('Please enter a valid email address.')
        permission = normalize_permission(role)
        if permission not in INVITABLE_PERMISSIONS:
            raise MembershipError(f"Permission must be one of: {', '.join(INVITABLE_PERMISSIONS)}.")

        engagement = self._require_engagement(engagement_id)
        self.engagements.ensure_keyed_roster(engagement_id)
        for member in self.engagements.get_team_members(engagement_id):
            if member.email == email:
                raise DuplicateMemberError(f"{email} is already on this engagement's team.")

        invitee_uid = self.users.get_user_by_email(email)
        if invitee_uid and invitee_uid == engagement.get('userId'):
            raise DuplicateMemberError(f"{email} owns this engagement.")
        if not invitee_uid and not self.allow_unregistered_invites:
            raise InviteeNotRegisteredError(f"No account is registered for {email}. Ask them to sign in once first.")

        invited_at = now_iso()
        member = TeamMember(
            id=self.db.new_key(),
            name=(name or '').strip() or email.split('@')[0],
            role=(title or '').strip(),
            email=email,
            permission=permission,
            status=STATUS_INVITED,
            invitedAt=invited_at,
            invitedBy=inviter_name,
        )
        invitation = Invitation(
            engagementId=engagement_id,
            memberId=member.id,
            email=email,
            role=permission,
            invitedBy=inviter_name or '',
            invitedByUid=inviter_uid,
            invitedAt=invited_at,
        )
        changes = {
            team_member_path(engagement_id, member.id): member.to_dict(),
            invitation_path(email, engagement_id): invitation.to_dict(),
        }
        if invitee_uid:
            changes[pending_invitation_path(invitee_uid, engagement_id)] = {
                'engagementId': engagement_id,
                'invitedBy': inviter_name or '',
                'role': permission,
                'invitedAt': invited_at,
            }
        self.db.update('', changes)
        logging.info(f"Invited {email} to engagement {engagement_id} as {permission} "
                     f"({'existing account' if invitee_uid else 'no account yet'})")
        return member

    def reconcile_on_login(self, user):
        """Resolve every invitation waiting for the signed-in user's email.

        Returns the ids of the engagements joined. With nothing pending no
        write is issued, so repeated calls are harmless.
        """
        uid = user['uid']
        email = (user.get('email') or '').strip().lower()
        if not email:
            return []
        pending = self.db.get(invitation_path(email)) or {}
        if not pending:
            return []

        changes = {}
        joined = []
        for engagement_id, raw in pending.items():
            invitation = Invitation.from_dict(raw, engagement_id)
            changes[invitation_path(email, engagement_id)] = None
            changes[pending_invitation_path(uid, engagement_id)] = None

            engagement = self.db.get(engagement_path(engagement_id))
            if not engagement:
                logging.warning(f"Discarding invitation for {email} to missing engagement {engagement_id}")
                continue

            self.engagements.ensure_keyed_roster(engagement_id)
            member_id = self._resolve_member_id(engagement_id, invitation, email)
            if member_id is None:
                # Removed from the roster after being invited
                logging.warning(f"Discarding stale invitation for {email} to engagement {engagement_id}")
                continue

            summary = EngagementSummary.from_engagement(engagement_id, engagement, invitation.role)
            changes[user_engagement_path(uid, engagement_id)] = summary.to_dict()
            changes[team_member_path(engagement_id, member_id) + '/status'] = STATUS_ACTIVE
            changes[team_member_path(engagement_id, member_id) + '/userId'] = uid
            joined.append(engagement_id)

        self.db.update('', changes)
        logging.info(f"Reconciled {len(pending)} invitation(s) for {email}; joined {joined}")
        return joined

    def _resolve_member_id(self, engagement_id, invitation, email):
        members = self.engagements.get_team_members(engagement_id)
        for member in members:
            if invitation.memberId and member.id == invitation.memberId:
                return member.id
        for member in members:
            if member.email == email:
                return member.id
        return None

    def check_permissions(self, engagement_id, user_id, owner_id=None):
        """Effective access of user_id to engagement_id; unknown users get read-only.

        owner_id may be passed when the caller has already read it.
        """
        if owner_id is None:
            owner_id = self.engagements.get_owner(engagement_id)
        if user_id and owner_id == user_id:
            return Access(PERMISSION_OWNER, False, True)

        profile = self.users.get_profile(user_id) or {}
        email = (profile.get('email') or '').strip().lower()
        for member in self.engagements.get_team_members(engagement_id):
            matched = (email and member.email == email) or (member.userId and member.userId == user_id)
            if not matched:
                continue
            permission = member.permission or PERMISSION_EDITOR
            access = Access(permission, permission == PERMISSION_VIEWER, True)
            logging.debug(f"User {user_id} has {permission} access to engagement {engagement_id}")
            return access

        logging.debug(f"User {user_id} is not on the team of engagement {engagement_id}; read-only")
        return Access(None, True, False)

    def update_permission(self, engagement_id, member_id, permission):
        """Change a member's permission everywhere it is copied"""
        permission = normalize_permission(permission)
        if permission not in INVITABLE_PERMISSIONS:
            raise MembershipError(f"Permission must be one of: {', '.join(INVITABLE_PERMISSIONS)}.")
        member = self._find_member(engagement_id, member_id)
        changes = {team_member_path(engagement_id, member_id) + '/permission': permission}
        if member.userId:
            if self.db.get(user_engagement_path(member.userId, engagement_id)) is not None:
                changes[user_engagement_path(member.userId, engagement_id) + '/role'] = permission
        if member.email and member.status == STATUS_INVITED:
            if self.db.get(invitation_path(member.email, engagement_id)) is not None:
                changes[invitation_path(member.email, engagement_id) + '/role'] = permission
        self.db.update('', changes)
        member.permission = permission
        return member

    def remove_team_member(self, engagement_id, member_id):
        """Remove a member and every denormalized copy of their access"""
        member = self._find_member(engagement_id, member_id)
        changes = {team_member_path(engagement_id, member_id): None}
        if member.userId:
            changes[user_engagement_path(member.userId, engagement_id)] = None
            changes[pending_invitation_path(member.userId, engagement_id)] = None
        if member.email:
            changes[invitation_path(member.email, engagement_id)] = None
            invitee_uid = self.users.get_user_by_email(member.email)
            if invitee_uid:
                changes[pending_invitation_path(invitee_uid, engagement_id)] = None
        self.db.update('', changes)
        logging.info(f"Removed team member {member_id} from engagement {engagement_id}")
        return member

    def repair_user_index(self, engagement_id):
        """Rewrite user index entries that drifted from the roster; returns the number fixed"""
        engagement = self._require_engagement(engagement_id)
        expected = {}
        owner = engagement.get('userId')
        if owner:
            expected[owner] = PERMISSION_OWNER
        for member in self.engagements.get_team_members(engagement_id):
            if member.status == STATUS_ACTIVE and member.userId and member.userId not in expected:
                expected[member.userId] = member.permission or PERMISSION_EDITOR

        changes = {}
        for uid, role in expected.items():
            entry = self.db.get(user_engagement_path(uid, engagement_id))
            if not entry or entry.get('role') != role:
                summary = EngagementSummary.from_engagement(engagement_id, engagement, role)
                changes[user_engagement_path(uid, engagement_id)] = summary.to_dict()
        if changes:
            self.db.update('', changes)
            logging.warning(f"Repaired {len(changes)} user index entries for engagement {engagement_id}")
        return len(changes)
