import logging

from data_store import join_path
from models import (
    Client, EngagementSummary, UserProfile, TeamMember, keyed_roster,
    ENGAGEMENT_STATUS_IN_PROGRESS, PERMISSION_OWNER,
)
from utils import now_iso, sanitize_email

ENGAGEMENTS = 'engagements'
USERS = 'users'
INVITATIONS = 'invitations'
EMAIL_MAPPING = 'email_mapping'


def engagement_path(engagement_id, *parts):
    return join_path(ENGAGEMENTS, engagement_id, *parts)


def team_member_path(engagement_id, member_id=None):
    return engagement_path(engagement_id, 'basics', 'teamMembers', member_id)


def user_path(uid, *parts):
    return join_path(USERS, uid, *parts)


def user_engagement_path(uid, engagement_id=None):
    return user_path(uid, 'engagements', engagement_id)


def pending_invitation_path(uid, engagement_id=None):
    return user_path(uid, 'pendingInvitations', engagement_id)


def invitation_path(email, engagement_id=None):
    return join_path(INVITATIONS, sanitize_email(email), engagement_id)


def email_mapping_path(email):
    return join_path(EMAIL_MAPPING, sanitize_email(email))


class FirebaseModel:
    """Base class for models stored under one path of the document store"""

    def __init__(self, database, base_path):
        self.db = database
        self.base_path = base_path

    def path(self, *parts):
        return join_path(self.base_path, *parts)

    def get(self, doc_id):
        """Get a document by id"""
        return self.db.get(self.path(doc_id))

    def get_all(self):
        """Get all documents as {id: document}"""
        return self.db.get(self.base_path) or {}

    def update(self, doc_id, data):
        """Merge fields into a document"""
        self.db.update(self.path(doc_id), data)

    def exists(self, doc_id):
        return self.get(doc_id) is not None


class EngagementModel(FirebaseModel):
    """Engagements and the owner's dashboard index entry"""

    def __init__(self, database):
        super().__init__(database, ENGAGEMENTS)

    def create_engagement(self, client, user_id):
        """Create an engagement for client owned by user_id and return its id.

        The engagement and the owner's index entry are written in one
        multi-path update.
        """
        if isinstance(client, dict):
            client = Client.from_dict(client)
        client.ownerUserId = user_id
        engagement_id = self.db.new_key()
        engagement = {
            'client': client.to_dict(),
            'userId': user_id,
            'status': ENGAGEMENT_STATUS_IN_PROGRESS,
            'createdAt': now_iso(),
        }
        summary = EngagementSummary.from_engagement(engagement_id, engagement, PERMISSION_OWNER)
        self.db.update('', {
            engagement_path(engagement_id): engagement,
            user_engagement_path(user_id, engagement_id): summary.to_dict(),
        })
        logging.info(f"Engagement {engagement_id} created for client {client.name} by {user_id}")
        return engagement_id

    def get_client(self, engagement_id):
        data = self.db.get(engagement_path(engagement_id, 'client'))
        return Client.from_dict(data) if data else None

    def get_owner(self, engagement_id):
        return self.db.get(engagement_path(engagement_id, 'userId'))

    def get_team_members(self, engagement_id):
        """Roster as a list of TeamMember, whatever shape it is stored in"""
        raw = self.db.get(team_member_path(engagement_id))
        return [TeamMember.from_dict(data, member_id) for member_id, data in keyed_roster(raw).items()]

    def ensure_keyed_roster(self, engagement_id):
        """Rewrite an array-stored or legacy roster keyed by member id.

        Member writes address teamMembers/{id}, so they must not run against
        entries stored under array indexes.
        """
        path = team_member_path(engagement_id)
        raw = self.db.get(path)
        if not raw:
            return
        roster = keyed_roster(raw)
        if roster != raw:
            logging.warning(f"Rewriting legacy team roster of engagement {engagement_id} keyed by member id")
            self.db.set(path, roster)

    def get_user_engagements(self, user_id):
        """The user's engagement index, newest first"""
        index = self.db.get(user_engagement_path(user_id)) or {}
        summaries = []
        for engagement_id, entry in index.items():
            entry = dict(entry or {})
            entry['id'] = entry.get('id') or engagement_id
            summaries.append(entry)
        summaries.sort(key=lambda entry: entry.get('createdAt') or '', reverse=True)
        return summaries


class UserModel(FirebaseModel):
    """User profiles and the email -> uid mapping"""

    def __init__(self, database):
        super().__init__(database, USERS)

    def save_user_profile(self, user):
        """Record the signed-in user's profile and email mapping"""
        profile = UserProfile(
            uid=user['uid'],
            email=(user.get('email') or '').strip().lower(),
            displayName=user.get('name') or user.get('displayName') or '',
            photoURL=user.get('picture') or user.get('photoURL') or '',
            lastLogin=now_iso(),
        )
        changes = {user_path(profile.uid, 'profile'): profile.to_dict()}
        if profile.email:
            changes[email_mapping_path(profile.email)] = profile.uid
        self.db.update('', changes)
        return profile

    def get_profile(self, uid):
        return self.db.get(user_path(uid, 'profile'))

    def get_user_by_email(self, email):
        """Resolve an email to a uid via the mapping, falling back to a profile scan"""
        if not email:
            return None
        uid = self.db.get(email_mapping_path(email))
        if uid:
            return uid
        wanted = email.strip().lower()
        for candidate_uid, user in self.get_all().items():
            profile = (user or {}).get('profile') or {}
            if (profile.get('email') or '').strip().lower() == wanted:
                return candidate_uid
        return None
