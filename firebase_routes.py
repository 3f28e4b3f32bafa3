from flask import Blueprint, request, session, jsonify, send_file, current_app, g, Response, stream_with_context
import io
import json
import queue
import logging

from firebase_auth import (
    login_required, engagement_access_required, get_current_user, get_services,
    describe_sign_in_error, IdentityError,
)
from firebase_config import public_client_config
from membership import (
    MembershipError, EngagementNotFoundError, MemberNotFoundError,
    DuplicateMemberError, InviteeNotRegisteredError,
)
from models import (
    Client, AuditReportDetails, validate_client, client_from_onboarding,
    validate_report_details, ENGAGEMENT_STATUS_IN_PROGRESS,
)
from report_service import generate_audit_report, report_filename, render_report_pdf, draft_engagement_letter
from constants import REPORT_MIME_TYPE
from sections import SectionForm, SECTIONS, SECTION_ORDER, UnknownSectionError, materiality_figures

bp = Blueprint('audoc', __name__)

MEMBERSHIP_ERROR_STATUS = {
    EngagementNotFoundError: 404,
    MemberNotFoundError: 404,
    InviteeNotRegisteredError: 404,
    DuplicateMemberError: 409,
}


@bp.errorhandler(MembershipError)
def membership_error(error):
    status = MEMBERSHIP_ERROR_STATUS.get(type(error), 400)
    return jsonify({'error': str(error)}), status


@bp.errorhandler(UnknownSectionError)
def unknown_section(error):
    return jsonify({'error': f"Unknown section: {error.args[0]}"}), 404


def _json_body():
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _section_view(form):
    data = form.snapshot()
    if form.schema.name == 'basics':
        data.pop('teamMembers', None)
    view = {'section': form.schema.name, 'title': form.schema.title, 'data': data, 'readOnly': form.read_only}
    if form.schema.name == 'materiality':
        view['figures'] = materiality_figures(data)
    return view


def _format_sse(event, data):
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@bp.route('/')
def landing():
    """Signed-in state and the browser's Firebase sign-in settings"""
    user = get_current_user()
    return jsonify({
        'signedIn': user is not None,
        'user': user,
        'firebase': public_client_config(current_app.config['FIREBASE_CONFIG']),
    })


@bp.route('/auth/session', methods=['POST'])
def create_session():
    """Start a session from a Firebase ID token, or report a client-side sign-in failure"""
    payload = _json_body()

    if payload.get('error'):
        error = payload['error'] if isinstance(payload['error'], dict) else {'code': payload['error']}
        hostname = request.host.split(':')[0]
        message = describe_sign_in_error(error.get('code'), error.get('message'), hostname)
        if message is None:
            return '', 204
        logging.warning(f"Client sign-in failed: {error.get('code')}")
        return jsonify({'error': message}), 400

    id_token = payload.get('idToken')
    if not id_token:
        return jsonify({'error': 'An ID token is required to sign in.'}), 400

    services = get_services()
    try:
        user = services.identity.verify(id_token)
    except IdentityError as e:
        logging.warning(f"ID token verification failed: {str(e)}")
        return jsonify({'error': 'Login failed: your sign-in could not be verified. Please try again.'}), 401

    profile = services.users.save_user_profile(user)
    joined = services.membership.reconcile_on_login(user)

    session.clear()
    session['user_id'] = profile.uid
    logging.info(f"User {profile.email or profile.uid} signed in")

    return jsonify({
        'user': profile.to_dict(),
        'joinedEngagements': joined,
        'engagements': services.engagements.get_user_engagements(profile.uid),
    })


@bp.route('/auth/logout', methods=['POST'])
def logout():
    """Logout user"""
    session.clear()
    return jsonify({'signedIn': False})


@bp.route('/dashboard')
@login_required
def dashboard():
    """The signed-in user's engagements, newest first"""
    services = get_services()
    return jsonify({
        'user': get_current_user(),
        'engagements': services.engagements.get_user_engagements(session['user_id']),
    })


@bp.route('/engagements', methods=['POST'])
@login_required
def create_engagement():
    """Onboard a client and open a new engagement"""
    payload = _json_body()
    errors = validate_client(payload)
    if errors:
        return jsonify({'errors': errors}), 400

    client = client_from_onboarding(payload)
    engagement_id = get_services().engagements.create_engagement(client, session['user_id'])
    return jsonify({
        'id': engagement_id,
        'client': client.to_dict(),
        'status': ENGAGEMENT_STATUS_IN_PROGRESS,
    }), 201


@bp.route('/engagements/<engagement_id>')
@engagement_access_required()
def engagement_workspace(engagement_id):
    """Client, status, caller's access and team of one engagement"""
    services = get_services()
    engagement = services.engagements.get(engagement_id)
    return jsonify({
        'id': engagement_id,
        'client': engagement.get('client') or {},
        'status': engagement.get('status') or ENGAGEMENT_STATUS_IN_PROGRESS,
        'createdAt': engagement.get('createdAt'),
        'access': g.access.to_dict(),
        'teamMembers': [member.to_dict() for member in services.membership.list_team_members(engagement_id)],
        'sections': [{'id': name, 'title': SECTIONS[name].title} for name in SECTION_ORDER],
    })


@bp.route('/engagements/<engagement_id>/sections/<section>')
@engagement_access_required()
def get_section(engagement_id, section):
    form = SectionForm(get_services().db, engagement_id, section, read_only=g.access.is_read_only).fetch()
    return jsonify(_section_view(form))


@bp.route('/engagements/<engagement_id>/sections/<section>', methods=['PATCH'])
@engagement_access_required(write=True)
def update_section(engagement_id, section):
    """Merge the posted fields into a section"""
    changes = _json_body()
    if not changes:
        return jsonify({'error': 'No changes supplied.'}), 400
    form = SectionForm(get_services().db, engagement_id, section).fetch()
    form.update(changes)
    return jsonify(_section_view(form))


@bp.route('/engagements/<engagement_id>/sections/<section>/<field>', methods=['PUT'])
@engagement_access_required(write=True)
def replace_section_field(engagement_id, section, field):
    """Replace one field of a section, e.g. a whole checklist"""
    payload = _json_body()
    if 'value' not in payload:
        return jsonify({'error': 'A value is required.'}), 400
    form = SectionForm(get_services().db, engagement_id, section).fetch()
    if not form.replace(field, payload['value']):
        return jsonify({'error': f"{field} cannot be written through this section."}), 400
    return jsonify(_section_view(form))


@bp.route('/engagements/<engagement_id>/sections/<section>/stream')
@engagement_access_required()
def stream_section(engagement_id, section):
    """Server-Sent Events carrying the section's value on every change"""
    form = SectionForm(get_services().db, engagement_id, section, read_only=True)
    keepalive_interval = current_app.config['SSE_KEEPALIVE_SECONDS']
    updates = queue.Queue()

    def _generate():
        form.add_listener(updates.put)
        form.open()
        try:
            while True:
                try:
                    updates.get(timeout=keepalive_interval)
                except queue.Empty:
                    yield ": keepalive\n\n"
                    continue
                yield _format_sse('section', _section_view(form))
        finally:
            form.close()

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    return Response(stream_with_context(_generate()), mimetype="text/event-stream", headers=headers)


@bp.route('/engagements/<engagement_id>/team')
@engagement_access_required()
def list_team(engagement_id):
    members = get_services().membership.list_team_members(engagement_id)
    return jsonify({'teamMembers': [member.to_dict() for member in members]})


@bp.route('/engagements/<engagement_id>/team', methods=['POST'])
@engagement_access_required(write=True)
def add_team_member(engagement_id):
    """Add a named team member who has no account"""
    payload = _json_body()
    member = get_services().membership.add_team_member(engagement_id, payload.get('name'), payload.get('role'))
    return jsonify(member.to_dict()), 201


@bp.route('/engagements/<engagement_id>/invitations', methods=['POST'])
@engagement_access_required(write=True)
def invite_team_member(engagement_id):
    """Invite someone by email, before or after they have an account"""
    payload = _json_body()
    inviter = get_current_user() or {}
    member = get_services().membership.invite(
        engagement_id,
        payload.get('email'),
        payload.get('permission'),
        inviter.get('displayName') or inviter.get('email') or '',
        name=payload.get('name', ''),
        title=payload.get('role', ''),
        inviter_uid=session['user_id'],
    )
    return jsonify(member.to_dict()), 201


@bp.route('/engagements/<engagement_id>/team/<member_id>', methods=['PATCH'])
@engagement_access_required(write=True)
def update_team_member(engagement_id, member_id):
    payload = _json_body()
    member = get_services().membership.update_permission(engagement_id, member_id, payload.get('permission'))
    return jsonify(member.to_dict())


@bp.route('/engagements/<engagement_id>/team/<member_id>', methods=['DELETE'])
@engagement_access_required(write=True)
def remove_team_member(engagement_id, member_id):
    get_services().membership.remove_team_member(engagement_id, member_id)
    return '', 204


def _report_inputs(engagement_id):
    """Client plus report details (posted, else the saved reporting section), or a 400 response"""
    services = get_services()
    client = services.engagements.get_client(engagement_id) or Client.from_dict({})
    payload = _json_body()
    if not payload:
        payload = SectionForm(services.db, engagement_id, 'reporting', read_only=True).fetch().snapshot()

    errors = validate_report_details(payload)
    if errors:
        return None, None, (jsonify({'errors': errors}), 400)

    details = AuditReportDetails.from_dict(payload)
    if client.isListed:
        details.includeOtherInformation = True
    return client, details, None


@bp.route('/engagements/<engagement_id>/report', methods=['POST'])
@engagement_access_required()
def download_report(engagement_id):
    """Generate the auditor's report as a Word document download"""
    client, details, error = _report_inputs(engagement_id)
    if error:
        return error

    report = generate_audit_report(client, details)
    logging.info(f"Report generated for engagement {engagement_id}")
    return send_file(io.BytesIO(report.encode('utf-8')), mimetype=REPORT_MIME_TYPE,
                     as_attachment=True, download_name=report_filename(client))


@bp.route('/engagements/<engagement_id>/report.pdf', methods=['POST'])
@engagement_access_required()
def download_report_pdf(engagement_id):
    """Generate the auditor's report as a PDF download"""
    client, details, error = _report_inputs(engagement_id)
    if error:
        return error

    return send_file(io.BytesIO(render_report_pdf(client, details)), mimetype='application/pdf',
                     as_attachment=True, download_name=report_filename(client, 'pdf'))


@bp.route('/engagements/<engagement_id>/engagement-letter')
@engagement_access_required()
def engagement_letter(engagement_id):
    """Draft NSA 210 engagement letter for the client"""
    services = get_services()
    client = services.engagements.get_client(engagement_id) or Client.from_dict({})
    basics = SectionForm(services.db, engagement_id, 'basics', read_only=True).fetch().snapshot()
    partner_name = basics.get('partnerName', '')
    return jsonify({
        'title': 'Engagement Letter Draft (NSA 210)',
        'content': draft_engagement_letter(client, partner_name=partner_name),
    })
