from unittest.mock import patch

import pytest

from data_store import PermissionDeniedError


@pytest.fixture
def owner(sign_in):
    return sign_in('token-owner')


@pytest.fixture
def engagement_id(owner, onboarding_payload):
    response = owner.post('/engagements', json=onboarding_payload)
    assert response.status_code == 201
    return response.get_json()['id']


def invite(owner, engagement_id, email, permission, name=''):
    return owner.post(f'/engagements/{engagement_id}/invitations',
                      json={'email': email, 'permission': permission, 'name': name, 'role': 'Audit Senior'})


def test_landing_exposes_public_sign_in_config(client):
    data = client.get('/').get_json()
    assert data['signedIn'] is False
    assert set(data['firebase']) == {'apiKey', 'authDomain', 'projectId', 'appId', 'databaseURL'}


def test_sign_in_creates_profile_and_session(client, database):
    response = client.post('/auth/session', json={'idToken': 'token-owner'})
    assert response.status_code == 200
    data = response.get_json()
    assert data['user']['email'] == 'owner@firm.test'
    assert data['engagements'] == []
    assert database.get('users/uid-owner/profile/displayName') == 'Olivia Owner'
    assert database.get('email_mapping/owner@firm,test') == 'uid-owner'
    assert client.get('/').get_json()['signedIn'] is True


def test_sign_in_with_bad_token(client):
    assert client.post('/auth/session', json={'idToken': 'forged'}).status_code == 401
    assert client.post('/auth/session', json={}).status_code == 400


def test_closed_popup_is_silent(client):
    response = client.post('/auth/session', json={'error': {'code': 'auth/popup-closed-by-user'}})
    assert response.status_code == 204


def test_unauthorized_domain_names_the_host(client):
    response = client.post('/auth/session', json={'error': {'code': 'auth/unauthorized-domain'}})
    assert response.status_code == 400
    message = response.get_json()['error']
    assert '"localhost"' in message
    assert 'Authorized Domains' in message


def test_other_sign_in_errors(client):
    response = client.post('/auth/session', json={'error': {'code': 'auth/network-request-failed',
                                                            'message': 'Network down'}})
    assert response.get_json()['error'] == 'Login failed: Network down'


def test_logout(owner):
    assert owner.get('/dashboard').status_code == 200
    owner.post('/auth/logout')
    assert owner.get('/dashboard').status_code == 401


def test_onboarding_validation(owner):
    response = owner.post('/engagements', json={'name': 'ABC Pvt Ltd', 'address': ' '})
    assert response.status_code == 400
    assert set(response.get_json()['errors']) == {'clientAddress', 'fyPeriodEnd', 'frf'}


def test_onboarding_requires_sign_in(client, onboarding_payload):
    assert client.post('/engagements', json=onboarding_payload).status_code == 401


def test_onboarding_lands_on_dashboard(owner, engagement_id, database):
    engagements = owner.get('/dashboard').get_json()['engagements']
    assert [e['id'] for e in engagements] == [engagement_id]
    assert engagements[0]['role'] == 'owner'
    assert engagements[0]['status'] == 'In Progress'
    assert database.get(f'engagements/{engagement_id}/userId') == 'uid-owner'


def test_dashboard_lists_newest_first(owner, onboarding_payload):
    first = owner.post('/engagements', json=onboarding_payload).get_json()['id']
    onboarding_payload['name'] = 'XYZ Ltd'
    second = owner.post('/engagements', json=onboarding_payload).get_json()['id']
    ids = [e['id'] for e in owner.get('/dashboard').get_json()['engagements']]
    assert set(ids) == {first, second}


def test_workspace_shows_access_and_sections(owner, engagement_id):
    data = owner.get(f'/engagements/{engagement_id}').get_json()
    assert data['client']['name'] == 'ABC Pvt Ltd'
    assert data['access'] == {'permission': 'owner', 'isReadOnly': False, 'isMember': True}
    assert [s['id'] for s in data['sections']] == [
        'basics', 'planning', 'materiality', 'auditEvidence', 'communication', 'reporting']


def test_missing_engagement(owner):
    assert owner.get('/engagements/nope').status_code == 404


def test_non_member_is_refused(sign_in, engagement_id):
    stranger = sign_in('token-stranger')
    assert stranger.get(f'/engagements/{engagement_id}').status_code == 403
    assert stranger.get(f'/engagements/{engagement_id}/sections/planning').status_code == 403


def test_invitee_joins_on_first_sign_in(owner, sign_in, engagement_id, database):
    response = invite(owner, engagement_id, 'Editor@Firm.test', 'editor', 'Eddie')
    assert response.status_code == 201
    assert response.get_json()['status'] == 'invited'

    editor_client = sign_in('token-editor')
    dashboard = editor_client.get('/dashboard').get_json()
    assert [e['id'] for e in dashboard['engagements']] == [engagement_id]
    assert dashboard['engagements'][0]['role'] == 'editor'

    team = owner.get(f'/engagements/{engagement_id}/team').get_json()['teamMembers']
    assert team[0]['status'] == 'active'
    assert team[0]['userId'] == 'uid-editor'

    response = editor_client.patch(f'/engagements/{engagement_id}/sections/planning', json={'auditPlan': 'Plan A'})
    assert response.status_code == 200
    assert database.get(f'engagements/{engagement_id}/planning/auditPlan') == 'Plan A'


def test_sign_in_reports_joined_engagements(owner, app, engagement_id):
    invite(owner, engagement_id, 'editor@firm.test', 'editor')
    response = app.test_client().post('/auth/session', json={'idToken': 'token-editor'})
    assert response.get_json()['joinedEngagements'] == [engagement_id]


def test_viewer_reads_but_cannot_write(owner, sign_in, engagement_id):
    invite(owner, engagement_id, 'viewer@firm.test', 'viewer')
    viewer = sign_in('token-viewer')

    section = viewer.get(f'/engagements/{engagement_id}/sections/planning')
    assert section.status_code == 200
    assert section.get_json()['readOnly'] is True

    assert viewer.patch(f'/engagements/{engagement_id}/sections/planning', json={'auditPlan': 'x'}).status_code == 403
    assert invite(viewer, engagement_id, 'someone@firm.test', 'editor').status_code == 403


def test_invitation_errors(owner, engagement_id):
    assert invite(owner, engagement_id, 'a@firm.test', 'editor').status_code == 201
    assert invite(owner, engagement_id, 'a@firm.test', 'viewer').status_code == 409
    assert invite(owner, engagement_id, 'b@firm.test', 'owner').status_code == 400
    assert invite(owner, engagement_id, 'bad', 'editor').status_code == 400


def test_strict_invites_require_an_account(database, identity, onboarding_payload):
    from app import create_app
    app = create_app({'TESTING': True, 'ALLOW_UNREGISTERED_INVITES': False}, database=database, identity=identity)
    owner = app.test_client()
    owner.post('/auth/session', json={'idToken': 'token-owner'})
    engagement_id = owner.post('/engagements', json=onboarding_payload).get_json()['id']
    assert invite(owner, engagement_id, 'ghost@firm.test', 'editor').status_code == 404


def test_change_permission_and_remove_member(owner, sign_in, engagement_id):
    member_id = invite(owner, engagement_id, 'editor@firm.test', 'editor').get_json()['id']
    editor_client = sign_in('token-editor')

    response = owner.patch(f'/engagements/{engagement_id}/team/{member_id}', json={'permission': 'viewer'})
    assert response.get_json()['permission'] == 'viewer'
    assert editor_client.get(f'/engagements/{engagement_id}').get_json()['access']['isReadOnly'] is True

    assert owner.delete(f'/engagements/{engagement_id}/team/{member_id}').status_code == 204
    assert editor_client.get(f'/engagements/{engagement_id}').status_code == 403
    assert editor_client.get('/dashboard').get_json()['engagements'] == []
    assert owner.delete(f'/engagements/{engagement_id}/team/{member_id}').status_code == 404


def test_add_team_member_without_account(owner, engagement_id):
    response = owner.post(f'/engagements/{engagement_id}/team', json={'name': 'Sita', 'role': 'Assistant'})
    assert response.status_code == 201
    assert owner.post(f'/engagements/{engagement_id}/team', json={'name': 'Sita'}).status_code == 400


def test_section_defaults_and_materiality_figures(owner, engagement_id):
    url = f'/engagements/{engagement_id}/sections/materiality'
    assert owner.get(url).get_json()['data']['benchmark'] == 'Profit Before Tax'
    data = owner.patch(url, json={'benchmarkAmount': 1000000}).get_json()
    assert data['figures'] == {'overallMateriality': 50000.0, 'performanceMateriality': 37500.0}


def test_unknown_section(owner, engagement_id):
    assert owner.get(f'/engagements/{engagement_id}/sections/appendix').status_code == 404


def test_replace_checklist_field(owner, engagement_id, database):
    url = f'/engagements/{engagement_id}/sections/communication'
    items = owner.get(url).get_json()['data']['sa260']
    items[0]['checked'] = True
    assert owner.put(f'{url}/sa260', json={'value': items}).status_code == 200
    assert database.get(f'engagements/{engagement_id}/communication/sa260/0/checked') is True
    assert owner.put(f'{url}/sa260', json={}).status_code == 400


def test_basics_roster_is_not_exposed_or_writable(owner, engagement_id):
    invite(owner, engagement_id, 'editor@firm.test', 'editor')
    url = f'/engagements/{engagement_id}/sections/basics'
    assert 'teamMembers' not in owner.get(url).get_json()['data']
    assert owner.put(f'{url}/teamMembers', json={'value': {}}).status_code == 400
    assert len(owner.get(f'/engagements/{engagement_id}/team').get_json()['teamMembers']) == 1


def test_report_download(owner, engagement_id, report_payload):
    response = owner.post(f'/engagements/{engagement_id}/report', json=report_payload)
    assert response.status_code == 200
    assert response.content_type == 'application/msword'
    assert 'ABC_Pvt_Ltd_AuditReport_2024-07-15.doc' in response.headers['Content-Disposition']
    body = response.get_data(as_text=True)
    assert 'ABC Pvt Ltd' in body
    assert 'July 15, 2024' in body
    assert '[CLIENT_NAME]' not in body


def test_report_uses_saved_reporting_section(owner, engagement_id, report_payload):
    url = f'/engagements/{engagement_id}/report'
    response = owner.post(url)
    assert response.status_code == 400
    assert 'udin' in response.get_json()['errors']

    owner.patch(f'/engagements/{engagement_id}/sections/reporting', json=report_payload)
    response = owner.post(url)
    assert response.status_code == 200
    assert 'Sharma &amp; Co.' in response.get_data(as_text=True)


def test_viewer_may_download_report(owner, sign_in, engagement_id, report_payload):
    invite(owner, engagement_id, 'viewer@firm.test', 'viewer')
    viewer = sign_in('token-viewer')
    assert viewer.post(f'/engagements/{engagement_id}/report', json=report_payload).status_code == 200


def test_report_pdf(owner, engagement_id, report_payload):
    response = owner.post(f'/engagements/{engagement_id}/report.pdf', json=report_payload)
    assert response.status_code == 200
    assert response.content_type == 'application/pdf'
    assert response.data.startswith(b'%PDF')


def test_engagement_letter(owner, engagement_id):
    owner.patch(f'/engagements/{engagement_id}/sections/basics', json={'partnerName': 'Ram Sharma'})
    data = owner.get(f'/engagements/{engagement_id}/engagement-letter').get_json()
    assert 'ABC Pvt Ltd' in data['content']
    assert data['content'].rstrip().endswith('Ram Sharma')


def test_section_stream_sends_current_value(owner, engagement_id):
    owner.patch(f'/engagements/{engagement_id}/sections/planning', json={'auditPlan': 'Plan A'})
    response = owner.get(f'/engagements/{engagement_id}/sections/planning/stream', buffered=False)
    assert response.status_code == 200
    assert response.mimetype == 'text/event-stream'
    chunks = response.iter_encoded()
    first = next(chunks).decode()
    assert first.startswith('event: section\n')
    assert '"auditPlan": "Plan A"' in first
    assert next(chunks).decode() == ': keepalive\n\n'
    response.close()


def test_database_permission_error_is_reported(owner, database):
    with patch.object(database, 'get', side_effect=PermissionDeniedError('denied')):
        response = owner.get('/dashboard')
    assert response.status_code == 503
    assert 'Firebase Database Rules' in response.get_json()['error']


def test_repair_index_command(app, owner, engagement_id, database):
    database.delete(f'users/uid-owner/engagements/{engagement_id}')
    result = app.test_cli_runner().invoke(args=['repair-index'])
    assert result.exit_code == 0
    assert f'{engagement_id}: 1 entries repaired' in result.output
    assert database.get(f'users/uid-owner/engagements/{engagement_id}/role') == 'owner'


@pytest.fixture
def deferred_owner(deferred_database, identity):
    from app import create_app
    app = create_app({'TESTING': True}, database=deferred_database, identity=identity)
    test_client = app.test_client()
    assert test_client.post('/auth/session', json={'idToken': 'token-owner'}).status_code == 200
    return test_client


def test_section_reads_do_not_wait_for_listeners(deferred_owner, onboarding_payload, report_payload):
    engagement_id = deferred_owner.post('/engagements', json=onboarding_payload).get_json()['id']
    base = f'/engagements/{engagement_id}'

    deferred_owner.patch(f'{base}/sections/planning', json={'auditPlan': 'Plan A'})
    data = deferred_owner.patch(f'{base}/sections/planning', json={'inquiries': 'Asked'}).get_json()['data']
    assert data['auditPlan'] == 'Plan A'
    assert deferred_owner.get(f'{base}/sections/planning').get_json()['data']['inquiries'] == 'Asked'

    deferred_owner.patch(f'{base}/sections/reporting', json=report_payload)
    assert deferred_owner.post(f'{base}/report').status_code == 200

    deferred_owner.patch(f'{base}/sections/basics', json={'partnerName': 'Ram Sharma'})
    letter = deferred_owner.get(f'{base}/engagement-letter').get_json()['content']
    assert letter.rstrip().endswith('Ram Sharma')


def test_report_download_with_non_latin_client_name(owner, onboarding_payload, report_payload):
    onboarding_payload['name'] = 'नेपाल Pvt Ltd'
    engagement_id = owner.post('/engagements', json=onboarding_payload).get_json()['id']
    response = owner.post(f'/engagements/{engagement_id}/report', json=report_payload)
    assert response.status_code == 200
    disposition = response.headers['Content-Disposition']
    disposition.encode('latin-1')
    assert "filename*=UTF-8''" in disposition
    assert 'नेपाल Pvt Ltd' in response.get_data(as_text=True)


def test_access_gate_does_not_load_whole_engagement(owner, engagement_id, database):
    with patch.object(database, 'get', wraps=database.get) as get:
        assert owner.get(f'/engagements/{engagement_id}/sections/planning').status_code == 200
    read_paths = [args[0] if args else '' for args, _ in get.call_args_list]
    assert f'engagements/{engagement_id}' not in read_paths
    assert f'engagements/{engagement_id}/userId' in read_paths
