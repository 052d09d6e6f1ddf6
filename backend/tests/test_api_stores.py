"""
HTTP API tests for stores, workflow, administration and the dashboard.

Focus on the wire contract: status codes, error bodies and the full
UPLOADED -> COMPLETED flow driven by three different users.
"""

from elora.extensions import db
from elora.models import Role, StoreStatus, User
from elora.permissions import PermissionVector, Resource

from conftest import auth_headers, get_auth_token, make_store, make_user


class TestStoreEndpoints:

    def test_create_and_get(self, client, admin_headers):
        response = client.post('/api/stores', headers=admin_headers, json={
            'dealer_code': 'd900',
            'store_name': 'Mehta Appliances',
            'city': 'Surat',
            'district': 'Adajan',
        })
        assert response.status_code == 201
        body = response.json
        assert body['store_id'] == 'SURADAD900'
        assert body['current_status'] == 'UPLOADED'
        assert body['allowed_operations'] == ['assign_recce']

        response = client.get(f"/api/stores/{body['id']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json['location']['city'] == 'Surat'

    def test_duplicate_is_409(self, client, admin_headers, store):
        response = client.post('/api/stores', headers=admin_headers, json={'dealer_code': 'D001'})
        assert response.status_code == 409
        assert response.json['error'] == 'DuplicateKey'
        assert response.json['field'] == 'dealer_code'

    def test_forbidden_field_is_400(self, client, admin_headers, store):
        response = client.put(f'/api/stores/{store.id}', headers=admin_headers, json={
            'current_status': 'COMPLETED',
        })
        assert response.status_code == 400
        assert response.json['error'] == 'ValidationFailed'

    def test_non_object_body_is_400(self, client, admin_headers, store):
        response = client.put(f'/api/stores/{store.id}', headers=admin_headers, json=[1, 2])
        assert response.status_code == 400

    def test_field_user_cannot_create(self, client, recce_headers):
        response = client.post('/api/stores', headers=recce_headers, json={'dealer_code': 'D901'})
        assert response.status_code == 403
        assert response.json['resource'] == 'store'
        assert response.json['action'] == 'create'

    def test_out_of_scope_is_404(self, client, recce_headers, store):
        response = client.get(f'/api/stores/{store.id}', headers=recce_headers)
        assert response.status_code == 404

    def test_list_and_filters(self, client, admin_headers, store):
        make_store('D002', city='Pune')
        response = client.get('/api/stores?city=Pune', headers=admin_headers)
        assert response.status_code == 200
        assert response.json['total'] == 1
        assert response.json['stores'][0]['dealer_code'] == 'D002'

        response = client.get('/api/stores?limit=abc', headers=admin_headers)
        assert response.status_code == 400

    def test_bulk_upload(self, client, admin_headers, store):
        response = client.post('/api/stores/bulk', headers=admin_headers, json={
            'rows': [{'dealer_code': 'N1'}, {'dealer_code': 'D001'}],
        })
        assert response.status_code == 200
        assert response.json['created_count'] == 1
        assert response.json['errors'][0]['row'] == 2

    def test_delete(self, client, admin_headers, store):
        response = client.delete(f'/api/stores/{store.id}', headers=admin_headers)
        assert response.status_code == 200
        response = client.get(f'/api/stores/{store.id}', headers=admin_headers)
        assert response.status_code == 404

    def test_transition_table(self, client, admin_headers):
        response = client.get('/api/stores/transitions', headers=admin_headers)
        assert response.status_code == 200
        assert response.json['approve_installation'] == {
            'from': ['INSTALLATION_SUBMITTED'],
            'to': 'COMPLETED',
        }


class TestWorkflowEndpoints:

    def test_end_to_end(self, client, admin_headers, recce_headers, installer_headers,
                        store, recce_user, installer):
        url = f'/api/stores/{store.id}'

        r = client.post(f'{url}/recce/assign', headers=admin_headers, json={'user_id': recce_user.id})
        assert r.status_code == 200
        assert r.json['current_status'] == 'RECCE_ASSIGNED'

        r = client.get('/api/stores', headers=recce_headers)
        assert r.json['total'] == 1

        r = client.post(f'{url}/recce', headers=recce_headers, json={
            'sizes': {'width': 10, 'height': 3},
            'photos': {'front': 'uploads/f.jpg', 'closeUp': 'uploads/c.jpg'},
            'notes': 'Pillar on left',
        })
        assert r.status_code == 200
        assert r.json['recce']['photos']['close_up'] == 'uploads/c.jpg'
        assert r.json['recce']['sizes'] == {'width': 10.0, 'height': 3.0}

        r = client.post(f'{url}/recce/review', headers=admin_headers, json={'status': 'APPROVED'})
        assert r.json['current_status'] == 'RECCE_APPROVED'

        r = client.post(f'{url}/installation/assign', headers=admin_headers, json={'user_id': installer.id})
        assert r.json['current_status'] == 'INSTALLATION_ASSIGNED'

        r = client.post(f'{url}/installation', headers=installer_headers, json={
            'photos': {'after1': 'uploads/a1.jpg'},
        })
        assert r.json['current_status'] == 'INSTALLATION_SUBMITTED'

        r = client.post(f'{url}/installation/review', headers=admin_headers, json={
            'status': 'APPROVED',
            'remarks': 'Great work',
        })
        assert r.status_code == 200
        assert r.json['current_status'] == 'COMPLETED'
        assert r.json['allowed_operations'] == []
        assert 'Great work' in r.json['installation']['notes']

    def test_illegal_transition_is_409(self, client, admin_headers, store):
        r = client.post(f'/api/stores/{store.id}/recce/review', headers=admin_headers, json={'status': 'APPROVED'})
        assert r.status_code == 409
        assert r.json['error'] == 'InvalidTransition'
        assert r.json['current_status'] == 'UPLOADED'
        assert r.json['requested'] == 'approve_recce'

    def test_invalid_assignee_is_422(self, client, admin_headers, store, installer):
        r = client.post(f'/api/stores/{store.id}/recce/assign', headers=admin_headers, json={'user_id': installer.id})
        assert r.status_code == 422
        assert r.json['error'] == 'InvalidAssignee'
        assert r.json['required_role'] == 'RECCE'

    def test_non_assignee_submit_is_403(self, client, admin_headers, recce_headers, store,
                                       other_recce_user):
        client.post(f'/api/stores/{store.id}/recce/assign', headers=admin_headers,
                    json={'user_id': other_recce_user.id})
        r = client.post(f'/api/stores/{store.id}/recce', headers=recce_headers, json={
            'sizes': {'width': 10, 'height': 3},
        })
        assert r.status_code == 403

    def test_field_user_cannot_assign(self, client, recce_headers, store, recce_user):
        r = client.post(f'/api/stores/{store.id}/recce/assign', headers=recce_headers,
                        json={'user_id': recce_user.id})
        assert r.status_code == 403

    def test_bulk_assign(self, client, admin_headers, store, recce_user):
        done = make_store('D050', current_status=StoreStatus.COMPLETED)
        r = client.post('/api/stores/assign', headers=admin_headers, json={
            'store_ids': [store.id, done.id],
            'user_id': recce_user.id,
            'stage': 'RECCE',
        })
        assert r.status_code == 200
        assert r.json['modified_count'] == 1
        assert r.json['failed_count'] == 1
        failed = [item for item in r.json['results'] if not item['ok']]
        assert failed[0]['error'] == 'InvalidTransition'

    def test_unassign(self, client, admin_headers, store, recce_user):
        client.post(f'/api/stores/{store.id}/recce/assign', headers=admin_headers,
                    json={'user_id': recce_user.id})
        r = client.post(f'/api/stores/{store.id}/unassign', headers=admin_headers, json={'stage': 'RECCE'})
        assert r.status_code == 200
        assert r.json['current_status'] == 'RECCE_ASSIGNED'
        assert r.json['workflow']['recce_assigned_to'] is None

    def test_deleted_assignee_is_serialized(self, client, admin_headers, store, recce_user):
        client.post(f'/api/stores/{store.id}/recce/assign', headers=admin_headers,
                    json={'user_id': recce_user.id})
        user_id = recce_user.id
        db.session.delete(db.session.get(User, user_id))
        db.session.commit()

        r = client.get(f'/api/stores/{store.id}', headers=admin_headers)
        assert r.status_code == 200
        assert r.json['workflow']['recce_assigned_to'] == {
            'id': user_id, 'name': None, 'email': None,
        }


class TestAdminEndpoints:

    def test_admin_creates_user(self, client, admin_headers, roles):
        r = client.post('/api/users', headers=admin_headers, json={
            'name': 'New Installer',
            'email': 'new.installer@elora.test',
            'password': 'Inst4ll!now',
            'role_ids': [roles['INSTALLATION'].id],
        })
        assert r.status_code == 201
        assert get_auth_token(client, 'new.installer@elora.test', 'Inst4ll!now')

    def test_users_by_role(self, client, admin_headers, recce_user, installer):
        r = client.get('/api/users/role/recce', headers=admin_headers)
        assert r.status_code == 200
        assert [u['id'] for u in r.json['users']] == [recce_user.id]

    def test_admin_cannot_edit_roles(self, client, admin_headers, roles):
        r = client.put(f"/api/roles/{roles['RECCE'].id}", headers=admin_headers, json={'name': 'X'})
        assert r.status_code == 403

    def test_super_admin_role_protected(self, client, super_admin, roles):
        headers = auth_headers(get_auth_token(client, super_admin.email))
        r = client.delete(f"/api/roles/{roles['SUPER_ADMIN'].id}", headers=headers)
        assert r.status_code == 400

        r = client.get('/api/roles', headers=headers)
        assert r.status_code == 200
        assert r.json['count'] == 4


class TestDashboardEndpoint:

    def test_dashboard(self, client, admin_headers, store, recce_user):
        client.post(f'/api/stores/{store.id}/recce/assign', headers=admin_headers,
                    json={'user_id': recce_user.id})
        make_store('D060', current_status=StoreStatus.COMPLETED)

        r = client.get('/api/dashboard', headers=admin_headers)
        assert r.status_code == 200
        kpis = r.json['kpis']
        assert kpis['total_stores'] == 2
        assert kpis['completed_total'] == 1
        assert r.json['status_counts']['RECCE_ASSIGNED'] == 1
        recce_row = r.json['personnel']['recce'][0]
        assert recce_row['id'] == recce_user.id
        assert (recce_row['assigned'], recce_row['completed'], recce_row['pending']) == (1, 0, 1)

    def test_field_user_dashboard_covers_own_stores_only(self, client, admin_headers, recce_headers,
                                                        store, recce_user, other_recce_user):
        client.post(f'/api/stores/{store.id}/recce/assign', headers=admin_headers,
                    json={'user_id': recce_user.id})
        other = make_store('OTHER1', store_name='Elsewhere')
        client.post(f'/api/stores/{other.id}/recce/assign', headers=admin_headers,
                    json={'user_id': other_recce_user.id})
        make_store('OTHER2')

        r = client.get('/api/dashboard', headers=recce_headers)
        assert r.status_code == 200
        assert r.json['kpis']['total_stores'] == 1
        assert r.json['status_counts']['RECCE_ASSIGNED'] == 1
        assert r.json['status_counts']['UPLOADED'] == 0
        assert [s['id'] for s in r.json['recent_stores']] == [store.id]
        assert r.json['personnel'] == {'recce': [], 'installation': []}

    def test_dashboard_requires_permission(self, client, db_session):
        role = Role(code='AUDITOR', name='Auditor')
        role.set_permissions({Resource.STORE: PermissionVector(view=True)})
        db.session.add(role)
        db.session.commit()
        user = make_user('Audrey', 'audit@elora.test', role)

        r = client.get('/api/dashboard', headers=auth_headers(get_auth_token(client, user.email)))
        assert r.status_code == 403


class TestSystemEndpoints:

    def test_health(self, client, roles):
        r = client.get('/health')
        assert r.status_code == 200
        assert r.json['status'] == 'healthy'

    def test_health_degraded_without_roles(self, client, db_session):
        r = client.get('/health')
        assert r.status_code == 200
        assert r.json['status'] == 'degraded'
