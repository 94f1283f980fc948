"""
Tests for the Users API endpoints.

Registry (create, get, list, update) and the user-initiated ledger routes:
redemption requests, own history and transfers.
"""
import json

from loyalty_ledger.models import User

from .conftest import headers_for, make_user


def post_json(client, url, user, payload):
    return client.post(url, data=json.dumps(payload), headers=headers_for(user))


def patch_json(client, url, user, payload):
    return client.patch(url, data=json.dumps(payload), headers=headers_for(user))


class TestUserRegistry:

    def test_cashier_registers_user(self, client, cashier):
        response = post_json(client, '/users', cashier, {
            'utorid': 'newuser1', 'email': 'newuser1@example.com', 'name': 'New User',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['utorid'] == 'newuser1'
        assert data['points'] == 0
        assert data['verified'] is False

    def test_invalid_utorid_rejected(self, client, cashier):
        response = post_json(client, '/users', cashier, {
            'utorid': 'ab', 'email': 'ab@example.com', 'name': 'Too Short',
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_UTORID'

    def test_duplicate_utorid_conflicts(self, client, cashier, sample_user):
        response = post_json(client, '/users', cashier, {
            'utorid': 'member01', 'email': 'other@example.com', 'name': 'Dup',
        })
        assert response.status_code == 409

    def test_regular_user_cannot_register(self, client, sample_user):
        response = post_json(client, '/users', sample_user, {
            'utorid': 'newuser1', 'email': 'newuser1@example.com', 'name': 'New User',
        })
        assert response.status_code == 403

    def test_get_me(self, client, sample_user):
        response = client.get('/users/me', headers=headers_for(sample_user))
        assert response.status_code == 200
        assert response.get_json()['utorid'] == 'member01'

    def test_get_by_utorid_and_id(self, client, cashier, sample_user):
        by_utorid = client.get('/users/member01', headers=headers_for(cashier))
        by_id = client.get(f'/users/{sample_user.id}', headers=headers_for(cashier))

        assert by_utorid.get_json()['id'] == by_id.get_json()['id'] == sample_user.id

    def test_get_all_digit_utorid(self, client, cashier, sample_user):
        numeric = make_user('12345678')

        by_utorid = client.get('/users/12345678', headers=headers_for(cashier))
        by_id = client.get(f'/users/{sample_user.id}', headers=headers_for(cashier))

        assert by_utorid.status_code == 200
        assert by_utorid.get_json()['id'] == numeric.id
        assert by_id.get_json()['utorid'] == 'member01'

    def test_get_unknown_user(self, client, cashier):
        response = client.get('/users/nobody00', headers=headers_for(cashier))
        assert response.status_code == 404

    def test_list_users_filtered(self, client, manager, cashier, sample_user):
        response = client.get('/users?role=cashier', headers=headers_for(manager))
        data = response.get_json()
        assert data['count'] == 1
        assert data['results'][0]['utorid'] == 'cashier1'


class TestUserUpdate:

    def test_manager_verifies_and_flags(self, client, manager, cashier):
        unverified = make_user('newbie01', verified=False)

        response = patch_json(client, '/users/newbie01', manager, {'verified': True})
        assert response.status_code == 200
        assert response.get_json()['verified'] is True
        assert unverified.verified is True

        response = patch_json(client, '/users/cashier1', manager, {'suspicious': True})
        assert response.get_json()['suspicious'] is True
        assert cashier.suspicious is True

    def test_manager_promotes_to_cashier(self, client, manager, sample_user):
        response = patch_json(client, '/users/member01', manager, {'role': 'cashier'})
        assert response.status_code == 200
        assert sample_user.role == 'cashier'

    def test_manager_cannot_grant_manager(self, client, manager, sample_user):
        response = patch_json(client, '/users/member01', manager, {'role': 'manager'})
        assert response.status_code == 403
        assert sample_user.role == 'regular'

    def test_superuser_can_grant_manager(self, client, superuser, sample_user):
        response = patch_json(client, '/users/member01', superuser, {'role': 'manager'})
        assert response.status_code == 200
        assert sample_user.role == 'manager'

    def test_suspicious_user_cannot_become_cashier(self, client, manager):
        make_user('shady001', suspicious=True)
        response = patch_json(client, '/users/shady001', manager, {'role': 'cashier'})
        assert response.status_code == 400

    def test_points_cannot_be_patched(self, client, manager, sample_user):
        response = patch_json(client, '/users/member01', manager, {'points': 1000})
        assert response.status_code == 400
        assert sample_user.points == 0


class TestOwnTransactions:

    def test_request_redemption(self, client):
        member = make_user('saver001', points=100)

        response = post_json(client, '/users/me/transactions', member, {'type': 'redemption', 'amount': 30})

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'pending'
        assert data['amount'] == 30
        assert member.points == 100

    def test_redemption_over_balance(self, client):
        member = make_user('saver001', points=10)
        response = post_json(client, '/users/me/transactions', member, {'type': 'redemption', 'amount': 30})
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'NEGATIVE_BALANCE'

    def test_transfer_and_own_history(self, client, other_user):
        sender = make_user('sender01', points=100)

        response = post_json(client, '/users/member02/transactions', sender, {'type': 'transfer', 'amount': 25})
        assert response.status_code == 201
        assert sender.points == 75
        assert other_user.points == 25

        history = client.get('/users/me/transactions', headers=headers_for(sender)).get_json()
        assert history['count'] == 1
        row = history['results'][0]
        assert row['type'] == 'transfer'
        assert row['amount'] == -25
        assert row['relatedId'] == other_user.id
        assert row['relatedUserUtorid'] == 'member02'
        assert 'suspicious' not in row

        received = client.get('/users/me/transactions', headers=headers_for(other_user)).get_json()
        assert received['results'][0]['relatedUserUtorid'] == 'sender01'

    def test_own_history_only_shows_own_rows(self, client, cashier, sample_user, other_user):
        post_json(client, '/transactions', cashier, {'type': 'purchase', 'utorid': 'member01', 'spent': 5})
        post_json(client, '/transactions', cashier, {'type': 'purchase', 'utorid': 'member02', 'spent': 7})

        history = client.get('/users/me/transactions', headers=headers_for(sample_user)).get_json()
        assert history['count'] == 1
        assert history['results'][0]['amount'] == 5

    def test_transfer_requires_amount(self, client, other_user):
        sender = make_user('sender01', points=100)
        response = post_json(client, '/users/member02/transactions', sender, {'type': 'transfer'})
        assert response.status_code == 400
        assert User.query.filter_by(utorid='sender01').first().points == 100
