"""
Tests for the Transactions API endpoints.

- POST  /transactions
- GET   /transactions, /transactions/<id>
- PATCH /transactions/<id>/suspicious
- PATCH /transactions/<id>/processed
"""
import json
import pytest

from .conftest import headers_for, make_user


def post_json(client, url, user, payload):
    return client.post(url, data=json.dumps(payload), headers=headers_for(user))


def patch_json(client, url, user, payload):
    return client.patch(url, data=json.dumps(payload), headers=headers_for(user))


class TestTransactionsAuth:

    def test_missing_headers_returns_401(self, client):
        response = client.get('/transactions')
        assert response.status_code == 401
        assert response.get_json()['error']['code'] == 'AUTH_REQUIRED'

    def test_unknown_role_returns_401(self, client, sample_user):
        response = client.get('/transactions', headers={'X-Auth-Subject': str(sample_user.id), 'X-Auth-Role': 'owner'})
        assert response.status_code == 401

    def test_regular_user_cannot_list(self, client, sample_user):
        response = client.get('/transactions', headers=headers_for(sample_user))
        assert response.status_code == 403


class TestCreateTransaction:

    def test_create_purchase(self, client, cashier, sample_user, promotions):
        response = post_json(client, '/transactions', cashier, {
            'type': 'purchase',
            'utorid': 'member01',
            'spent': 25,
            'remark': 'coffee',
        })

        assert response.status_code == 201
        data = response.get_json()
        assert data['earned'] == 37
        assert data['promotionIds'] == [promotions['rate_promo'].id]
        assert data['createdBy'] == 'cashier1'
        assert sample_user.points == 37

    def test_purchase_with_unknown_promotion(self, client, cashier, sample_user):
        response = post_json(client, '/transactions', cashier, {
            'type': 'purchase', 'utorid': 'member01', 'spent': 10, 'promotionIds': [999],
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PROMOTION'

    def test_purchase_invalid_spend(self, client, cashier, sample_user):
        response = post_json(client, '/transactions', cashier, {
            'type': 'purchase', 'utorid': 'member01', 'spent': -3,
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_SPENT'

    @pytest.mark.parametrize('spent', ['1e12', 100000000, 0.001, '12.345'])
    def test_purchase_spend_out_of_range_or_scale(self, client, cashier, sample_user, spent):
        response = post_json(client, '/transactions', cashier, {
            'type': 'purchase', 'utorid': 'member01', 'spent': spent,
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_SPENT'
        assert sample_user.points == 0

    def test_purchase_largest_spend_accepted(self, client, cashier, sample_user):
        response = post_json(client, '/transactions', cashier, {
            'type': 'purchase', 'utorid': 'member01', 'spent': '99999999.99',
        })
        assert response.status_code == 201

    @pytest.mark.parametrize('amount', ['--5', '²', '5.0', 2 ** 31, -(2 ** 31)])
    def test_adjustment_malformed_amount(self, client, manager, sample_user, amount):
        response = post_json(client, '/transactions', manager, {
            'type': 'adjustment', 'utorid': 'member01', 'amount': amount,
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_AMOUNT'
        assert sample_user.points == 0

    def test_adjustment_numeric_string_amount(self, client, manager, sample_user):
        response = post_json(client, '/transactions', manager, {
            'type': 'adjustment', 'utorid': 'member01', 'amount': ' 7 ',
        })
        assert response.status_code == 201
        assert sample_user.points == 7

    def test_unknown_type_rejected(self, client, cashier):
        response = post_json(client, '/transactions', cashier, {'type': 'refund', 'utorid': 'member01'})
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_TYPE'

    def test_cashier_cannot_adjust(self, client, cashier, sample_user):
        response = post_json(client, '/transactions', cashier, {
            'type': 'adjustment', 'utorid': 'member01', 'amount': 10,
        })
        assert response.status_code == 403

    def test_adjustment_negative_balance(self, client, manager, sample_user):
        response = post_json(client, '/transactions', manager, {
            'type': 'adjustment', 'utorid': 'member01', 'amount': -1,
        })
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'NEGATIVE_BALANCE'


class TestListTransactions:

    @pytest.fixture
    def history(self, client, cashier, manager, sample_user, other_user):
        post_json(client, '/transactions', cashier, {'type': 'purchase', 'utorid': 'member01', 'spent': 5})
        post_json(client, '/transactions', cashier, {'type': 'purchase', 'utorid': 'member02', 'spent': 50})
        post_json(client, '/transactions', manager, {'type': 'adjustment', 'utorid': 'member01', 'amount': 3})

    def test_list_newest_first(self, client, manager, history):
        response = client.get('/transactions', headers=headers_for(manager))

        assert response.status_code == 200
        data = response.get_json()
        assert data['count'] == 3
        assert [t['type'] for t in data['results']] == ['adjustment', 'purchase', 'purchase']

    def test_filter_by_name_and_type(self, client, manager, history):
        response = client.get('/transactions?name=member01&type=purchase', headers=headers_for(manager))
        data = response.get_json()
        assert data['count'] == 1
        assert data['results'][0]['utorid'] == 'member01'

    def test_filter_by_amount(self, client, manager, history):
        response = client.get('/transactions?amount=10&operator=gte', headers=headers_for(manager))
        data = response.get_json()
        assert data['count'] == 1
        assert data['results'][0]['amount'] == 50

    def test_amount_without_operator_rejected(self, client, manager, history):
        response = client.get('/transactions?amount=10', headers=headers_for(manager))
        assert response.status_code == 400

    def test_pagination(self, client, manager, history):
        response = client.get('/transactions?page=2&limit=2', headers=headers_for(manager))
        data = response.get_json()
        assert data['count'] == 3
        assert len(data['results']) == 1

    def test_get_single_transaction(self, client, manager, history):
        listed = client.get('/transactions', headers=headers_for(manager)).get_json()
        transaction_id = listed['results'][0]['id']

        response = client.get(f'/transactions/{transaction_id}', headers=headers_for(manager))
        assert response.status_code == 200
        assert response.get_json()['id'] == transaction_id

    def test_get_unknown_transaction(self, client, manager):
        response = client.get('/transactions/12345', headers=headers_for(manager))
        assert response.status_code == 404
        assert response.get_json()['error']['code'] == 'TRANSACTION_NOT_FOUND'


class TestSuspiciousEndpoint:

    def test_flag_purchase(self, client, cashier, manager, sample_user):
        created = post_json(client, '/transactions', cashier, {
            'type': 'purchase', 'utorid': 'member01', 'spent': 20,
        }).get_json()

        response = patch_json(
            client, f"/transactions/{created['id']}/suspicious", manager, {'suspicious': True}
        )

        assert response.status_code == 200
        assert response.get_json()['suspicious'] is True
        assert sample_user.points == 0

    def test_non_boolean_rejected(self, client, manager):
        response = patch_json(client, '/transactions/1/suspicious', manager, {'suspicious': 'yes'})
        assert response.status_code == 400


class TestProcessedEndpoint:

    def test_process_redemption(self, client, cashier):
        member = make_user('saver001', points=100)
        created = post_json(client, '/users/me/transactions', member, {
            'type': 'redemption', 'amount': 60,
        }).get_json()

        response = patch_json(
            client, f"/transactions/{created['id']}/processed", cashier, {'processed': True}
        )

        assert response.status_code == 200
        assert response.get_json()['redeemed'] == 60
        assert member.points == 40

        again = patch_json(client, f"/transactions/{created['id']}/processed", cashier, {'processed': True})
        assert again.status_code == 400
        assert again.get_json()['error']['code'] == 'ALREADY_PROCESSED'

    def test_processed_must_be_true(self, client, cashier):
        response = patch_json(client, '/transactions/1/processed', cashier, {'processed': False})
        assert response.status_code == 400
        assert response.get_json()['error']['code'] == 'INVALID_PROCESSED'
