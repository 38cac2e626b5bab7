"""
Integration tests for the coupons API.
"""

import json
import uuid
from datetime import timedelta

from app.utils.dates import utcnow


def coupon_payload(outlet_id, **overrides):
    now = utcnow()
    payload = {
        'outlet_id': str(outlet_id),
        'code': 'SUMMER10',
        'discount_type': 'percentage',
        'discount_value': 10,
        'max_uses': 2,
        'start_date': (now - timedelta(days=1)).isoformat() + 'Z',
        'end_date': (now + timedelta(days=1)).isoformat() + 'Z',
        'is_active': True,
    }
    payload.update(overrides)
    return payload


def create_coupon(client, outlet_id, **overrides):
    response = client.post('/v1/coupons', json=coupon_payload(outlet_id, **overrides))
    assert response.status_code == 201
    return response.get_json()['coupon']


class TestCouponCrud:
    """Tests for coupon CRUD endpoints."""

    def test_create_and_get(self, client, outlet_id):
        """Test create then get over HTTP."""
        created = create_coupon(client, outlet_id)

        response = client.get(f"/v1/coupons/{created['id']}")
        data = response.get_json()

        assert response.status_code == 200
        assert data['status'] == 'OK'
        assert data['coupon']['code'] == 'SUMMER10'
        assert data['coupon']['used_count'] == 0
        assert data['coupon']['discount_value'] == 10.0

    def test_create_validation_error(self, client, outlet_id):
        """Test the validation error body."""
        response = client.post('/v1/coupons', json=coupon_payload(outlet_id, discount_type='bogus'))
        data = response.get_json()

        assert response.status_code == 400
        assert data['status'] == 'error'
        assert data['kind'] == 'validation_error'
        assert 'discount_type' in data['errors']

    def test_create_duplicate_code(self, client, outlet_id):
        """Test duplicate code returns 409."""
        create_coupon(client, outlet_id)

        response = client.post('/v1/coupons', json=coupon_payload(outlet_id))
        assert response.status_code == 409
        assert response.get_json()['kind'] == 'conflict'

    def test_non_finite_number_is_validation_error(self, client, outlet_id):
        """Test that a JSON Infinity is a 400, not a server error."""
        body = json.dumps(coupon_payload(outlet_id)).replace('"max_uses": 2', '"max_uses": Infinity')

        response = client.post('/v1/coupons', data=body, content_type='application/json')

        assert response.status_code == 400
        assert 'max_uses' in response.get_json()['errors']

    def test_amount_too_large_is_validation_error(self, client, outlet_id):
        """Test that an amount beyond the column range is a 400."""
        response = client.post('/v1/coupons', json=coupon_payload(outlet_id, discount_value=1e30))

        assert response.status_code == 400
        assert 'discount_value' in response.get_json()['errors']

    def test_blank_fields_leave_coupon_unchanged(self, client, outlet_id):
        """Test that empty strings in a PUT mean no change."""
        created = create_coupon(client, outlet_id)

        response = client.put(f"/v1/coupons/{created['id']}", json={
            'is_active': '',
            'discount_value': '',
            'max_uses': '',
        })
        updated = response.get_json()['coupon']

        assert response.status_code == 200
        assert updated['is_active'] is True
        assert updated['discount_value'] == 10.0
        assert updated['max_uses'] == 2
        assert updated['created_at'] == created['created_at']

    def test_non_object_body(self, client):
        """Test that a JSON array body is rejected."""
        response = client.post('/v1/coupons', json=['not', 'an', 'object'])
        assert response.status_code == 400

    def test_malformed_id(self, client):
        """Test a malformed id in the path."""
        response = client.get('/v1/coupons/not-a-uuid')
        assert response.status_code == 400
        assert 'id' in response.get_json()['errors']

    def test_missing_coupon(self, client):
        """Test an unknown coupon id."""
        response = client.get(f'/v1/coupons/{uuid.uuid4()}')
        assert response.status_code == 404
        assert response.get_json()['kind'] == 'not_found'

    def test_update_and_delete(self, client, outlet_id):
        """Test sparse PUT and DELETE."""
        created = create_coupon(client, outlet_id)

        response = client.put(f"/v1/coupons/{created['id']}", json={'description': 'new text'})
        updated = response.get_json()['coupon']
        assert updated['description'] == 'new text'
        assert updated['code'] == 'SUMMER10'

        assert client.delete(f"/v1/coupons/{created['id']}").status_code == 200
        assert client.get(f"/v1/coupons/{created['id']}").status_code == 404

    def test_list_paginated(self, client, outlet_id):
        """Test the paginated envelope."""
        for i in range(3):
            create_coupon(client, outlet_id, code=f'CODE{i}')

        response = client.get(f'/v1/coupons?page=1&limit=2&outletId={outlet_id}')
        data = response.get_json()

        assert response.status_code == 200
        assert len(data['results']) == 2
        assert data['total_results'] == 3
        assert data['total_pages'] == 2
        assert data['page'] == 1
        assert data['limit'] == 2

    def test_list_limit_out_of_range(self, client):
        """Test limit above the maximum."""
        assert client.get('/v1/coupons?limit=500').status_code == 400

    def test_get_by_code(self, client, outlet_id):
        """Test lookup by code."""
        created = create_coupon(client, outlet_id)

        response = client.get(f'/v1/coupons/code/SUMMER10?outletId={outlet_id}')
        assert response.get_json()['coupon']['id'] == created['id']

    def test_active(self, client, outlet_id):
        """Test the active listing."""
        create_coupon(client, outlet_id)
        create_coupon(client, outlet_id, code='OFF', is_active=False)

        response = client.get(f'/v1/coupons/active?outletId={outlet_id}')
        assert [c['code'] for c in response.get_json()['coupons']] == ['SUMMER10']


class TestRedemption:
    """Tests for validate and redeem endpoints."""

    def test_validate_and_redeem_until_exhausted(self, client, outlet_id):
        """Test the two-step protocol until the coupon is exhausted."""
        created = create_coupon(client, outlet_id)
        body = {'code': 'SUMMER10', 'outlet_id': str(outlet_id)}

        for expected in (1, 2):
            assert client.post('/v1/coupons/validate', json=body).status_code == 200
            response = client.post(f"/v1/coupons/{created['id']}/redeem")
            assert response.get_json()['coupon']['used_count'] == expected

        response = client.post('/v1/coupons/validate', json=body)
        data = response.get_json()
        assert response.status_code == 422
        assert data['kind'] == 'coupon_invalid'
        assert data['reason'] == 'exhausted_uses'

    def test_not_yet_valid(self, client, outlet_id):
        """Test the not_yet_valid reason."""
        tomorrow = utcnow() + timedelta(days=1)
        create_coupon(
            client, outlet_id,
            start_date=tomorrow.isoformat(),
            end_date=(tomorrow + timedelta(days=3)).isoformat()
        )

        response = client.post('/v1/coupons/validate', json={'code': 'SUMMER10', 'outlet_id': str(outlet_id)})
        assert response.status_code == 422
        assert response.get_json()['reason'] == 'not_yet_valid'

    def test_atomic_redeem_by_code(self, client, outlet_id):
        """Test the single-call redeem stops at max_uses."""
        create_coupon(client, outlet_id, max_uses=1)
        body = {'code': 'SUMMER10', 'outlet_id': str(outlet_id)}

        first = client.post('/v1/coupons/redeem', json=body)
        second = client.post('/v1/coupons/redeem', json=body)

        assert first.status_code == 200
        assert first.get_json()['coupon']['used_count'] == 1
        assert second.status_code == 422
        assert second.get_json()['reason'] == 'exhausted_uses'

    def test_redeem_unknown_coupon(self, client):
        """Test redeeming an unknown coupon."""
        assert client.post(f'/v1/coupons/{uuid.uuid4()}/redeem').status_code == 404


class TestAppSurface:
    """Tests for app-wide behaviour."""

    def test_unknown_route_is_json(self, client):
        """Test that a 404 is rendered as JSON."""
        response = client.get('/v1/nothing-here')
        assert response.status_code == 404
        assert response.get_json()['status'] == 'error'

    def test_metrics_endpoint(self, client, outlet_id):
        """Test that /metrics exposes the counters."""
        create_coupon(client, outlet_id, max_uses=1)
        client.post('/v1/coupons/redeem', json={'code': 'SUMMER10', 'outlet_id': str(outlet_id)})

        response = client.get('/metrics')
        body = response.get_data(as_text=True)
        assert response.status_code == 200
        assert 'coupon_redemptions_total' in body
        assert 'http_requests_total' in body
