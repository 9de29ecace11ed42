"""
HTTP surface tests: request parsing, response shapes and error mapping.
"""

from conftest import make_product, balance_of


def test_health(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.json['status'] == 'healthy'
    assert 'stock_movements' in response.json['checks']['database']['details']


def test_product_stock_routes(client, store):
    product = make_product(store, "Manteiga", 2200)

    response = client.post(f'/api/products/{product.id}/add-stock', json={'quantity': 12, 'notes': 'Lote 7'})
    assert response.status_code == 200
    assert response.json['stock'] == 12

    response = client.post(f'/api/products/{product.id}/adjust-stock', json={'quantity_delta': -2})
    assert response.status_code == 200
    assert response.json['stock'] == 10

    response = client.get(f'/api/products/{product.id}/movements')
    assert response.status_code == 200
    assert [m['quantity'] for m in response.json] == [2, 12]
    assert response.json[1]['note'] == 'Lote 7'


def test_add_stock_rejects_bad_quantity(client, store):
    product = make_product(store, "Manteiga", 2200)

    assert client.post(f'/api/products/{product.id}/add-stock', json={'quantity': 0}).status_code == 400
    assert client.post(f'/api/products/{product.id}/add-stock', json={'quantity': '1.5'}).status_code == 400
    assert client.post(f'/api/products/{product.id}/add-stock', json={}).status_code == 400
    assert client.post('/api/products/999/add-stock', json={'quantity': 1}).status_code == 404


def test_list_products_with_stock(client, product_p):
    response = client.get('/api/products')
    assert response.status_code == 200
    assert response.json == [{**response.json[0], 'id': product_p.id, 'stock': 100}]


def test_create_sale_route(client, store, customer, product_p):
    response = client.post('/api/sales', json={
        'client_id': customer.id,
        'items': [
            {'product_id': product_p.id, 'quantity': 2, 'price': '12.50'},
            {'product_id': product_p.id, 'quantity': 1},
        ],
        'date': '2026-04-01T10:00:00Z',
    })

    assert response.status_code == 201
    body = response.json
    assert body['status'] == 'pending'
    assert body['total_cents'] == 2 * 1250 + 1500
    assert len(body['items']) == 2
    assert balance_of(store, product_p.id) == 97

    detail = client.get(f"/api/sales/{body['id']}").json
    assert detail['account_due_date'] == '2026-05-01'


def test_create_sale_insufficient_stock_body(client, store, product_q):
    response = client.post('/api/sales', json={
        'items': [{'product_id': product_q.id, 'quantity': 6}],
    })

    assert response.status_code == 400
    assert response.json['error'] == 'Insufficient stock'
    assert response.json['details'] == [{
        'product_id': product_q.id,
        'product_name': 'Doce de Leite',
        'required': 6,
        'available': 5,
    }]
    assert 'Doce de Leite' in response.json['message']
    assert balance_of(store, product_q.id) == 5


def test_create_sale_requires_items(client, store):
    response = client.post('/api/sales', json={'items': []})
    assert response.status_code == 400


def test_update_sale_paid_reports_warnings(client, product_p):
    sale_id = client.post('/api/sales', json={'items': [{'product_id': product_p.id, 'quantity': 1}]}).json['id']

    response = client.put(f'/api/sales/{sale_id}', json={'status': 'paid', 'payment_method': 'cartao'})

    assert response.status_code == 200
    assert response.json['status'] == 'paid'
    assert response.json['warnings'] == []

    receivable = client.get('/api/receivables').json[0]
    assert receivable['status'] == 'received'


def test_delete_sale_route(client, store, product_p):
    sale_id = client.post('/api/sales', json={'items': [{'product_id': product_p.id, 'quantity': 4}]}).json['id']

    response = client.delete(f'/api/sales/{sale_id}')

    assert response.status_code == 200
    assert response.json == {'success': True}
    assert balance_of(store, product_p.id) == 100
    assert client.get(f'/api/sales/{sale_id}').status_code == 404


def test_consignment_routes(client, store, customer, product_p):
    response = client.post('/api/consignments', json={
        'client_id': customer.id,
        'items': [{'product_id': product_p.id, 'quantity': 20}],
        'notes': 'Banca do mercado',
    })
    assert response.status_code == 201
    consignment_id = response.json['id']
    assert balance_of(store, product_p.id) == 80

    response = client.put(f'/api/consignments/{consignment_id}', json={'status': 'closed'})
    assert response.status_code == 400

    response = client.post(f'/api/consignments/{consignment_id}/close', json={
        'items': [{'product_id': product_p.id, 'quantity_sold': 15}],
        'due_date': '2026-08-15',
    })
    assert response.status_code == 201
    assert [(i['product_id'], i['quantity']) for i in response.json['items']] == [(product_p.id, 15)]
    assert balance_of(store, product_p.id) == 85

    detail = client.get(f'/api/consignments/{consignment_id}').json
    assert detail['status'] == 'closed'
    assert detail['closed_quantity'] == 15

    # Closed is terminal
    assert client.post(f'/api/consignments/{consignment_id}/close', json={
        'items': [{'product_id': product_p.id, 'quantity_sold': 1}],
    }).status_code == 400
    assert client.delete(f'/api/consignments/{consignment_id}').status_code == 400


def test_delete_open_consignment_route(client, store, customer, product_q):
    consignment_id = client.post('/api/consignments', json={
        'client_id': customer.id,
        'items': [{'product_id': product_q.id, 'quantity': 5}],
    }).json['id']
    assert balance_of(store, product_q.id) == 0

    assert client.delete(f'/api/consignments/{consignment_id}').status_code == 200
    assert balance_of(store, product_q.id) == 5
    assert client.get(f'/api/consignments/{consignment_id}').status_code == 404


def test_create_consignment_requires_client(client, product_p):
    response = client.post('/api/consignments', json={'items': [{'product_id': product_p.id, 'quantity': 1}]})
    assert response.status_code == 400


def test_receivable_routes(client, store):
    response = client.post('/api/receivables', json={'value': '49.90', 'due_date': '2026-09-10', 'description': 'Bolo'})
    assert response.status_code == 201
    assert response.json['value_cents'] == 4990

    receivable_id = response.json['id']
    response = client.post(f'/api/receivables/{receivable_id}/receive', json={'payment_method': 'pix'})
    assert response.status_code == 200
    assert response.json['status'] == 'received'

    assert client.post(f'/api/receivables/{receivable_id}/receive', json={}).status_code == 400
    assert client.post('/api/receivables', json={'value': 10}).status_code == 400


def test_update_sale_rejects_negative_total(client, product_p):
    sale_id = client.post('/api/sales', json={'items': [{'product_id': product_p.id, 'quantity': 1}]}).json['id']

    assert client.put(f'/api/sales/{sale_id}', json={'total_cents': -500}).status_code == 400
    assert client.put(f'/api/sales/{sale_id}', json={'total': '-5.00'}).status_code == 400
    assert client.get(f'/api/sales/{sale_id}').json['total_cents'] == 1500


def test_status_filters_accept_legacy_names(client, customer, product_p):
    client.post('/api/consignments', json={
        'client_id': customer.id,
        'items': [{'product_id': product_p.id, 'quantity': 1}],
    })
    client.post('/api/receivables', json={'value_cents': 100, 'due_date': '2026-09-10'})

    assert len(client.get('/api/consignments?status=Ativo').json) == 1
    assert client.get('/api/consignments?status=Encerrado').json == []
    assert len(client.get('/api/receivables?status=Pendente').json) == 1
    assert client.get('/api/receivables?status=Recebido').json == []
