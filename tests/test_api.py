"""Tests for the Flask endpoints."""

import io

import pytest

import main


CSV_DATA = (
    "items\n"
    "milk,bread,butter\n"
    "bread,biscuit\n"
    "milk,bread,biscuit\n"
    "bread,butter,namkeen\n"
    "milk,bread,butter,egg\n"
    "milk,egg\n"
    "bread,butter\n"
    "milk,bread,butter\n"
    "biscuit,egg\n"
    "milk,bread\n"
)


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(main, 'TRANSACTIONS_FILE', str(tmp_path / 'transactions.csv'))
    main.app.config['TESTING'] = True
    with main.app.test_client() as client:
        yield client


def upload(client, content, filename='baskets.csv', **form):
    data = dict(form)
    data['file'] = (io.BytesIO(content.encode('utf-8')), filename)
    return client.post('/api/upload', data=data, content_type='multipart/form-data')


class TestTransactionParser:

    def test_detects_header_and_delimiter(self):
        parser = main.TransactionParser()
        transactions = parser.parse(b"items\na;b;c\nb;c\n")
        assert transactions == [['a', 'b', 'c'], ['b', 'c']]

    def test_whitespace_separated_ids(self):
        parser = main.TransactionParser()
        assert parser.parse(b"1 2 3\n2 3\n") == [['1', '2', '3'], ['2', '3']]

    def test_cleans_items(self):
        parser = main.TransactionParser({'lowercase': True})
        assert parser.parse_transaction(' "Milk" ,bread,,NaN,milk\u200b') == ['milk', 'bread']


class TestEndpoints:

    def test_health(self, client):
        resp = client.get('/api/health')
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'ok'

    def test_upload_and_preview(self, client):
        resp = upload(client, CSV_DATA)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['stats']['transactions'] == 10
        assert body['stats']['unique_items'] == 6

        preview = client.get('/api/dataset/preview').get_json()
        assert preview['sample_transactions'][0]['items'] == ['milk', 'bread', 'butter']

    def test_upload_rejects_unknown_format(self, client):
        resp = upload(client, CSV_DATA, filename='baskets.pdf')
        assert resp.status_code == 400

    def test_upload_without_file(self, client):
        resp = client.post('/api/upload', data={}, content_type='multipart/form-data')
        assert resp.status_code == 400

    def test_preview_without_dataset(self, client):
        resp = client.get('/api/dataset/preview')
        assert resp.status_code == 404

    def test_topk_without_dataset(self, client):
        resp = client.post('/api/topk', json={})
        assert resp.status_code == 400
        assert 'upload' in resp.get_json()['error']

    def test_topk_on_uploaded_dataset(self, client):
        upload(client, CSV_DATA)
        resp = client.post('/api/topk', json={'top_k': 4, 'min_support': 0.2, 'subsumption': False})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['count'] == 4
        assert body['is_full'] is True
        assert [p['support'] for p in body['patterns']] == [8, 6, 5, 5]
        assert body['least_support'] == 5
        assert body['patterns'][0]['items'] == ['bread']
        assert body['patterns'][0]['support_ratio'] == 0.8
        assert body['parameters']['min_support_count'] == 2

    def test_topk_partitioned_matches_single(self, client):
        upload(client, CSV_DATA)
        single = client.post('/api/topk', json={'top_k': 6, 'subsumption': False}).get_json()
        split = client.post('/api/topk', json={'top_k': 6, 'subsumption': False, 'partitions': 3}).get_json()
        assert [p['support'] for p in split['patterns']] == [p['support'] for p in single['patterns']]

    def test_topk_inline_transactions(self, client):
        resp = client.post('/api/topk', json={
            'top_k': 3,
            'min_support': 0.5,
            'transactions': [['a', 'b'], ['a', 'b'], ['a']],
        })
        assert resp.status_code == 200
        patterns = resp.get_json()['patterns']
        # ['a'] survives at support 3, ['b'] is subsumed by ['a', 'b'] at support 2
        assert {(tuple(sorted(p['items'])), p['support']) for p in patterns} == {
            (('a',), 3), (('a', 'b'), 2),
        }

    def test_items_keep_commas_after_semicolon_upload(self, client):
        resp = upload(client, "a,b;c\nd;c\n", filename='baskets.txt')
        assert resp.status_code == 200
        assert resp.get_json()['stats']['unique_items'] == 3
        assert main.load_transactions() == [['a,b', 'c'], ['d', 'c']]

    @pytest.mark.parametrize('flag, expected', [
        (False, False), ('false', False), ('0', False), (True, True), ('True', True),
    ])
    def test_subsumption_flag_parsing(self, client, flag, expected):
        resp = client.post('/api/topk', json={
            'transactions': [['a', 'b'], ['a', 'b']],
            'subsumption': flag,
        })
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['parameters']['subsumption'] is expected
        # with subsumption only ['a', 'b'] survives at support 2
        assert body['count'] == (1 if expected else 3)

    @pytest.mark.parametrize('payload', [
        {'subsumption': 'maybe'},
        {'subsumption': 1},
        {'top_k': 0},
        {'top_k': main.MAX_TOP_K + 1},
        {'min_support': 0},
        {'min_support': 1.5},
        {'partitions': 0},
        {'top_k': 'many'},
    ])
    def test_topk_rejects_bad_parameters(self, client, payload):
        upload(client, CSV_DATA)
        resp = client.post('/api/topk', json=payload)
        assert resp.status_code == 400
        assert 'error' in resp.get_json()
