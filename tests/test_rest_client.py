# Copyright (c) 2024 Huawei Technologies Co., Ltd.
# All Rights Reserved.
#
#    Licensed under the Apache License, Version 2.0 (the "License"); you may
#    not use this file except in compliance with the License. You may obtain
#    a copy of the License at
#
#         http://www.apache.org/licenses/LICENSE-2.0
#
#    Unless required by applicable law or agreed to in writing, software
#    distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
#    WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
#    License for the specific language governing permissions and limitations
#    under the License.

import copy
import datetime
import threading
import time
from unittest import mock

import pytest
import requests

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi import rest_client


def _ok(data=None):
    result = {'error': {'code': 0, 'description': '0'}}
    if data is not None:
        result['data'] = data
    return result


def _err(code):
    return {'error': {'code': code, 'description': 'error %s' % code}}


class FakeResponse(object):
    def __init__(self, body, status_code=200):
        self.body = body
        self.status_code = status_code
        self.elapsed = datetime.timedelta(milliseconds=5)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError('%s error' % self.status_code)

    def json(self):
        if isinstance(self.body, str):
            raise ValueError('No JSON object could be decoded')
        return copy.deepcopy(self.body)


class FakeSession(object):
    """requests.Session stand-in routing every request to a handler.

    The handler gets (method, url, data) and returns a body, a
    FakeResponse, or raises.
    """

    def __init__(self, handler):
        self.handler = handler
        self.headers = {}
        self.verify = None
        self.requests = []
        self.closed = False

    def mount(self, prefix, adapter):
        pass

    def close(self):
        self.closed = True

    def request(self, method, url, data=None, timeout=None):
        self.requests.append((method, url))
        response = self.handler(method, url, data)
        if isinstance(response, FakeResponse):
            return response
        return FakeResponse(response)


def _login_ok(token='tok1'):
    return _ok({'iBaseToken': token, 'deviceid': 'dev1',
                'accountstate': 1})


def _config(**kwargs):
    config = {
        'backend_id': 'backend-1',
        'san_address': ['https://10.0.0.1:8088/deviceManager/rest'],
        'san_user': 'admin',
        'san_password': 'secret',
        'ssl_cert_verify': False,
        'parallel_count': 2,
    }
    config.update(kwargs)
    return config


def _client(handler, pool=None, **kwargs):
    session = FakeSession(handler)
    client = rest_client.RestClient(_config(**kwargs), pool=pool)
    patcher = mock.patch.object(client, '_new_session', return_value=session)
    patcher.start()
    return client, session, patcher


@pytest.fixture
def make_client():
    patchers = []

    def _make(handler, **kwargs):
        client, session, patcher = _client(handler, **kwargs)
        patchers.append(patcher)
        return client, session

    yield _make
    for patcher in patchers:
        patcher.stop()


def _logins(session):
    return [url for method, url in session.requests
            if method == 'POST' and url.endswith('xx/sessions')]


class TestLogin(object):
    def test_login_sets_token_and_device(self, make_client):
        client, session = make_client(lambda m, u, d: _login_ok())

        client.login()

        assert session.headers['iBaseToken'] == 'tok1'
        assert client.device_id == 'dev1'
        assert _logins(session) == [
            'https://10.0.0.1:8088/deviceManager/rest/xx/sessions']

    def test_unreachable_url_is_rotated_last(self, make_client):
        def handler(method, url, data):
            if url.startswith('https://10.0.0.1'):
                raise requests.ConnectionError('refused')
            return _login_ok()

        client, session = make_client(
            handler, san_address=['https://10.0.0.1:8088/rest/',
                                  'https://10.0.0.2:8088/rest/',
                                  'https://10.0.0.3:8088/rest/'])

        client.login()

        assert client.san_address == ['https://10.0.0.2:8088/rest/',
                                      'https://10.0.0.3:8088/rest/',
                                      'https://10.0.0.1:8088/rest/']

    def test_all_urls_unreachable(self, make_client):
        def handler(method, url, data):
            raise requests.ConnectionError('refused')

        client, session = make_client(
            handler, san_address=['https://10.0.0.1:8088/rest/',
                                  'https://10.0.0.2:8088/rest/'])

        with pytest.raises(exception.AuthError):
            client.login()
        assert len(_logins(session)) == 2

    def test_wrong_password_stops_login(self, make_client):
        client, session = make_client(
            lambda m, u, d: _err(constants.WRONG_PASSWORD_CODES[0]),
            san_address=['https://10.0.0.1:8088/rest/',
                         'https://10.0.0.2:8088/rest/'])

        with pytest.raises(exception.AuthError):
            client.login()
        assert len(_logins(session)) == 1

    def test_expired_password_is_rejected(self, make_client):
        def handler(method, url, data):
            if method == 'POST':
                return _ok({'iBaseToken': 'tok1', 'deviceid': 'dev1',
                            'accountstate': 3})
            return _ok()

        client, session = make_client(handler)

        with pytest.raises(exception.AuthError):
            client.login()
        assert ('DELETE',
                'https://10.0.0.1:8088/deviceManager/rest/dev1/sessions') \
            in session.requests


class TestCall(object):
    def test_first_call_logs_in(self, make_client):
        def handler(method, url, data):
            if url.endswith('xx/sessions'):
                return _login_ok()
            return _ok({'ID': '1', 'PRODUCTMODE': '811'})

        client, session = make_client(handler)

        info = client.get_array_info()

        assert info.get_string('ID') == '1'
        assert session.requests[-1] == (
            'GET', 'https://10.0.0.1:8088/deviceManager/rest/dev1/system/')

    def test_relogin_once_on_unauthorized(self, make_client):
        state = {'gets': 0, 'tokens': iter(['tok1', 'tok2'])}

        def handler(method, url, data):
            if url.endswith('xx/sessions'):
                return _login_ok(next(state['tokens']))
            if method == 'DELETE':
                return _ok()
            state['gets'] += 1
            if state['gets'] == 1:
                return _err(constants.ERROR_UNAUTHORIZED_TO_SERVER)
            return _ok({'ID': '1'})

        client, session = make_client(handler)
        client.login()

        result = client.get('/system/')

        assert result['error']['code'] == 0
        assert len(_logins(session)) == 2
        assert state['gets'] == 2
        assert session.headers['iBaseToken'] == 'tok2'

    def test_relogin_on_transport_error(self, make_client):
        state = {'gets': 0}

        def handler(method, url, data):
            if url.endswith('xx/sessions'):
                return _login_ok()
            if method == 'DELETE':
                return _ok()
            state['gets'] += 1
            if state['gets'] == 1:
                raise requests.Timeout('read timeout')
            return _ok()

        client, session = make_client(handler)
        client.login()

        client.get('/system/')

        assert len(_logins(session)) == 2

    def test_business_error_is_returned(self, make_client):
        def handler(method, url, data):
            if url.endswith('xx/sessions'):
                return _login_ok()
            return _err(constants.LUN_NOT_EXIST)

        client, session = make_client(handler)

        result = client.get('/lun/1')

        assert result['error']['code'] == constants.LUN_NOT_EXIST
        assert len(_logins(session)) == 1


class TestBaseCall(object):
    URL = 'https://10.0.0.1:8088/deviceManager/rest/dev1/system/'

    def _base_client(self, make_client, body):
        client, session = make_client(lambda m, u, d: body)
        client._init_http_head()
        return client

    @pytest.mark.parametrize('body', [
        'not json',
        ['a', 'list'],
        {'data': {}},
        {'error': {'description': 'no code'}},
        {'error': {'code': 'abc'}},
    ])
    def test_bad_envelope(self, make_client, body):
        client = self._base_client(make_client, body)

        with pytest.raises(exception.ProtocolError):
            client.base_call('GET', self.URL)

    def test_http_error_is_transport_error(self, make_client):
        client = self._base_client(make_client,
                                   FakeResponse(_ok(), status_code=500))

        with pytest.raises(exception.TransportError):
            client.base_call('GET', self.URL)

    def test_string_code_is_converted(self, make_client):
        client = self._base_client(
            make_client, {'error': {'code': '1077948996'}, 'data': {}})

        result = client.base_call('GET', self.URL)

        assert result['error']['code'] == constants.OBJECT_NOT_EXIST

    def test_requests_are_bounded_by_semaphore(self, make_client):
        lock = threading.Lock()
        state = {'active': 0, 'max_active': 0, 'done': 0}

        def handler(method, url, data):
            with lock:
                state['active'] += 1
                state['max_active'] = max(state['max_active'],
                                          state['active'])
            time.sleep(0.05)
            with lock:
                state['active'] -= 1
                state['done'] += 1
            return _ok()

        pool = rest_client.BackendConnectionPool()
        client, session = make_client(handler, pool=pool, parallel_count=2)
        client._init_http_head()

        threads = [threading.Thread(target=client.base_call,
                                    args=('GET', self.URL))
                   for _i in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert state['done'] == 6
        assert state['max_active'] <= 2


class TestConnectionPool(object):
    def test_semaphore_is_shared_per_backend(self):
        pool = rest_client.BackendConnectionPool()

        first = rest_client.RestClient(_config(), pool=pool)
        second = rest_client.RestClient(_config(), pool=pool)
        other = rest_client.RestClient(_config(backend_id='backend-2'),
                                       pool=pool)

        assert first.semaphore is second.semaphore
        assert first.semaphore is not other.semaphore
        assert len(pool) == 2

    def test_semaphore_size_is_capped(self):
        pool = rest_client.BackendConnectionPool(max_storage_threads=3)
        semaphore = pool.get_semaphore('backend-1', 30)

        acquired = [semaphore.acquire(blocking=False) for _i in range(4)]

        assert acquired == [True, True, True, False]

    def test_remove_and_close(self):
        pool = rest_client.BackendConnectionPool()
        pool.get_semaphore('backend-1')
        pool.get_semaphore('backend-2')

        pool.remove('backend-1')
        assert 'backend-1' not in pool
        pool.close()
        assert len(pool) == 0


class TestFacades(object):
    @pytest.fixture
    def client(self):
        return mock.Mock()

    def test_facade_methods_are_merged(self):
        client = rest_client.RestClient(_config())

        for name in ('create_filesystem', 'create_nfs_share',
                     'allow_nfs_share_access', 'create_lun',
                     'get_iscsi_tgt_ports', 'create_hypermetro',
                     'create_replication_pair'):
            assert callable(getattr(client, name))

    def test_create_existing_filesystem(self, client):
        client.post.return_value = _err(constants.OBJECT_NAME_ALREADY_EXIST)
        client.get.return_value = _ok([{'ID': '5', 'NAME': 'fs1'}])

        fs = rest_client.FileSystem(client).create_filesystem(
            {'NAME': 'fs1', 'CAPACITY': 1024})

        assert fs.get_string('ID') == '5'

    def test_create_after_busy(self, client):
        client.post.return_value = _err(constants.SYSTEM_BUSY)
        client.get.side_effect = [_ok([]), _ok([{'ID': '5', 'NAME': 'fs1'}])]

        with mock.patch.object(huawei_utils.time, 'sleep'):
            fs = rest_client.FileSystem(client).create_filesystem(
                {'NAME': 'fs1', 'CAPACITY': 1024})

        assert fs.get_string('ID') == '5'
        assert client.get.call_count == 2

    def test_create_failure(self, client):
        client.post.return_value = _err(constants.ERROR_PARAMETER_ERROR)

        with pytest.raises(exception.BackendBusinessError) as err:
            rest_client.FileSystem(client).create_filesystem(
                {'NAME': 'fs1', 'CAPACITY': 1024})
        assert err.value.error_code == constants.ERROR_PARAMETER_ERROR

    def test_delete_absent_filesystem(self, client):
        client.delete.return_value = _err(constants.FILESYSTEM_NOT_EXIST)

        rest_client.FileSystem(client).delete_filesystem('5')

    def test_get_absent_filesystem(self, client):
        client.get.return_value = _ok([])

        fs = rest_client.FileSystem(client).get_filesystem_by_name('fs1')

        assert not fs.exists

    def test_vstore_filter(self, client):
        client.get.return_value = _ok([])

        rest_client.FileSystem(client).get_filesystem_by_name('fs1', '3')

        assert client.get.call_args[0][0] == \
            '/filesystem?filter=NAME::fs1&range=[0-100]&vstoreId=3'

    def test_pools_are_paged(self, client):
        first = [{'ID': str(i)} for i in range(constants.GET_PATCH_NUM)]
        client.get.side_effect = [_ok(first), _ok([{'ID': 'last'}])]

        pools = rest_client.StoragePool(client).get_all_pools()

        assert len(pools) == constants.GET_PATCH_NUM + 1
        assert [c[0][0] for c in client.get.call_args_list] == [
            '/storagepool?range=[0-100]', '/storagepool?range=[100-200]']

    def test_host_lun_id(self, client):
        client.get.return_value = _ok([
            {'ID': '11', 'NAME': 'pvc-1',
             'ASSOCIATEMETADATA': '{"HostLUNID": 3}'}])

        host_lun_id = rest_client.Lun(client).get_lun_host_lun_id(
            '1', {'ID': '11', 'NAME': 'pvc-1'})

        assert host_lun_id == '3'

    def test_fc_target_wwpns(self, client):
        client.get.return_value = _ok([{'TARGET_PORT_WWN': 't1'},
                                       {'TARGET_PORT_WWN': 't2'}])

        assert rest_client.HostLink(client).get_fc_target_wwpns('w1') == \
            ['t1', 't2']

    def test_replication_pair_by_local_res_name(self, client):
        client.get.return_value = _ok([{'ID': 'p1', 'LOCALRESNAME': 'fs1'}])

        pair = rest_client.ReplicationPair(
            client).get_replication_pair_by_localres_name('fs1')

        assert pair.get_string('ID') == 'p1'
        assert client.get.call_args[0][0] == \
            '/REPLICATIONPAIR?filter=LOCALRESNAME::fs1'

    def test_removed_facade_methods(self):
        client = rest_client.RestClient(_config())

        for name in ('delete_host', 'delete_hostgroup', 'delete_mapping_view',
                     'remove_dataturbo_share_user', 'get_workload_type_name',
                     'get_all_qos'):
            assert not hasattr(client, name)
