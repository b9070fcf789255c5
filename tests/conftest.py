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

import itertools

import pytest

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils

Handle = huawei_utils.StorageObjectHandle


class FakeClient(object):
    """In-memory array answering the facade methods the workflows use.

    Every facade call is appended to ``calls`` by name. A call listed in
    ``failures`` raises the given exception after being recorded.
    """

    def __init__(self):
        self.calls = []
        self.failures = {}
        self._ids = itertools.count(100)

        self.pools = {'pool1': {'ID': '0', 'NAME': 'pool1'}}
        self.workload_types = {'oracle': '1'}
        self.filesystems = {}
        self.nfs_shares = {}
        self.nfs_accesses = {}
        self.luns = {}
        self.qos_policies = {}
        self.dataturbo_shares = {}
        self.dataturbo_users = {}
        self.utc_time = 86400 * 3 + 1000

    def _record(self, name, *args):
        self.calls.append((name, args))
        if name in self.failures:
            raise self.failures[name]

    def _new_id(self):
        return str(next(self._ids))

    def call_names(self):
        return [name for name, _args in self.calls]

    def count(self, name):
        return self.call_names().count(name)

    # vstore, pool and workload type
    def get_vstore_by_name(self, name):
        self._record('get_vstore_by_name', name)
        return Handle(obj_name='vstore')

    def get_pool_by_name(self, pool_name):
        self._record('get_pool_by_name', pool_name)
        return Handle(self.pools.get(pool_name), 'pool')

    def get_workload_type_id(self, workload_type_name):
        self._record('get_workload_type_id', workload_type_name)
        return self.workload_types.get(workload_type_name)

    def get_system_utc_time(self):
        self._record('get_system_utc_time')
        return self.utc_time

    # filesystem
    def get_filesystem_by_name(self, name, vstore_id=None):
        self._record('get_filesystem_by_name', name)
        for fs in self.filesystems.values():
            if fs['NAME'] == name:
                return Handle(fs, 'filesystem')
        return Handle(obj_name='filesystem')

    def get_filesystem_by_id(self, fs_id, vstore_id=None):
        self._record('get_filesystem_by_id', fs_id)
        return Handle(self.filesystems.get(fs_id), 'filesystem')

    def create_filesystem(self, fs_params, vstore_id=None):
        self._record('create_filesystem', fs_params)
        fs = dict(fs_params, ID=self._new_id())
        fs['CAPACITY'] = str(fs_params['CAPACITY'])
        self.filesystems[fs['ID']] = fs
        return Handle(fs, 'filesystem')

    def delete_filesystem(self, fs_id, vstore_id=None):
        self._record('delete_filesystem', fs_id)
        self.filesystems.pop(fs_id, None)

    def create_clone_filesystem(self, name, parent_fs_id, description='',
                                vstore_id=None):
        self._record('create_clone_filesystem', name, parent_fs_id)
        parent = self.filesystems[parent_fs_id]
        fs = {'ID': self._new_id(), 'NAME': name,
              'CAPACITY': parent['CAPACITY'], 'ISCLONEFS': 'true',
              'HEALTHSTATUS': constants.STATUS_HEALTH,
              'SPLITSTATUS': constants.FS_SPLIT_NOT_START}
        self.filesystems[fs['ID']] = fs
        return Handle(fs, 'filesystem')

    def split_clone_filesystem(self, fs_id, split_speed,
                               delete_parent_snapshot=False, vstore_id=None):
        self._record('split_clone_filesystem', fs_id, split_speed)
        self.filesystems[fs_id]['ISCLONEFS'] = 'false'

    def update_filesystem(self, fs_id, data, vstore_id=None):
        self._record('update_filesystem', fs_id, data)
        self.filesystems[fs_id].update(data)

    def extend_filesystem(self, fs_id, new_capacity, vstore_id=None):
        self._record('extend_filesystem', fs_id, new_capacity)
        self.filesystems[fs_id]['CAPACITY'] = str(new_capacity)

    # nfs share
    def get_nfs_share_by_path(self, share_path, vstore_id=None):
        self._record('get_nfs_share_by_path', share_path)
        return Handle(self.nfs_shares.get(share_path), 'nfs share')

    def create_nfs_share(self, share_path, fs_id, description='',
                         vstore_id=None):
        self._record('create_nfs_share', share_path, fs_id)
        share = {'ID': self._new_id(), 'SHAREPATH': share_path,
                 'FSID': fs_id}
        self.nfs_shares[share_path] = share
        self.nfs_accesses[share['ID']] = []
        return Handle(share, 'nfs share')

    def delete_nfs_share(self, share_id, vstore_id=None):
        self._record('delete_nfs_share', share_id)
        for path, share in list(self.nfs_shares.items()):
            if share['ID'] == share_id:
                del self.nfs_shares[path]
        self.nfs_accesses.pop(share_id, None)

    def get_nfs_share_accesses(self, share_id, vstore_id=None):
        self._record('get_nfs_share_accesses', share_id)
        return list(self.nfs_accesses.get(share_id, []))

    def allow_nfs_share_access(self, share_id, client_name, **kwargs):
        self._record('allow_nfs_share_access', share_id, client_name)
        accesses = self.nfs_accesses.setdefault(share_id, [])
        if client_name not in [a['NAME'] for a in accesses]:
            accesses.append({'ID': self._new_id(), 'NAME': client_name})

    def delete_nfs_share_access(self, access_id, vstore_id=None):
        self._record('delete_nfs_share_access', access_id)
        for accesses in self.nfs_accesses.values():
            accesses[:] = [a for a in accesses if a['ID'] != access_id]

    # dataturbo share
    def get_dataturbo_share_by_path(self, share_path, vstore_id=None):
        self._record('get_dataturbo_share_by_path', share_path)
        return Handle(self.dataturbo_shares.get(share_path),
                      'dataturbo share')

    def create_dataturbo_share(self, share_path, fs_id, description='',
                               vstore_id=None):
        self._record('create_dataturbo_share', share_path, fs_id)
        share = {'ID': self._new_id(), 'sharePath': share_path,
                 'fsId': fs_id}
        self.dataturbo_shares[share_path] = share
        self.dataturbo_users[share['ID']] = []
        return Handle(share, 'dataturbo share')

    def delete_dataturbo_share(self, share_id, vstore_id=None):
        self._record('delete_dataturbo_share', share_id)
        for path, share in list(self.dataturbo_shares.items()):
            if share['ID'] == share_id:
                del self.dataturbo_shares[path]
        self.dataturbo_users.pop(share_id, None)

    def add_dataturbo_share_user(self, user_name, share_id,
                                 permission=constants.DATATURBO_PERMISSION_RW,
                                 vstore_id=None):
        self._record('add_dataturbo_share_user', user_name, share_id)
        users = self.dataturbo_users[share_id]
        if user_name in users:
            raise exception.BackendBusinessError(
                data='user %s already added' % user_name)
        users.append(user_name)

    # lun
    def get_lun_info_by_name(self, name):
        self._record('get_lun_info_by_name', name)
        for lun in self.luns.values():
            if lun['NAME'] == name:
                return Handle(lun, 'lun')
        return Handle(obj_name='lun')

    def get_lun_info_by_id(self, lun_id):
        self._record('get_lun_info_by_id', lun_id)
        return Handle(self.luns.get(lun_id), 'lun')

    def create_lun(self, lun_params):
        self._record('create_lun', lun_params)
        lun_id = self._new_id()
        lun = dict(lun_params, ID=lun_id, WWN='6' + lun_id.zfill(31),
                   HEALTHSTATUS=constants.STATUS_HEALTH,
                   RUNNINGSTATUS=constants.STATUS_RUNNING)
        lun['CAPACITY'] = str(lun_params['CAPACITY'])
        self.luns[lun_id] = lun
        return Handle(lun, 'lun')

    def delete_lun(self, lun_id):
        self._record('delete_lun', lun_id)
        self.luns.pop(lun_id, None)

    def update_lun(self, lun_id, data):
        self._record('update_lun', lun_id, data)
        self.luns[lun_id].update(data)

    def extend_lun(self, lun_id, new_size):
        self._record('extend_lun', lun_id, new_size)
        self.luns[lun_id]['CAPACITY'] = str(new_size)

    # qos
    def _objects(self, obj_type):
        if obj_type == constants.FILESYSTEM_TYPE:
            return self.filesystems
        return self.luns

    def create_qos_policy(self, name, obj_type, obj_id, qos, start_time,
                          vstore_id=None):
        self._record('create_qos_policy', name, obj_type, obj_id, qos)
        list_key = ('FSLIST' if obj_type == constants.FILESYSTEM_TYPE
                    else 'LUNLIST')
        policy = dict(qos, ID=self._new_id(), NAME=name,
                      ENABLESTATUS='false',
                      RUNNINGSTATUS=constants.STATUS_QOS_INACTIVATED)
        policy[list_key] = '["%s"]' % obj_id
        self.qos_policies[policy['ID']] = policy
        self._objects(obj_type)[obj_id]['IOCLASSID'] = policy['ID']
        return Handle(policy, 'qos')

    def activate_deactivate_qos(self, qos_id, enablestatus, vstore_id=None):
        self._record('activate_deactivate_qos', qos_id, enablestatus)
        policy = self.qos_policies[qos_id]
        policy['ENABLESTATUS'] = 'true' if enablestatus else 'false'
        policy['RUNNINGSTATUS'] = (constants.STATUS_QOS_ACTIVE if enablestatus
                                   else constants.STATUS_QOS_INACTIVATED)

    def get_qos_by_id(self, qos_id, vstore_id=None):
        self._record('get_qos_by_id', qos_id)
        return Handle(self.qos_policies.get(qos_id), 'qos')

    def update_qos_policy(self, qos_id, data, vstore_id=None):
        self._record('update_qos_policy', qos_id, data)
        self.qos_policies[qos_id].update(data)

    def delete_qos_policy(self, qos_id, vstore_id=None):
        self._record('delete_qos_policy', qos_id)
        self.qos_policies.pop(qos_id, None)
        for obj in itertools.chain(self.filesystems.values(),
                                   self.luns.values()):
            if obj.get('IOCLASSID') == qos_id:
                del obj['IOCLASSID']


@pytest.fixture
def fake_client():
    return FakeClient()


@pytest.fixture
def backend_conf():
    return {
        'backend_id': 'backend-1',
        'san_address': ['https://192.168.1.10:8088/deviceManager/rest/'],
        'san_product': constants.PRODUCT_V6,
        'protocol': constants.PROTOCOL_NFS,
        'storage_pools': ['pool1'],
        'vstore_name': None,
        'qos': None,
        'workload_type': None,
        'auth_clients': [],
        'auth_users': [],
        'portals': [],
        'alua': {},
    }


@pytest.fixture
def backend_error():
    return exception.BackendBusinessError(data='array refused the request',
                                          error_code=50331651)
