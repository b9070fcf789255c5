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

import functools
import inspect
import json
import sys
import threading

import requests
from oslo_concurrency import lockutils
from oslo_log import log as logging
from requests.adapters import HTTPAdapter

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi.i18n import _


LOG = logging.getLogger(__name__)

Handle = huawei_utils.StorageObjectHandle


def _error_code(result):
    return result['error']['code']


def _assert_result(result, msg_format, *args):
    if _error_code(result) != constants.SUCCESS:
        args += (result,)
        msg = (msg_format + '\nresult: %s.') % args
        LOG.error(msg)
        raise exception.BackendBusinessError(
            data=msg, error_code=_error_code(result),
            description=result['error'].get('description'))


def _vstore_filter(vstore_id):
    return '&vstoreId=%s' % vstore_id if vstore_id else ''


def _with_vstore(data, vstore_id):
    if vstore_id:
        data['vstoreId'] = vstore_id
    return data


class BackendConnectionPool(object):
    """Connection semaphores of every storage backend of the process.

    One bounded semaphore per backend id, created on first use and shared by
    every client talking to that backend. Acquiring a slot blocks without
    timeout until another request of the same backend finishes.
    """

    def __init__(self, max_storage_threads=constants.MAX_STORAGE_THREADS):
        self.max_storage_threads = max_storage_threads
        self._lock = threading.Lock()
        self._semaphores = {}

    def get_semaphore(self, backend_id,
                      parallel_count=constants.DEFAULT_PARALLEL_COUNT):
        with self._lock:
            semaphore = self._semaphores.get(backend_id)
            if semaphore is None:
                size = min(parallel_count, self.max_storage_threads)
                LOG.info('Create connection semaphore of backend %s with '
                         'size %s.', backend_id, size)
                semaphore = threading.BoundedSemaphore(size)
                self._semaphores[backend_id] = semaphore
            return semaphore

    def remove(self, backend_id):
        with self._lock:
            if self._semaphores.pop(backend_id, None) is not None:
                LOG.info('Remove connection semaphore of backend %s.',
                         backend_id)

    def close(self):
        with self._lock:
            self._semaphores.clear()

    def __contains__(self, backend_id):
        return backend_id in self._semaphores

    def __len__(self):
        return len(self._semaphores)


def obj_operation_wrapper(func):
    @functools.wraps(func)
    def wrapped(self, url_format=None, **kwargs):
        url = self._obj_url
        if url_format:
            url += url_format % kwargs

        return func(self, url, **kwargs)

    return wrapped


class CommonObject(object):
    def __init__(self, client):
        self.client = client

    @obj_operation_wrapper
    def post(self, url, **kwargs):
        return self.client.post(url, **kwargs)

    @obj_operation_wrapper
    def put(self, url, **kwargs):
        return self.client.put(url, **kwargs)

    @obj_operation_wrapper
    def delete(self, url, **kwargs):
        return self.client.delete(url, **kwargs)

    @obj_operation_wrapper
    def get(self, url, **kwargs):
        return self.client.get(url, **kwargs)

    @staticmethod
    def _get_info_by_range(func, params=None):
        range_start = 0
        info_list = []
        while True:
            range_end = range_start + constants.GET_PATCH_NUM
            info = func(range_start, range_end, params)
            info_list += info
            if len(info) < constants.GET_PATCH_NUM:
                break

            range_start += constants.GET_PATCH_NUM
        return info_list

    def _create_with_retry(self, result, get_func, obj_desc):
        """Resolve a create result that answered busy or timeout."""
        if _error_code(result) in constants.RETRY_ERROR_CODES:
            info = huawei_utils.retry_get_after_busy(get_func, obj_desc)
            if info:
                return info
        return None


class FileSystem(CommonObject):
    _obj_url = '/filesystem'

    def get_filesystem_by_name(self, name, vstore_id=None):
        result = self.get('?filter=NAME::%(name)s&range=[0-100]%(vs)s',
                          name=name, vs=_vstore_filter(vstore_id))
        _assert_result(result, 'Get filesystem by name %s error.', name)
        return Handle.from_data(result.get('data'), 'filesystem')

    def get_filesystem_by_id(self, fs_id, vstore_id=None):
        result = self.get('/%(id)s?%(vs)s', id=fs_id,
                          vs=_vstore_filter(vstore_id).lstrip('&'))
        if _error_code(result) == constants.FILESYSTEM_NOT_EXIST:
            LOG.info('Filesystem %s does not exist.', fs_id)
            return Handle(obj_name='filesystem')
        _assert_result(result, 'Get filesystem by id %s error.', fs_id)
        return Handle.from_data(result.get('data'), 'filesystem')

    def create_filesystem(self, fs_params, vstore_id=None):
        data = _with_vstore(dict(fs_params), vstore_id)
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('Filesystem %s to create already exists.',
                     data['NAME'])
            fs_info = self.get_filesystem_by_name(data['NAME'], vstore_id)
            if fs_info:
                return fs_info

        fs_info = self._create_with_retry(
            result,
            lambda: self.get_filesystem_by_name(data['NAME'], vstore_id),
            'filesystem %s' % data['NAME'])
        if fs_info:
            return fs_info

        _assert_result(result, 'Create filesystem %s error.', data)
        return Handle.from_data(result.get('data'), 'filesystem')

    def create_clone_filesystem(self, name, parent_fs_id, description='',
                                vstore_id=None):
        data = {
            "NAME": name,
            "PARENTFILESYSTEMID": parent_fs_id,
            "DESCRIPTION": description,
        }
        _with_vstore(data, vstore_id)
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            fs_info = self.get_filesystem_by_name(name, vstore_id)
            if fs_info:
                return fs_info
        _assert_result(result, 'Clone filesystem %s from %s error.',
                       name, parent_fs_id)
        return Handle.from_data(result.get('data'), 'filesystem')

    def split_clone_filesystem(self, fs_id, split_speed,
                               delete_parent_snapshot=False, vstore_id=None):
        data = {
            "ID": fs_id,
            "SPLITENABLE": True,
            "SPLITSPEED": split_speed,
            "ISDELETEPARENTSNAPSHOT": delete_parent_snapshot,
        }
        _with_vstore(data, vstore_id)
        result = self.client.put('/filesystem_split_switch', data=data)
        _assert_result(result, 'Split clone filesystem %s error.', fs_id)

    def delete_filesystem(self, fs_id, vstore_id=None):
        data = _with_vstore({"ID": fs_id}, vstore_id)
        result = self.delete(data=data)
        if _error_code(result) == constants.FILESYSTEM_NOT_EXIST:
            LOG.warning('Filesystem %s to delete not exist.', fs_id)
            return
        _assert_result(result, 'Delete filesystem %s error.', fs_id)

    def update_filesystem(self, fs_id, data, vstore_id=None):
        data = _with_vstore(dict(data), vstore_id)
        result = self.put('/%(id)s', id=fs_id, data=data)
        _assert_result(result, 'Update filesystem %s with %s error.',
                       fs_id, data)

    def extend_filesystem(self, fs_id, new_capacity, vstore_id=None):
        data = _with_vstore({"CAPACITY": new_capacity}, vstore_id)
        result = self.put('/%(id)s', id=fs_id, data=data)
        _assert_result(result, 'Extend filesystem %s to %s error.',
                       fs_id, new_capacity)


class NfsShare(CommonObject):
    _obj_url = '/NFSHARE'

    def get_nfs_share_by_path(self, share_path, vstore_id=None):
        result = self.get('?filter=SHAREPATH::%(path)s&range=[0-100]%(vs)s',
                          path=share_path, vs=_vstore_filter(vstore_id))
        _assert_result(result, 'Get nfs share by path %s error.', share_path)
        return Handle.from_data(result.get('data'), 'nfs share')

    def create_nfs_share(self, share_path, fs_id, description='',
                         vstore_id=None):
        data = {
            "SHAREPATH": share_path,
            "FSID": fs_id,
            "DESCRIPTION": description,
        }
        _with_vstore(data, vstore_id)
        result = self.post(data=data)
        if _error_code(result) in (constants.SHARE_ALREADY_EXIST,
                                   constants.SHARE_PATH_ALREADY_EXIST):
            LOG.info('Nfs share %s already exists while creating.',
                     share_path)
            return self.get_nfs_share_by_path(share_path, vstore_id)

        share = self._create_with_retry(
            result,
            lambda: self.get_nfs_share_by_path(share_path, vstore_id),
            'nfs share %s' % share_path)
        if share:
            return share

        _assert_result(result, 'Create nfs share %s error.', data)
        return Handle.from_data(result.get('data'), 'nfs share')

    def delete_nfs_share(self, share_id, vstore_id=None):
        data = _with_vstore({}, vstore_id)
        result = self.delete('/%(id)s', id=share_id, data=data)
        if _error_code(result) in (constants.SHARE_NOT_EXIST,
                                   constants.NFS_SHARE_NOT_EXIST):
            LOG.warning('Nfs share %s to delete not exist.', share_id)
            return
        _assert_result(result, 'Delete nfs share %s error.', share_id)


class NfsShareAuthClient(CommonObject):
    _obj_url = '/NFS_SHARE_AUTH_CLIENT'

    def allow_nfs_share_access(self, share_id, client_name,
                               access_val=constants.ACCESS_NFS_RW,
                               sync=constants.NFS_SYNC,
                               all_squash=constants.NFS_NO_ALL_SQUASH,
                               root_squash=constants.NFS_NO_ROOT_SQUASH,
                               vstore_id=None):
        data = {
            "NAME": client_name,
            "PARENTID": share_id,
            "ACCESSVAL": access_val,
            "SYNC": sync,
            "ALLSQUASH": all_squash,
            "ROOTSQUASH": root_squash,
        }
        _with_vstore(data, vstore_id)
        result = self.post(data=data)
        if _error_code(result) == constants.CLIENT_ALREADY_EXIST:
            LOG.info('Nfs client %s of share %s already exists.',
                     client_name, share_id)
            return
        _assert_result(result, 'Allow nfs share %s access for %s error.',
                       share_id, client_name)

    def _get_nfs_share_access_range(self, start, end, params):
        share_id, vstore_id = params
        result = self.get('?filter=PARENTID::%(id)s&range=[%(start)s-%(end)s]'
                          '%(vs)s', id=share_id, start=start, end=end,
                          vs=_vstore_filter(vstore_id))
        _assert_result(result, 'Get access of nfs share %s error.', share_id)
        return result.get('data', [])

    def get_nfs_share_accesses(self, share_id, vstore_id=None):
        return self._get_info_by_range(self._get_nfs_share_access_range,
                                       (share_id, vstore_id))

    def delete_nfs_share_access(self, access_id, vstore_id=None):
        data = _with_vstore({}, vstore_id)
        result = self.delete('/%(id)s', id=access_id, data=data)
        if _error_code(result) == constants.OBJECT_NOT_EXIST:
            LOG.warning('Nfs share access %s to delete not exist.',
                        access_id)
            return
        _assert_result(result, 'Delete nfs share access %s error.',
                       access_id)


class DataTurboShare(CommonObject):
    _obj_url = '/api/v2/dataturbo/share'

    def get_dataturbo_share_by_path(self, share_path, vstore_id=None):
        result = self.get('?filter=sharePath::%(path)s&range=[0-100]%(vs)s',
                          path=share_path, vs=_vstore_filter(vstore_id))
        _assert_result(result, 'Get DataTurbo share by path %s error.',
                       share_path)
        for share in result.get('data') or []:
            if share.get('sharePath') == share_path:
                return Handle(share, 'dataturbo share')
        return Handle(obj_name='dataturbo share')

    def create_dataturbo_share(self, share_path, fs_id, description='',
                               vstore_id=None):
        data = {
            "sharePath": share_path,
            "fsId": fs_id,
            "description": description,
        }
        _with_vstore(data, vstore_id)
        result = self.post(data=data)
        if _error_code(result) in (constants.SHARE_ALREADY_EXIST,
                                   constants.SHARE_PATH_ALREADY_EXIST):
            LOG.info('DataTurbo share %s already exists while creating.',
                     share_path)
            return self.get_dataturbo_share_by_path(share_path, vstore_id)
        _assert_result(result, 'Create DataTurbo share %s error.', data)
        return Handle.from_data(result.get('data'), 'dataturbo share')

    def delete_dataturbo_share(self, share_id, vstore_id=None):
        data = _with_vstore({}, vstore_id)
        result = self.delete('/%(id)s', id=share_id, data=data)
        if _error_code(result) == constants.SHARE_NOT_EXIST:
            LOG.info('DataTurbo share %s does not exist while deleting.',
                     share_id)
            return
        _assert_result(result, 'Delete DataTurbo share %s error.', share_id)


class DataTurboShareUser(CommonObject):
    _obj_url = '/api/v2/dataturbo/share/user'

    def add_dataturbo_share_user(self, user_name, share_id,
                                 permission=constants.DATATURBO_PERMISSION_RW,
                                 vstore_id=None):
        data = {
            "userName": user_name,
            "shareId": share_id,
            "permission": permission,
        }
        _with_vstore(data, vstore_id)
        result = self.post(data=data)
        _assert_result(result, 'Add user %s to DataTurbo share %s error.',
                       user_name, share_id)


class StoragePool(CommonObject):
    _obj_url = '/storagepool'

    def _get_pools_range(self, start, end, params):
        result = self.get('?range=[%(start)s-%(end)s]', start=start, end=end)
        _assert_result(result, 'Query storage pools error.')
        return result.get('data', [])

    def get_all_pools(self):
        return self._get_info_by_range(self._get_pools_range)

    def get_pool_by_name(self, pool_name):
        result = self.get('?filter=NAME::%(name)s&range=[0-100]',
                          name=pool_name)
        _assert_result(result, 'Query storage pool by name %s error.',
                       pool_name)
        return Handle.from_data(result.get('data'), 'storage pool')


class VStore(CommonObject):
    _obj_url = '/vstore'

    def get_vstore_by_name(self, name):
        result = self.get('?filter=NAME::%(name)s', name=name)
        _assert_result(result, 'Get vstore by name %s error.', name)
        return Handle.from_data(result.get('data'), 'vstore')


class IOClass(CommonObject):
    _obj_url = '/ioclass'

    def create_qos_policy(self, name, obj_type, obj_id, qos, start_time,
                          vstore_id=None):
        data = {
            "NAME": name,
            "SCHEDULEPOLICY": constants.QOS_SCHEDULE_POLICY,
            "SCHEDULESTARTTIME": start_time,
            "STARTTIME": constants.QOS_START_TIME,
            "DURATION": constants.QOS_DURATION,
        }
        if obj_type == constants.FILESYSTEM_TYPE:
            data["FSLIST"] = [obj_id]
        else:
            data["LUNLIST"] = [obj_id]
        data.update(qos)
        _with_vstore(data, vstore_id)

        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('QoS policy %s already exists while creating.', name)
            return self.get_qos_by_name(name, vstore_id)
        _assert_result(result, 'Create QoS policy %s error.', data)
        return Handle.from_data(result.get('data'), 'qos')

    def get_qos_by_name(self, name, vstore_id=None):
        result = self.get('?filter=NAME::%(name)s%(vs)s', name=name,
                          vs=_vstore_filter(vstore_id))
        _assert_result(result, 'Get QoS policy by name %s error.', name)
        return Handle.from_data(result.get('data'), 'qos')

    def get_qos_by_id(self, qos_id, vstore_id=None):
        result = self.get('/%(id)s?%(vs)s', id=qos_id,
                          vs=_vstore_filter(vstore_id).lstrip('&'))
        if _error_code(result) == constants.OBJECT_NOT_EXIST:
            LOG.info('QoS policy %s does not exist.', qos_id)
            return Handle(obj_name='qos')
        _assert_result(result, 'Get QoS policy %s error.', qos_id)
        return Handle.from_data(result.get('data'), 'qos')

    def activate_deactivate_qos(self, qos_id, enablestatus, vstore_id=None):
        """Activate or deactivate QoS.

        enablestatus: true (activate)
        enablestatus: false (deactivate)
        """
        data = {
            "ID": qos_id,
            "ENABLESTATUS": enablestatus
        }
        _with_vstore(data, vstore_id)
        result = self.put('/active', data=data)
        _assert_result(result, 'Change QoS %s to status %s error.',
                       qos_id, enablestatus)

    def update_qos_policy(self, qos_id, data, vstore_id=None):
        data = _with_vstore(dict(data), vstore_id)
        result = self.put('/%(id)s', id=qos_id, data=data)
        _assert_result(result, 'Update QoS policy %s with %s error.',
                       qos_id, data)

    def delete_qos_policy(self, qos_id, vstore_id=None):
        data = _with_vstore({}, vstore_id)
        result = self.delete('/%(id)s', id=qos_id, data=data)
        if _error_code(result) == constants.OBJECT_NOT_EXIST:
            LOG.warning('QoS policy %s to delete not exist.', qos_id)
            return
        _assert_result(result, 'Delete QoS policy %s error.', qos_id)


class Lun(CommonObject):
    _obj_url = '/lun'

    def create_lun(self, lun_params):
        result = self.post(data=lun_params)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('LUN %s to create already exists.', lun_params['NAME'])
            lun_info = self.get_lun_info_by_name(lun_params['NAME'])
            if lun_info:
                return lun_info

        lun_info = self._create_with_retry(
            result, lambda: self.get_lun_info_by_name(lun_params['NAME']),
            'lun %s' % lun_params['NAME'])
        if lun_info:
            return lun_info

        _assert_result(result, 'Create lun %s error.', lun_params)
        return Handle.from_data(result.get('data'), 'lun')

    def delete_lun(self, lun_id):
        result = self.delete('/%(lun)s', lun=lun_id)
        if _error_code(result) == constants.LUN_NOT_EXIST:
            LOG.warning("LUN %s to delete does not exist.", lun_id)
            return
        _assert_result(result, 'Delete lun %s error.', lun_id)

    def get_lun_info_by_name(self, name):
        result = self.get('?filter=NAME::%(name)s&range=[0-100]', name=name)
        _assert_result(result, 'Get lun info by name %s error.', name)
        return Handle.from_data(result.get('data'), 'lun')

    def get_lun_info_by_id(self, lun_id):
        result = self.get("/%(id)s", id=lun_id)
        if _error_code(result) == constants.LUN_NOT_EXIST:
            return Handle(obj_name='lun')
        _assert_result(result, 'Get lun info by id %s error.', lun_id)
        return Handle.from_data(result.get('data'), 'lun')

    def update_lun(self, lun_id, data):
        result = self.put('/%(id)s', id=lun_id, data=data)
        _assert_result(result, 'Update lun %s properties %s error.',
                       lun_id, data)

    def extend_lun(self, lun_id, new_size):
        data = {
            'ID': lun_id,
            'CAPACITY': new_size
        }
        result = self.put('/expand', data=data)
        _assert_result(result, 'Extend lun %s capacity error.', lun_id)

    def get_lun_host_lun_id(self, host_id, lun_info):
        result = self.get(
            "/associate?ASSOCIATEOBJTYPE=21&ASSOCIATEOBJID=%(id)s"
            "&filter=NAME::%(name)s"
            "&selectFields=ID,NAME,ASSOCIATEMETADATA,WWN",
            id=host_id, name=lun_info['NAME'])
        _assert_result(result, 'Get lun info related to host %s error.',
                       host_id)

        for item in result.get('data', []):
            if lun_info['ID'] == item['ID']:
                metadata = json.loads(item['ASSOCIATEMETADATA'])
                return str(metadata['HostLUNID'])
        return None


class Host(CommonObject):
    _obj_url = '/host'

    def get_host_by_name(self, host_name):
        result = self.get('?filter=NAME::%(name)s&range=[0-100]',
                          name=host_name)
        _assert_result(result, 'Get host by name %s error.', host_name)
        return Handle.from_data(result.get('data'), 'host')

    def create_host(self, host_name, description=''):
        data = {
            "NAME": host_name,
            "OPERATIONSYSTEM": "0",
            "DESCRIPTION": description
        }
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('Host %s to create already exists.', host_name)
            return self.get_host_by_name(host_name)

        _assert_result(result, 'Add host %s error.', host_name)
        return Handle.from_data(result.get('data'), 'host')

    def associate_roce_initiator_to_host(self, host_nqn, host_id):
        data = {
            "ASSOCIATEOBJTYPE": constants.ROCE_INITIATOR_TYPE,
            "ID": host_id,
            "ASSOCIATEOBJID": host_nqn
        }
        result = self.put('/create_associate', data=data)
        _assert_result(result, 'Add initiator %s to host %s error.',
                       huawei_utils.mask_initiator_sensitive_info(host_nqn),
                       host_id)


class HostGroup(CommonObject):
    _obj_url = '/hostgroup'

    def get_hostgroup_by_name(self, name):
        result = self.get('?filter=NAME::%(name)s', name=name)
        _assert_result(result, 'Get hostgroup by %s error.', name)
        return Handle.from_data(result.get('data'), 'hostgroup')

    def create_hostgroup(self, name):
        data = {'NAME': name}
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('Hostgroup %s to create already exists.', name)
            return self.get_hostgroup_by_name(name)
        _assert_result(result, 'Create hostgroup %s error.', name)
        return Handle.from_data(result.get('data'), 'hostgroup')

    def associate_host_to_hostgroup(self, hostgroup_id, host_id):
        data = {
            "ID": hostgroup_id,
            "ASSOCIATEOBJTYPE": constants.HOST_TYPE,
            "ASSOCIATEOBJID": host_id
        }
        result = self.post('/associate', data=data)
        if _error_code(result) == constants.HOST_ALREADY_IN_HOSTGROUP:
            LOG.info('Object %(id)s already in hostgroup %(group)s.',
                     {'id': host_id, 'group': hostgroup_id})
            return
        _assert_result(result, 'Associate host %s to hostgroup %s error.',
                       host_id, hostgroup_id)

    def get_associated_hostgroups(self, obj_type, obj_id):
        result = self.get('/associate?ASSOCIATEOBJTYPE=%(type)s&'
                          'ASSOCIATEOBJID=%(id)s', type=obj_type, id=obj_id)
        _assert_result(result, 'Get hostgroups associated to %s %s error.',
                       obj_type, obj_id)
        return result.get('data') or []
        if _error_code(result) == constants.HOSTGROUP_NOT_EXIST:
            LOG.info('Hostgroup %s to delete not exist.', hostgroup_id)
            return
        _assert_result(result, 'Delete hostgroup %s error.', hostgroup_id)


class LunGroup(CommonObject):
    _obj_url = '/lungroup'

    def get_lungroup_by_name(self, lungroup_name):
        result = self.get('?filter=NAME::%(name)s', name=lungroup_name)
        _assert_result(result, 'Get lungroup info by name %s error.',
                       lungroup_name)
        return Handle.from_data(result.get('data'), 'lungroup')

    def create_lungroup(self, lungroup_name):
        data = {
            "APPTYPE": '0',
            "NAME": lungroup_name
        }
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('Lungroup %s to create already exists.', lungroup_name)
            return self.get_lungroup_by_name(lungroup_name)

        _assert_result(result, 'Create lungroup %s error.', lungroup_name)
        return Handle.from_data(result.get('data'), 'lungroup')

    def associate_lun_to_lungroup(self, lungroup_id, lun_id):
        data = {
            "ID": lungroup_id,
            "ASSOCIATEOBJTYPE": constants.LUN_OBJ_TYPE,
            "ASSOCIATEOBJID": lun_id
        }
        result = self.post('/associate', data=data)
        if _error_code(result) in (constants.OBJECT_ID_NOT_UNIQUE,
                                   constants.LUN_ALREADY_IN_LUNGROUP):
            LOG.info('Object %(id)s already in lungroup %(group)s.',
                     {'id': lun_id, 'group': lungroup_id})
            return
        _assert_result(result, 'Associate obj %s to lungroup %s error.',
                       lun_id, lungroup_id)

    def remove_lun_from_lungroup(self, lungroup_id, lun_id):
        result = self.delete(
            "/associate?ID=%(lungroup_id)s&ASSOCIATEOBJTYPE=%(obj_type)s&"
            "ASSOCIATEOBJID=%(obj_id)s", lungroup_id=lungroup_id,
            obj_id=lun_id, obj_type=constants.LUN_OBJ_TYPE)
        if _error_code(result) == constants.OBJECT_NOT_EXIST:
            LOG.warning('LUN %(lun)s not exist in lungroup %(gp)s.',
                        {'lun': lun_id, 'gp': lungroup_id})
            return
        _assert_result(result, 'Remove lun %s from lungroup %s error.',
                       lun_id, lungroup_id)

    def get_associated_lungroups(self, obj_type, obj_id):
        result = self.get('/associate?ASSOCIATEOBJTYPE=%(type)s&'
                          'ASSOCIATEOBJID=%(id)s', type=obj_type, id=obj_id)
        _assert_result(result, 'Get lungroups associated to %s %s error.',
                       obj_type, obj_id)
        return result.get('data') or []


class MappingView(CommonObject):
    _obj_url = '/mappingview'

    def get_mappingview_by_name(self, name):
        result = self.get('?filter=NAME::%(name)s&range=[0-100]', name=name)
        _assert_result(result, 'Find mapping view by name %s error', name)
        return Handle.from_data(result.get('data'), 'mappingview')

    def create_mappingview(self, name):
        data = {"NAME": name}
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_NAME_ALREADY_EXIST:
            LOG.info('Mappingview %s to create already exists.', name)
            return self.get_mappingview_by_name(name)
        _assert_result(result, 'Create mappingview by name %s error.', name)
        return Handle.from_data(result.get('data'), 'mappingview')

    def _associate_group_to_mappingview(self, view_id, group_id, group_type):
        data = {
            "ASSOCIATEOBJTYPE": group_type,
            "ASSOCIATEOBJID": group_id,
            "ID": view_id
        }
        result = self.put('/create_associate', data=data)
        if _error_code(result) in (constants.HOSTGROUP_ALREADY_IN_MAPPINGVIEW,
                                   constants.LUNGROUP_ALREADY_IN_MAPPINGVIEW):
            LOG.warning('Group %(group_id)s of type %(type)s already exist '
                        'in mappingview %(view_id)s.',
                        {'group_id': group_id, 'type': group_type,
                         'view_id': view_id})
            return
        _assert_result(result, 'Associate group %s to mappingview %s error.',
                       group_id, view_id)

    def associate_hostgroup_to_mappingview(self, view_id, hostgroup_id):
        self._associate_group_to_mappingview(view_id, hostgroup_id,
                                             constants.HOSTGROUP_TYPE)

    def associate_lungroup_to_mappingview(self, view_id, lungroup_id):
        self._associate_group_to_mappingview(view_id, lungroup_id,
                                             constants.LUNGROUP_TYPE)
        if _error_code(result) == constants.MAPPINGVIEW_NOT_EXIST:
            LOG.warning('Mappingview %s to delete not exist.', view_id)
            return
        _assert_result(result, 'Delete mappingview %s error.', view_id)


class IscsiInitiator(CommonObject):
    _obj_url = '/iscsi_initiator'

    def get_iscsi_initiator(self, initiator):
        result = self.get('?filter=ID::%(id)s', id=initiator)
        _assert_result(result, 'Get iscsi initiator %s error.',
                       huawei_utils.mask_initiator_sensitive_info(initiator))
        return Handle.from_data(result.get('data'), 'iscsi initiator')

    def add_iscsi_initiator(self, initiator):
        data = {constants.ID_UPPER: initiator}
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_ID_NOT_UNIQUE:
            LOG.info('iscsi initiator %s already exists.',
                     huawei_utils.mask_initiator_sensitive_info(initiator))
            return self.get_iscsi_initiator(initiator)
        _assert_result(result, 'Add iscsi initiator %s error.',
                       huawei_utils.mask_initiator_sensitive_info(initiator))
        return Handle.from_data(result.get('data'), 'iscsi initiator')

    def associate_iscsi_initiator_to_host(self, initiator, host_id):
        data = {
            "PARENTTYPE": constants.HOST_TYPE,
            "PARENTID": host_id,
        }
        result = self.put('/%(ini)s', data=data, ini=initiator)
        _assert_result(result, 'Add initiator %s to host %s error.',
                       huawei_utils.mask_initiator_sensitive_info(initiator),
                       host_id)

    def update_iscsi_initiator(self, initiator, alua_info):
        result = self.put('/%(ini)s', data=dict(alua_info), ini=initiator)
        _assert_result(result, 'Update iscsi initiator %s alua error.',
                       huawei_utils.mask_initiator_sensitive_info(initiator))


class FCInitiator(CommonObject):
    _obj_url = '/fc_initiator'

    def get_fc_initiator(self, wwn):
        result = self.get("/%(wwn)s", wwn=wwn)
        if _error_code(result) in (constants.OBJECT_NOT_EXIST,
                                   constants.ERROR_PARAMETER_ERROR):
            return Handle(obj_name='fc initiator')
        _assert_result(result, 'Get fc initiator %s error.',
                       huawei_utils.mask_initiator_sensitive_info(wwn))
        return Handle.from_data(result.get('data'), 'fc initiator')

    def associate_fc_initiator_to_host(self, wwn, host_id):
        data = {
            "PARENTTYPE": 21,
            "PARENTID": host_id,
        }
        result = self.put('/%(id)s', data=data, id=wwn)
        _assert_result(result, 'Add FC initiator %s to host %s error.',
                       huawei_utils.mask_initiator_sensitive_info(wwn),
                       host_id)

    def update_fc_initiator(self, wwn, alua_info):
        result = self.put('/%(id)s', data=dict(alua_info), id=wwn)
        _assert_result(result, 'Update FC initiator %s alua error.',
                       huawei_utils.mask_initiator_sensitive_info(wwn))


class RoCEInitiator(CommonObject):
    _obj_url = '/NVMe_over_RoCE_initiator'

    def get_roce_initiator(self, host_nqn):
        result = self.get('?filter=ID::%(obj_id)s', obj_id=host_nqn)
        if _error_code(result) == constants.OBJECT_NOT_EXIST:
            return Handle(obj_name='roce initiator')
        _assert_result(result, 'Get roce initiator %s error.',
                       huawei_utils.mask_initiator_sensitive_info(host_nqn))
        return Handle.from_data(result.get('data'), 'roce initiator')

    def add_roce_initiator(self, host_nqn):
        data = {constants.ID_UPPER: host_nqn}
        result = self.post(data=data)
        if _error_code(result) == constants.OBJECT_ID_NOT_UNIQUE:
            LOG.info('roce initiator %s already exists.',
                     huawei_utils.mask_initiator_sensitive_info(host_nqn))
            return self.get_roce_initiator(host_nqn)
        _assert_result(result, 'Add roce initiator %s error.',
                       huawei_utils.mask_initiator_sensitive_info(host_nqn))
        return Handle.from_data(result.get('data'), 'roce initiator')


class HostLink(CommonObject):
    _obj_url = '/host_link'

    def get_fc_target_wwpns(self, ini):
        result = self.get('?INITIATOR_TYPE=%(type)s&'
                          'INITIATOR_PORT_WWN=%(wwn)s',
                          type=constants.INITIATOR_TYPE_FC, wwn=ini)
        _assert_result(result, 'Get FC target wwn for initiator %s error.',
                       huawei_utils.mask_initiator_sensitive_info(ini))
        return [fc['TARGET_PORT_WWN'] for fc in result.get('data') or []]


class IscsiTgtPort(CommonObject):
    _obj_url = '/iscsi_tgt_port'

    def get_iscsi_tgt_ports(self):
        result = self.get()
        _assert_result(result, "Get iscsi target ports info error.")
        return result.get('data') or []


class LogicalPort(CommonObject):
    _obj_url = '/lif'

    def get_roce_portal_by_ip(self, ip):
        result = self.get('?filter=IPV4ADDR::%(ip)s', ip=ip)
        _assert_result(result, 'Get logical port by ip %s error.', ip)
        return Handle.from_data(result.get('data'), 'logical port')


class HyperMetroDomain(CommonObject):
    _obj_url = '/HyperMetroDomain'

    def get_hypermetro_domain_id(self, domain_name):
        domain_list = self._get_info_by_range(self._get_hypermetro_domain)
        for item in domain_list:
            if domain_name == item.get('NAME'):
                return item.get('ID')
        return None

    def _get_hypermetro_domain(self, start, end, params):
        result = self.get("?range=[%(start)s-%(end)s]", start=start, end=end)
        _assert_result(result, "Get hyper metro domains info error.")
        return result.get('data', [])


class HyperMetroPair(CommonObject):
    _obj_url = '/HyperMetroPair'

    def create_hypermetro(self, hcp_param):
        result = self.post(data=hcp_param)
        if _error_code(result) == constants.HYPERMETRO_ALREADY_EXIST:
            hypermetro_info = self.get_hypermetro_by_local_obj_id(
                hcp_param["LOCALOBJID"])
            if hypermetro_info:
                return hypermetro_info

        hypermetro_info = self._create_with_retry(
            result, lambda: self.get_hypermetro_by_local_obj_id(
                hcp_param["LOCALOBJID"]),
            'hypermetro of %s' % hcp_param["LOCALOBJID"])
        if hypermetro_info:
            return hypermetro_info

        _assert_result(result, 'Create hypermetro pair %s error.', hcp_param)
        return Handle.from_data(result.get('data'), 'hypermetro')

    def delete_hypermetro(self, metro_id):
        result = self.delete('/%(id)s', id=metro_id)
        if _error_code(result) == constants.HYPERMETRO_NOT_EXIST:
            LOG.warning('Hypermetro %s to delete not exist.', metro_id)
            return
        _assert_result(result, 'Delete hypermetro %s error.', metro_id)

    def sync_hypermetro(self, metro_id):
        data = {"ID": metro_id}
        result = self.put('/synchronize_hcpair', data=data)
        _assert_result(result, 'Sync hypermetro %s error.', metro_id)

    def stop_hypermetro(self, metro_id):
        data = {"ID": metro_id}
        result = self.put('/disable_hcpair', data=data)
        _assert_result(result, 'Stop hypermetro %s error.', metro_id)

    def get_hypermetro_by_id(self, metro_id):
        result = self.get('?filter=ID::%(id)s', id=metro_id)
        _assert_result(result, 'Get hypermetro by id %s error.', metro_id)
        return Handle.from_data(result.get('data'), 'hypermetro')

    def get_hypermetro_by_local_obj_id(self, obj_id):
        result = self.get('?filter=LOCALOBJID::%(id)s', id=obj_id)
        _assert_result(result, 'Get hypermetro by local object id %s error.',
                       obj_id)
        return Handle.from_data(result.get('data'), 'hypermetro')


class ReplicationPair(CommonObject):
    _obj_url = '/REPLICATIONPAIR'

    def create_replication_pair(self, pair_params):
        result = self.post(data=pair_params)
        _assert_result(result, 'Create replication %s error.', pair_params)
        return Handle.from_data(result.get('data'), 'replication pair')

    def get_replication_pair_by_id(self, pair_id):
        result = self.get('/%(id)s', id=pair_id)
        if _error_code(result) == constants.REPLICATION_PAIR_NOT_EXIST:
            return Handle(obj_name='replication pair')
        _assert_result(result, 'Get replication pair %s error.', pair_id)
        return Handle.from_data(result.get('data'), 'replication pair')

    def get_replication_pair_by_localres_name(self, local_res):
        result = self.get('?filter=LOCALRESNAME::%(name)s', name=local_res)
        _assert_result(result, 'Get replication pair by local resource '
                               'name %s error.', local_res)
        return Handle.from_data(result.get('data'), 'replication pair')

    def split_replication_pair(self, pair_id):
        data = {"ID": pair_id}
        result = self.put('/split', data=data)
        _assert_result(result, 'Split replication pair %s error.', pair_id)

    def sync_replication_pair(self, pair_id):
        data = {"ID": pair_id}
        result = self.put('/sync', data=data)
        _assert_result(result, 'Sync replication pair %s error.', pair_id)

    def delete_replication_pair(self, pair_id, force=False):
        if force:
            data = {"ISLOCALDELETE": force}
            result = self.delete('/%(id)s', id=pair_id, data=data)
        else:
            result = self.delete('/%(id)s', id=pair_id)

        if _error_code(result) == constants.REPLICATION_PAIR_NOT_EXIST:
            LOG.warning('Replication pair to delete %s not exist.',
                        pair_id)
            return
        _assert_result(result, 'Delete replication pair %s error.', pair_id)


class RemoteDevice(CommonObject):
    _obj_url = '/remote_device'

    def _get_remote_device_range(self, start, end, params):
        result = self.get('?range=[%(start)s-%(end)s]', start=start, end=end)
        _assert_result(result, 'Get remote devices error.')
        return result.get('data', [])

    def get_remote_device_by_sn(self, sn):
        for device in self._get_info_by_range(self._get_remote_device_range):
            if device.get('SN') == sn:
                return Handle(device, 'remote device')
        return Handle(obj_name='remote device')


class HostNameIgnoringAdapter(HTTPAdapter):
    def cert_verify(self, conn, url, verify, cert):
        conn.assert_hostname = False
        return super(HostNameIgnoringAdapter, self).cert_verify(
            conn, url, verify, cert)


class RestClient(object):
    def __init__(self, config_dict, pool=None):
        self.backend_id = (config_dict.get('backend_id') or
                           config_dict['san_address'][0])
        self.san_address = list(config_dict.get('san_address'))
        self.san_user = config_dict.get('san_user')
        self.san_password = config_dict.get('san_password')
        self.vstore_name = config_dict.get('vstore_name')
        self.ssl_verify = config_dict.get('ssl_cert_verify')
        self.cert_path = config_dict.get('ssl_cert_path')
        self.parallel_count = huawei_utils.get_parallel_count(
            config_dict.get('parallel_count'))

        # To limit the requests concurrently sent to array
        self.pool = pool if pool is not None else BackendConnectionPool()
        self.semaphore = self.pool.get_semaphore(self.backend_id,
                                                 self.parallel_count)

        self._login_url = None
        self._login_device_id = None
        self._session_lock = lockutils.ReaderWriterLock()
        self._session = None
        self._init_object_methods()

        if not self.ssl_verify and hasattr(requests, 'packages'):
            LOG.warning("Suppressing requests library SSL Warnings")
            requests.packages.urllib3.disable_warnings(
                requests.packages.urllib3.exceptions.InsecureRequestWarning)

    def _extract_obj_method(self, obj):
        filter_method_names = ('login', 'get', 'post', 'delete', 'put')

        def prefilter(m):
            return (inspect.ismethod(m) and not inspect.isbuiltin(m) and
                    m.__name__ not in filter_method_names and
                    not m.__name__.startswith('_'))

        members = inspect.getmembers(obj, prefilter)
        for method in members:
            if method[0] in self.__dict__:
                msg = _('Method %s already exists in rest client.'
                        ) % method[0]
                LOG.error(msg)
                raise exception.HuaweiCsiException(msg)

            self.__dict__[method[0]] = method[1]

    def _init_object_methods(self):
        def prefilter(m):
            return (inspect.isclass(m) and issubclass(m, CommonObject) and
                    m is not CommonObject)

        obj_classes = inspect.getmembers(sys.modules.get(__name__), prefilter)
        for cls in obj_classes:
            self._extract_obj_method(cls[1](self))

    def _new_session(self):
        return requests.Session()

    def _init_http_head(self):
        self._session = self._new_session()
        session_headers = {
            "Connection": "keep-alive",
            "Content-Type": "application/json; charset=utf-8"
        }
        self._session.headers.update(session_headers)
        self._session.verify = self.cert_path if self.ssl_verify else False

    def base_call(self, method, url, data=None,
                  timeout=constants.SOCKET_TIMEOUT, log_filter=False):
        """Send one request to the array and decode the response envelope.

        The backend semaphore is held for the whole request. Network level
        failures raise TransportError, an undecodable body raises
        ProtocolError, and a decoded envelope is returned as is whatever its
        error code.
        """
        body = json.dumps(data) if data is not None else None

        with self.semaphore:
            try:
                r = self._session.request(method, url, data=body,
                                          timeout=timeout)
                r.raise_for_status()
            except requests.RequestException as err:
                LOG.error('Request URL: %s, method: %s failed: %s.',
                          url, method, err)
                raise exception.TransportError(url=url, reason=err)

        try:
            result = r.json()
        except ValueError as err:
            raise exception.ProtocolError(url=url, reason=err)

        if (not isinstance(result, dict) or
                not isinstance(result.get('error'), dict) or
                'code' not in result['error']):
            raise exception.ProtocolError(
                url=url, reason='response %s is not in the form of '
                                '{error: {code, description}, data}' % result)

        try:
            result['error']['code'] = int(result['error']['code'])
        except (TypeError, ValueError):
            raise exception.ProtocolError(
                url=url, reason='error code %s is not an integer'
                                % result['error']['code'])

        if not log_filter:
            LOG.info('Response: %s, Response duration time is %s',
                     huawei_utils.mask_dict_sensitive_info(result),
                     r.elapsed.total_seconds() if r.elapsed else None)
        return result

    def call(self, method, url, data=None, timeout=constants.SOCKET_TIMEOUT,
             log_filter=False, **kwargs):
        need_relogin = False

        if not log_filter:
            LOG.info('URL: %s, Method: %s, Data: %s,', url, method,
                     huawei_utils.mask_dict_sensitive_info(data))

        with self._session_lock.read_lock():
            if self._login_url:
                old_token = self._session.headers.get('iBaseToken')
                try:
                    result = self.base_call(method, self._login_url + url,
                                            data, timeout, log_filter)
                except exception.TransportError:
                    LOG.warning('Request URL: %s, method: %s failed at '
                                'first time. Will switch login url and '
                                'retry this request.', url, method)
                    need_relogin = True
                else:
                    if _error_code(result) in constants.RELOGIN_ERROR_CODE:
                        LOG.error("Can't open the recent url, relogin.")
                        need_relogin = True
            else:
                need_relogin = True
                old_token = None

        if need_relogin:
            self._relogin(old_token)
            with self._session_lock.read_lock():
                result = self.base_call(method, self._login_url + url,
                                        data, timeout, log_filter)

        return result

    def _try_login(self, manage_url):
        url = manage_url + "xx/sessions"
        data = {
            "username": self.san_user,
            "password": self.san_password,
            "scope": "0"
        }
        if self.vstore_name:
            data['vstorename'] = self.vstore_name

        result = self.base_call('POST', url, data,
                                timeout=constants.LOGIN_SOCKET_TIMEOUT,
                                log_filter=True)
        code = _error_code(result)
        if code != constants.SUCCESS:
            if code in constants.WRONG_PASSWORD_CODES:
                reason = 'wrong user name or password'
            elif (code in constants.ACCOUNT_LOCKED_CODES or
                  code == constants.ERROR_IP_LOCKED):
                reason = 'account or ip has been locked'
            else:
                reason = result['error']
            msg = _("Failed to login URL %(url)s because of %(reason)s."
                    ) % {"url": url, "reason": reason}
            LOG.error(msg)
            raise exception.AuthError(reason=msg)

        login_data = Handle.from_data(result.get(constants.DATA), 'session')
        self._session.headers['iBaseToken'] = login_data.get_string(
            'iBaseToken')
        self._login_device_id = login_data.get_string('deviceid')
        self._login_url = manage_url + self._login_device_id

        if login_data.get_int64('accountstate') in (
                constants.PWD_EXPIRED_OR_INITIAL):
            self._logout()
            msg = _("Storage password has been expired or initial, "
                    "please change the password.")
            LOG.error(msg)
            raise exception.AuthError(reason=msg)

    def _loop_login(self):
        self._init_http_head()

        unreachable = []
        for url in list(self.san_address):
            manage_url = url if url.endswith('/') else url + '/'
            try:
                self._session.mount(url.lower(), HostNameIgnoringAdapter())
                self._try_login(manage_url)
            except exception.TransportError:
                LOG.warning('Login %s error due to connection failure, '
                            'gonna try another url.', url)
                unreachable.append(url)
            except exception.HuaweiCsiException:
                if self._session:
                    self._session.close()
                self._session = None
                raise
            else:
                # Successful url first, unreachable ones last, so the next
                # login tries the working url before the broken ones.
                others = [u for u in self.san_address
                          if u != url and u not in unreachable]
                self.san_address[:] = [url] + others + unreachable
                LOG.info('Login %s success.', url)
                return

        self._session.close()
        self._session = None

        msg = _("Failed to login storage with all rest URLs.")
        LOG.error(msg)
        raise exception.AuthError(reason=msg)

    def login(self):
        with self._session_lock.write_lock():
            self._loop_login()

    def _relogin(self, old_token):
        with self._session_lock.write_lock():
            if (self._session and
                    self._session.headers.get('iBaseToken') != old_token):
                LOG.info('Relogin has been done by other thread, '
                         'no need relogin again.')
                return

            # Try to logout the original session first
            self._logout()
            self._loop_login()

    def _logout(self):
        if not self._login_url:
            return

        try:
            result = self.base_call('DELETE', "%s/sessions" % self._login_url,
                                    log_filter=True)
        except exception.HuaweiCsiException:
            LOG.exception("Failed to logout session from URL %s.",
                          self._login_url)
        else:
            if _error_code(result) == constants.SUCCESS:
                LOG.info("Succeed to logout session from URL %(url)s.",
                         {"url": self._login_url})
            else:
                LOG.warning("Failed to logout session from URL %(url)s "
                            "because of %(reason)s.",
                            {"url": self._login_url, "reason": result})
        finally:
            if self._session:
                self._session.close()
            self._session = None
            self._login_url = None
            self._login_device_id = None

    def logout(self):
        with self._session_lock.write_lock():
            self._logout()

    @property
    def device_id(self):
        return self._login_device_id

    def get(self, url, **kwargs):
        return self.call('GET', url, **kwargs)

    def post(self, url, data=None, **kwargs):
        return self.call('POST', url, data, **kwargs)

    def put(self, url, data=None, **kwargs):
        return self.call('PUT', url, data, **kwargs)

    def delete(self, url, data=None, **kwargs):
        return self.call('DELETE', url, data, **kwargs)

    def get_array_info(self):
        result = self.get('/system/')
        _assert_result(result, 'Get array info error.')
        return Handle.from_data(result.get('data'), 'system')

    def get_system_utc_time(self):
        result = self.get('/system_utc_time')
        _assert_result(result, 'Get system utc time error.')
        data = Handle.from_data(result.get('data'), 'system utc time')
        return data.get_int64('CMO_SYS_UTC_TIME')

    def get_workload_type_id(self, workload_type_name):
        url = "/workload_type?filter=NAME::%s" % workload_type_name
        result = self.get(url)
        _assert_result(result, 'Get workload type error')

        for item in result.get("data") or []:
            if item.get("NAME") == workload_type_name:
                return item.get("ID")
        return None
