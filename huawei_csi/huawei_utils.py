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

import hashlib
import json
import re
import time

from oslo_log import log as logging
from oslo_utils import excutils
from oslo_utils import strutils
import tenacity as retry_module

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi.i18n import _


LOG = logging.getLogger(__name__)


class StorageObjectHandle(dict):
    """Attribute bag of one remote storage object.

    An empty handle means the object does not exist on the array. Typed
    accessors raise DecodeError instead of returning a value of the wrong
    type.
    """

    def __init__(self, data=None, obj_name='object'):
        super(StorageObjectHandle, self).__init__(data or {})
        self.obj_name = obj_name

    @classmethod
    def from_data(cls, data, obj_name='object'):
        if data is None:
            return cls(obj_name=obj_name)
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            raise exception.DecodeError(field='data', obj=obj_name,
                                        type=type(data).__name__,
                                        value=data)
        return cls(data, obj_name=obj_name)

    @property
    def exists(self):
        return bool(self.get('ID'))

    def has(self, key):
        return self.get(key) not in (None, '')

    def get_string(self, key, default=None):
        value = self.get(key)
        if value is None:
            return default
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise exception.DecodeError(field=key, obj=self.obj_name,
                                        type=type(value).__name__,
                                        value=value)
        return str(value)

    def get_int64(self, key, default=None):
        value = self.get(key)
        if value is None or value == '':
            return default
        if isinstance(value, bool):
            raise exception.DecodeError(field=key, obj=self.obj_name,
                                        type='bool', value=value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, int):
            return value
        if isinstance(value, str) and re.match(r'^-?\d+$', value.strip()):
            return int(value)
        raise exception.DecodeError(field=key, obj=self.obj_name,
                                    type=type(value).__name__, value=value)

    def get_list(self, key):
        """Return a list field, decoding JSON-encoded lists like FSLIST."""
        value = self.get(key)
        if value in (None, ''):
            return []
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            try:
                decoded = json.loads(value)
            except ValueError:
                decoded = None
            if isinstance(decoded, list):
                return decoded
        raise exception.DecodeError(field=key, obj=self.obj_name,
                                    type=type(value).__name__, value=value)


def encode_host_name(name):
    host_name = constants.HOST_NAME_PREFIX + name
    if len(host_name) > constants.MAX_NAME_LENGTH:
        return host_name[:constants.MAX_NAME_LENGTH]
    return host_name


def encode_name(name):
    if len(name) <= constants.MAX_NAME_LENGTH:
        return name
    encoded_name = hashlib.md5(name.encode('utf-8')).hexdigest()
    prefix = name.split('-')[0] + '-'
    postfix = encoded_name[:constants.MAX_NAME_LENGTH - len(prefix)]
    return prefix + postfix


def get_parallel_count(value, default=constants.DEFAULT_PARALLEL_COUNT):
    if value is None or value == '':
        return default

    try:
        count = int(value)
    except (TypeError, ValueError):
        LOG.warning('The max client threads %s is invalid, use default '
                    'value %s.', value, default)
        return default

    if count < constants.MIN_PARALLEL_COUNT:
        LOG.warning('The max client threads %s is less than %s, clamp it.',
                    count, constants.MIN_PARALLEL_COUNT)
        return constants.MIN_PARALLEL_COUNT
    if count > constants.MAX_PARALLEL_COUNT:
        LOG.warning('The max client threads %s is greater than %s, '
                    'clamp it.', count, constants.MAX_PARALLEL_COUNT)
        return constants.MAX_PARALLEL_COUNT
    return count


def wait_for_condition(func, interval, timeout, target=None):
    def _retry_on_result(result):
        return not result

    ret = retry_module.Retrying(
        wait=retry_module.wait_fixed(interval),
        retry=retry_module.retry_if_result(_retry_on_result),
        stop=retry_module.stop_after_delay(timeout)
    )
    try:
        ret(func)
    except retry_module.RetryError:
        target = target or getattr(func, '__name__', 'condition')
        msg = _('Wait for %(target)s timeout after %(timeout)s '
                'seconds.') % {'target': target, 'timeout': timeout}
        LOG.error(msg)
        raise exception.WaitTimeout(timeout=timeout, target=target)


def retry_get_after_busy(get_func, obj_desc,
                         try_times=constants.GET_INFO_RETRY_TIMES,
                         interval=constants.GET_INFO_WAIT_INTERVAL):
    """Look an object up again after its create call timed out.

    The array may finish a create request after answering busy or timeout,
    so poll for the object at a fixed interval before giving up.
    """
    for i in range(try_times):
        time.sleep(interval)
        LOG.info('Create %s timeout, try to get info. The %s time.',
                 obj_desc, i + 1)
        try:
            info = get_func()
        except exception.HuaweiCsiException as err:
            LOG.warning('Get %s error: %s.', obj_desc, err)
            continue

        if info:
            return info
    return None


def wait_lun_online(client, lun_id, wait_interval=None, wait_timeout=None):
    def _lun_online():
        result = client.get_lun_info_by_id(lun_id)
        if not result.exists:
            err_msg = _('LUN %s does not exist.') % lun_id
            LOG.error(err_msg)
            raise exception.NotFound(reason=err_msg)

        if result.get('HEALTHSTATUS') not in (constants.STATUS_HEALTH,
                                              constants.STATUS_INITIALIZE):
            err_msg = _('LUN %s is abnormal.') % lun_id
            LOG.error(err_msg)
            raise exception.BackendBusinessError(data=err_msg)

        if result.get('RUNNINGSTATUS') in (constants.LUN_INITIALIZING,
                                          constants.STATUS_INITIALIZE):
            return False

        return True

    if not wait_interval:
        wait_interval = constants.LUN_ONLINE_WAIT_INTERVAL
    if not wait_timeout:
        wait_timeout = wait_interval * 10

    wait_for_condition(_lun_online, wait_interval, wait_timeout,
                       target='lun %s online' % lun_id)


def wait_fs_split_done(client, fs_id, vstore_id=None,
                       wait_interval=constants.DEFAULT_WAIT_INTERVAL,
                       wait_timeout=constants.DEFAULT_WAIT_TIMEOUT):
    def _split_done():
        fs = client.get_filesystem_by_id(fs_id, vstore_id)
        if fs.get('ISCLONEFS') == 'false':
            return True

        if fs.get_string('HEALTHSTATUS') != constants.STATUS_HEALTH:
            msg = (_('Filesystem %(name)s has the bad health status '
                     '%(status)s.') % {'name': fs.get('NAME'),
                                       'status': fs.get('HEALTHSTATUS')})
            LOG.error(msg)
            raise exception.BackendBusinessError(data=msg)

        split_status = fs.get_string('SPLITSTATUS')
        if split_status in (constants.FS_SPLIT_QUEUING,
                            constants.FS_SPLIT_SPLITTING,
                            constants.FS_SPLIT_NOT_START):
            return False
        if split_status == constants.FS_SPLIT_ABNORMAL:
            msg = (_('Filesystem clone %(name)s split status is '
                     'interrupted.') % {'name': fs.get('NAME')})
            LOG.error(msg)
            raise exception.BackendBusinessError(data=msg)
        return True

    wait_for_condition(_split_done, wait_interval, wait_timeout,
                       target='filesystem %s split' % fs_id)


def find_alua_info(alua_config, host_name):
    """Pick the ALUA settings that apply to a host.

    alua_config is either a flat dict of ALUA attributes or a dict keyed by
    host name regex, where '*' matches any host.
    """
    if not alua_config:
        return {}

    if any(key in constants.ALUA_KEYS for key in alua_config):
        return alua_config

    wildcard = None
    for pattern, info in alua_config.items():
        if pattern == '*':
            wildcard = info
        elif re.search(pattern, host_name or ''):
            return info

    return wildcard or {}


def mask_dict_sensitive_info(data, secret="***"):
    # mask sensitive data in the dictionary
    if not isinstance(data, dict):
        return data

    out = {}
    for key, value in data.items():
        if isinstance(value, dict):
            value = mask_dict_sensitive_info(value, secret=secret)
        elif key in constants.SENSITIVE_KEYS:
            value = secret
        out[key] = value

    return strutils.mask_dict_password(out)


def mask_initiator_sensitive_info(data, sensitive_keys=None, secret="***"):
    if isinstance(data, str):
        if len(data) <= 4:
            return secret
        return data[:2] + secret + data[-2:]

    if isinstance(data, dict):
        out = dict(data)
        for key in sensitive_keys or []:
            if key in out and isinstance(out[key], str):
                out[key] = mask_initiator_sensitive_info(out[key])
        return out

    if isinstance(data, list):
        return [mask_initiator_sensitive_info(item, sensitive_keys, secret)
                for item in data]

    return data


def get_obj_by_name(client, obj_type, name):
    if obj_type == constants.FILESYSTEM_TYPE:
        return client.get_filesystem_by_name(name)
    return client.get_lun_info_by_name(name)


def create_remote_obj(client, obj_type, obj_params, pool_id):
    """Create the peer filesystem or LUN of a pair on the remote array.

    A peer left by an earlier attempt is reused. Return the id of the
    remote object and whether this call created it.
    """
    remote_obj = get_obj_by_name(client, obj_type, obj_params['NAME'])
    if remote_obj.exists:
        LOG.info('Remote %(type)s %(name)s already exists, reuse it.',
                 {'type': obj_type, 'name': obj_params['NAME']})
        return remote_obj.get_string('ID'), False

    params = dict(obj_params)
    params['PARENTID'] = pool_id
    if obj_type == constants.FILESYSTEM_TYPE:
        params.pop('workloadTypeId', None)
        remote_obj = client.create_filesystem(params)
        return remote_obj.get_string('ID'), True

    params.pop('WORKLOADTYPEID', None)
    remote_obj = client.create_lun(params)
    lun_id = remote_obj.get_string('ID')
    try:
        wait_lun_online(client, lun_id)
    except Exception:
        with excutils.save_and_reraise_exception():
            LOG.error('Remote LUN %s is not online, delete it.', lun_id)
            client.delete_lun(lun_id)
    return lun_id, True


def delete_obj(client, obj_type, obj_id):
    if obj_type == constants.FILESYSTEM_TYPE:
        client.delete_filesystem(obj_id)
    else:
        client.delete_lun(obj_id)


def extend_obj(client, obj_type, obj_id, new_size):
    if obj_type == constants.FILESYSTEM_TYPE:
        client.extend_filesystem(obj_id, new_size)
    else:
        client.extend_lun(obj_id, new_size)
