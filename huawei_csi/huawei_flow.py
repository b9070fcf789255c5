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

import json

from oslo_log import log as logging
from oslo_utils import strutils

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi.i18n import _
from huawei_csi import smartx
from huawei_csi import transaction

LOG = logging.getLogger(__name__)


class Volume(object):
    """Result of a volume workflow. Size is in bytes."""

    def __init__(self, name, size=None, id=None, lun_wwn=None):
        self.name = name
        self.size = size
        self.id = id
        self.lun_wwn = lun_wwn

    def get_volume_name(self):
        return self.name

    def to_dict(self):
        return {'name': self.name, 'size': self.size, 'id': self.id,
                'lun_wwn': self.lun_wwn}

    def __repr__(self):
        return 'Volume(%s)' % self.to_dict()


def get_volume_params(params, backend_conf=None):
    """Fill request parameters with the defaults of the backend config."""
    conf = backend_conf or {}
    pools = conf.get('storage_pools') or []
    opts = {
        'protocol': conf.get('protocol'),
        'storagepool': pools[0] if pools else None,
        'product': conf.get('san_product'),
        'vstore_name': conf.get('vstore_name'),
        'qos': conf.get('qos'),
        'workload_type': conf.get('workload_type'),
        'auth_clients': conf.get('auth_clients') or [],
        'auth_users': conf.get('auth_users') or [],
    }
    opts.update((k, v) for k, v in params.items() if v is not None)
    if opts.get('protocol'):
        opts['protocol'] = opts['protocol'].lower()
    return opts


def _invalid(msg):
    LOG.error(msg)
    return exception.InvalidInput(reason=msg)


def _not_found(msg):
    LOG.error(msg)
    return exception.NotFound(reason=msg)


def _obj_type(protocol):
    if protocol in constants.FILE_PROTOCOLS:
        return constants.FILESYSTEM_TYPE
    return constants.LUN_TYPE


def _get_capacity(params, key='capacity'):
    try:
        capacity = int(params.get(key))
    except (TypeError, ValueError):
        raise _invalid(_('Volume capacity %s must be an integer.')
                       % params.get(key))
    if capacity <= 0:
        raise _invalid(_('Volume capacity %s must be positive.') % capacity)
    return capacity


def _share_path(name):
    return constants.NFS_SHARE_PATH_FORMAT % name


class _Workflow(object):
    """Identifiers shared by the steps of one volume operation."""

    def __init__(self, client, params, backend_conf=None, cancel_event=None,
                 hypermetro=None, replication=None):
        self.client = client
        self.params = get_volume_params(params, backend_conf)
        self.cancel_event = cancel_event
        self.hypermetro = hypermetro
        self.replication = replication

        self.name = self.params.get('name')
        self.protocol = self.params.get('protocol')
        self.product = self.params.get('product')
        self.vstore_id = None

        if not self.name:
            raise _invalid(_('Volume name must be specified.'))
        if self.protocol not in constants.PROTOCOLS:
            raise _invalid(_('Invalid protocol %(protocol)s, protocol must '
                             'be in %(valid)s.')
                           % {'protocol': self.protocol,
                              'valid': constants.PROTOCOLS})

        self.obj_type = _obj_type(self.protocol)

    @property
    def is_file(self):
        return self.obj_type == constants.FILESYSTEM_TYPE

    def _new_transaction(self, name):
        return transaction.Transaction(
            name='%s-%s' % (name, self.name), cancel_event=self.cancel_event)

    def _resolve_vstore(self):
        vstore_name = self.params.get('vstore_name')
        if not vstore_name or vstore_name == constants.DEFAULT_VSTORE:
            return

        vstore = self.client.get_vstore_by_name(vstore_name)
        if not vstore.exists:
            raise _not_found(_('vStore %s does not exist.') % vstore_name)
        self.vstore_id = vstore.get_string('ID')

    def _get_base_resource(self):
        if self.is_file:
            return self.client.get_filesystem_by_name(self.name,
                                                      self.vstore_id)
        return self.client.get_lun_info_by_name(self.name)

    def _pair_ids(self, obj, key):
        try:
            return obj.get_list(key)
        except exception.DecodeError:
            LOG.warning('Invalid %(key)s of %(name)s: %(value)s.',
                        {'key': key, 'name': self.name,
                         'value': obj.get(key)})
            return []

    def _get_pair_ids(self, obj):
        metro_ids = self._pair_ids(obj, 'HYPERMETROPAIRIDS')
        replica_ids = self._pair_ids(obj, 'REMOTEREPLICATIONIDS')
        if metro_ids and self.hypermetro is None:
            raise _invalid(_('Volume %s has HyperMetro pairs but no '
                             'HyperMetro backend is configured.') % self.name)
        if replica_ids and self.replication is None:
            raise _invalid(_('Volume %s has replication pairs but no '
                             'replication backend is configured.')
                           % self.name)
        return metro_ids, replica_ids


class Creator(_Workflow):
    """Create a volume, rolling back what it created on failure.

    Steps: resolve ids, create or reuse the filesystem or LUN, create the
    protocol share and grant access for file volumes, create or reuse the
    QoS policy, then the optional HyperMetro and replication pairs.
    """

    def __init__(self, *args, **kwargs):
        super(Creator, self).__init__(*args, **kwargs)
        self.smart_qos = smartx.SmartQos(self.client)

        self.pool_id = None
        self.workload_type_id = None
        self.qos = None
        self.capacity = None

        self.obj_id = None
        self.lun_wwn = None
        self.created_obj_id = None
        self.clone_source = None
        self.share_id = None
        self.created_share_id = None
        self.qos_id = None
        self.created_qos_id = None
        self.removed_accesses = []
        self.kept_clients = set()
        self.hypermetro_info = None
        self.replication_info = None

    def _validate(self):
        self.capacity = _get_capacity(self.params)

        if not self.params.get('storagepool'):
            raise _invalid(_('Storage pool of volume %s is not specified.')
                           % self.name)

        if (self.protocol == constants.PROTOCOL_NFS and
                not self.params.get('auth_clients')):
            raise _invalid(_('authClient must be specified for nfs volume '
                             '%s.') % self.name)

        if (self.protocol == constants.PROTOCOL_DTFS and
                not self.params.get('auth_users')):
            raise _invalid(_('authUser must be specified for dtfs volume '
                             '%s.') % self.name)

        if self.params.get('clone_from') and not self.is_file:
            raise _invalid(_('Clone is only supported for filesystem '
                             'volumes.'))

        qos = self.params.get('qos')
        if qos:
            if isinstance(qos, dict):
                qos = json.dumps(qos)
            self.qos = smartx.get_qos_parameters(self.product, qos)

        if self.params.get('hypermetro') and self.hypermetro is None:
            raise _invalid(_('HyperMetro is requested but no HyperMetro '
                             'backend is configured.'))
        if self.params.get('replication') and self.replication is None:
            raise _invalid(_('Replication is requested but no replication '
                             'backend is configured.'))

    def _resolve_ids(self):
        self._resolve_vstore()

        pool_name = self.params['storagepool']
        pool = self.client.get_pool_by_name(pool_name)
        if not pool.exists:
            raise _not_found(_("Storage pool %s doesn't exist.") % pool_name)
        self.pool_id = pool.get_string('ID')

        workload_type = self.params.get('workload_type')
        if workload_type:
            self.workload_type_id = self.client.get_workload_type_id(
                workload_type)
            if not self.workload_type_id:
                raise _not_found(_('The workload type %s is not exist. '
                                   'Please create it on the array.')
                                 % workload_type)

    def _reuse(self, obj):
        LOG.info('%(type)s %(name)s already exists, reuse it.',
                 {'type': self.obj_type, 'name': self.name})
        self.obj_id = obj.get_string('ID')
        self.lun_wwn = obj.get_string('WWN')
        self.qos_id = obj.get_string('IOCLASSID') or None

    def _filesystem_params(self):
        data = {
            "NAME": self.name,
            "PARENTID": self.pool_id,
            "CAPACITY": self.capacity,
            "DESCRIPTION": self.params.get('description', ''),
            "ALLOCTYPE": int(self.params.get('alloc_type',
                                             constants.FS_ALLOC_TYPE_THIN)),
            "ISSHOWSNAPDIR": strutils.bool_from_string(
                self.params.get('show_snapdir', False)),
        }
        if self.workload_type_id:
            data["workloadTypeId"] = int(self.workload_type_id)
        if self.params.get('snapshot_reserve_per') is not None:
            data["SNAPSHOTRESERVEPER"] = int(
                self.params['snapshot_reserve_per'])
        if self.params.get('unix_permissions'):
            data["unixPermissions"] = self.params['unix_permissions']
        return data

    def _lun_params(self):
        data = {
            "NAME": self.name,
            "PARENTID": self.pool_id,
            "CAPACITY": self.capacity,
            "DESCRIPTION": self.params.get('description', ''),
            "ALLOCTYPE": int(self.params.get('alloc_type',
                                             constants.FS_ALLOC_TYPE_THIN)),
        }
        if self.workload_type_id:
            data["WORKLOADTYPEID"] = self.workload_type_id
        return data

    def _create_filesystem(self):
        fs = self._get_base_resource()
        if fs.exists:
            self._reuse(fs)
            return

        fs = self.client.create_filesystem(self._filesystem_params(),
                                           self.vstore_id)
        self.obj_id = self.created_obj_id = fs.get_string('ID')

    def _clone_filesystem(self):
        fs = self._get_base_resource()
        if fs.exists:
            self._reuse(fs)
            return

        source_name = self.params['clone_from']
        source = self.client.get_filesystem_by_name(source_name,
                                                    self.vstore_id)
        if not source.exists:
            raise _not_found(_('Clone source filesystem %s does not exist.')
                             % source_name)

        clone = self.client.create_clone_filesystem(
            self.name, source.get_string('ID'),
            self.params.get('description', ''), self.vstore_id)
        self.obj_id = self.created_obj_id = clone.get_string('ID')
        self.clone_source = source

    def _split_clone(self):
        if not self.created_obj_id:
            return

        self.client.split_clone_filesystem(
            self.obj_id,
            self.params.get('clone_speed', constants.FS_SPLIT_SPEED_DEFAULT),
            vstore_id=self.vstore_id)
        huawei_utils.wait_fs_split_done(self.client, self.obj_id,
                                        self.vstore_id)

        source_capacity = self.clone_source.get_int64('CAPACITY', 0)
        if self.capacity > source_capacity:
            self.client.extend_filesystem(self.obj_id, self.capacity,
                                          self.vstore_id)

    def _create_lun(self):
        lun = self._get_base_resource()
        if lun.exists:
            self._reuse(lun)
            return

        lun = self.client.create_lun(self._lun_params())
        self.obj_id = self.created_obj_id = lun.get_string('ID')
        self.lun_wwn = lun.get_string('WWN')

    def _wait_lun_online(self):
        huawei_utils.wait_lun_online(self.client, self.obj_id)

    def _delete_created_obj(self):
        if not self.created_obj_id:
            return

        if self.is_file:
            self.client.delete_filesystem(self.created_obj_id,
                                          self.vstore_id)
        else:
            self.client.delete_lun(self.created_obj_id)

    def _create_nfs_share(self):
        share_path = _share_path(self.name)
        share = self.client.get_nfs_share_by_path(share_path, self.vstore_id)
        if share.exists:
            if share.get_string('FSID') == self.obj_id:
                LOG.info('Nfs share %s already exists, reuse it.',
                         share_path)
                self.share_id = share.get_string('ID')
                return

            LOG.warning('Nfs share %(path)s belongs to filesystem %(fs)s, '
                        'delete it.', {'path': share_path,
                                       'fs': share.get('FSID')})
            self.client.delete_nfs_share(share.get_string('ID'),
                                         self.vstore_id)

        share = self.client.create_nfs_share(
            share_path, self.obj_id, self.params.get('description', ''),
            self.vstore_id)
        self.share_id = self.created_share_id = share.get_string('ID')

    def _delete_created_nfs_share(self):
        if self.created_share_id:
            self.client.delete_nfs_share(self.created_share_id,
                                         self.vstore_id)

    def _remove_stale_nfs_access(self):
        auth_clients = self.params['auth_clients']
        for access in self.client.get_nfs_share_accesses(self.share_id,
                                                         self.vstore_id):
            if access.get('NAME') not in auth_clients:
                LOG.info('Remove stale nfs access %s.', access.get('NAME'))
                self.client.delete_nfs_share_access(access['ID'],
                                                    self.vstore_id)
                self.removed_accesses.append(access)
            else:
                self.kept_clients.add(access.get('NAME'))

    def _restore_stale_nfs_access(self):
        for access in self.removed_accesses:
            LOG.info('Restore nfs access %s.', access.get('NAME'))
            self.client.allow_nfs_share_access(
                self.share_id, access.get('NAME'),
                access_val=int(access.get('ACCESSVAL',
                                          constants.ACCESS_NFS_RW)),
                sync=int(access.get('SYNC', constants.NFS_SYNC)),
                all_squash=int(access.get('ALLSQUASH',
                                          constants.NFS_NO_ALL_SQUASH)),
                root_squash=int(access.get('ROOTSQUASH',
                                           constants.NFS_NO_ROOT_SQUASH)),
                vstore_id=self.vstore_id)

    def _allow_nfs_access(self):
        auth_clients = self.params['auth_clients']
        for auth_client in auth_clients:
            self.client.allow_nfs_share_access(
                self.share_id, auth_client,
                all_squash=int(self.params.get(
                    'all_squash', constants.NFS_NO_ALL_SQUASH)),
                root_squash=int(self.params.get(
                    'root_squash', constants.NFS_NO_ROOT_SQUASH)),
                vstore_id=self.vstore_id)

    def _remove_nfs_access(self):
        auth_clients = self.params['auth_clients']
        for access in self.client.get_nfs_share_accesses(self.share_id,
                                                         self.vstore_id):
            name = access.get('NAME')
            if name in auth_clients and name not in self.kept_clients:
                self.client.delete_nfs_share_access(access['ID'],
                                                    self.vstore_id)

    def _create_dataturbo_share(self):
        share_path = _share_path(self.name)
        share = self.client.get_dataturbo_share_by_path(share_path,
                                                        self.vstore_id)
        if share.exists:
            # users of a share cannot be listed, so start from a fresh one
            LOG.info('DataTurbo share %s already exists, recreate it.',
                     share_path)
            self.client.delete_dataturbo_share(share.get_string('ID'),
                                               self.vstore_id)

        share = self.client.create_dataturbo_share(
            share_path, self.obj_id, self.params.get('description', ''),
            self.vstore_id)
        self.share_id = self.created_share_id = share.get_string('ID')

    def _delete_created_dataturbo_share(self):
        if self.created_share_id:
            self.client.delete_dataturbo_share(self.created_share_id,
                                               self.vstore_id)

    def _add_dataturbo_users(self):
        for user in self.params['auth_users']:
            self.client.add_dataturbo_share_user(
                user, self.share_id, constants.DATATURBO_PERMISSION_RW,
                self.vstore_id)

    def _create_qos(self):
        if self.qos_id:
            qos = self.client.get_qos_by_id(self.qos_id, self.vstore_id)
            if qos.exists:
                LOG.info('QoS %(qos)s of %(name)s already exists.',
                         {'qos': self.qos_id, 'name': self.name})
                return

            LOG.warning('QoS %(qos)s recorded on %(name)s no longer exists, '
                        'create a new one.',
                        {'qos': self.qos_id, 'name': self.name})

        self.qos_id = self.created_qos_id = self.smart_qos.add(
            self.qos, self.obj_type, self.obj_id, self.vstore_id)

    def _remove_created_qos(self):
        if self.created_qos_id:
            self.smart_qos.remove(self.created_qos_id, self.obj_type,
                                  self.obj_id, self.vstore_id)

    def _obj_params(self):
        if self.is_file:
            return self._filesystem_params()
        return self._lun_params()

    def _create_hypermetro(self):
        self.hypermetro_info = self.hypermetro.create_hypermetro(
            self.obj_id, self._obj_params(), self.obj_type,
            is_sync=strutils.bool_from_string(
                self.params.get('sync_hypermetro', False)))

    def _delete_hypermetro(self):
        info = self.hypermetro_info
        if info and info['created']:
            self.hypermetro.delete_hypermetro(
                info['hypermetro_id'], self.obj_type,
                delete_remote=info['remote_obj_created'])

    def _create_replication(self):
        self.replication_info = self.replication.create_replica(
            self.obj_id, self._obj_params(), self.obj_type,
            self.params.get('replica_model', constants.REPLICA_ASYNC_MODEL))

    def _delete_replication(self):
        info = self.replication_info
        if info and info['created']:
            self.replication.delete_replica(
                info['pair_id'], self.obj_type,
                delete_remote=info['remote_obj_created'])

    def _build_transaction(self):
        trans = self._new_transaction('create')
        trans.then(self._resolve_ids, name='resolve-ids')

        if not self.is_file:
            trans.then(self._create_lun, self._delete_created_obj,
                       name='create-lun')
            trans.then(self._wait_lun_online, name='wait-lun-online')
        elif self.params.get('clone_from'):
            trans.then(self._clone_filesystem, self._delete_created_obj,
                       name='clone-filesystem')
            trans.then(self._split_clone, name='split-clone')
        else:
            trans.then(self._create_filesystem, self._delete_created_obj,
                       name='create-filesystem')

        if self.protocol == constants.PROTOCOL_NFS:
            trans.then(self._create_nfs_share,
                       self._delete_created_nfs_share,
                       name='create-nfs-share')
            trans.then(self._remove_stale_nfs_access,
                       self._restore_stale_nfs_access,
                       name='remove-stale-nfs-access')
            trans.then(self._allow_nfs_access, self._remove_nfs_access,
                       name='allow-nfs-access')
        elif self.protocol == constants.PROTOCOL_DTFS:
            trans.then(self._create_dataturbo_share,
                       self._delete_created_dataturbo_share,
                       name='create-dataturbo-share')
            trans.then(self._add_dataturbo_users,
                       name='add-dataturbo-users')

        if self.qos:
            trans.then(self._create_qos, self._remove_created_qos,
                       name='create-qos')

        if self.params.get('hypermetro'):
            trans.then(self._create_hypermetro, self._delete_hypermetro,
                       name='create-hypermetro')
        if self.params.get('replication'):
            trans.then(self._create_replication, self._delete_replication,
                       name='create-replication')
        return trans

    def create(self):
        self._validate()
        self._build_transaction().run()

        LOG.info('Create volume %(name)s success, id %(id)s.',
                 {'name': self.name, 'id': self.obj_id})
        return Volume(self.name, self.capacity * constants.CAPACITY_UNIT,
                      self.obj_id, self.lun_wwn)


class Deleter(_Workflow):
    """Delete a volume and the resources hanging off it.

    A volume that does not exist is deleted already.
    """

    def __init__(self, *args, **kwargs):
        super(Deleter, self).__init__(*args, **kwargs)
        self.smart_qos = smartx.SmartQos(self.client)
        self.obj = None
        self.metro_ids = []
        self.replica_ids = []

    def _delete_nfs_share(self):
        share = self.client.get_nfs_share_by_path(_share_path(self.name),
                                                  self.vstore_id)
        if not share.exists:
            LOG.info('Nfs share of %s does not exist.', self.name)
            return

        share_id = share.get_string('ID')
        for access in self.client.get_nfs_share_accesses(share_id,
                                                         self.vstore_id):
            self.client.delete_nfs_share_access(access['ID'],
                                                self.vstore_id)
        self.client.delete_nfs_share(share_id, self.vstore_id)

    def _delete_dataturbo_share(self):
        share = self.client.get_dataturbo_share_by_path(
            _share_path(self.name), self.vstore_id)
        if not share.exists:
            LOG.info('DataTurbo share of %s does not exist.', self.name)
            return
        self.client.delete_dataturbo_share(share.get_string('ID'),
                                           self.vstore_id)

    def _delete_qos(self):
        qos_id = self.obj.get_string('IOCLASSID')
        if qos_id:
            self.smart_qos.remove(qos_id, self.obj_type,
                                  self.obj.get_string('ID'), self.vstore_id)

    def _delete_pairs(self):
        for pair_id in self.metro_ids:
            self.hypermetro.delete_hypermetro(pair_id, self.obj_type)
        for pair_id in self.replica_ids:
            self.replication.delete_replica(pair_id, self.obj_type)

    def _delete_base_resource(self):
        if self.is_file:
            self.client.delete_filesystem(self.obj.get_string('ID'),
                                          self.vstore_id)
        else:
            self.client.delete_lun(self.obj.get_string('ID'))

    def delete(self):
        self._resolve_vstore()
        self.obj = self._get_base_resource()
        if not self.obj.exists:
            LOG.info('Volume %s to delete does not exist.', self.name)
            return

        self.metro_ids, self.replica_ids = self._get_pair_ids(self.obj)

        trans = self._new_transaction('delete')
        if self.protocol == constants.PROTOCOL_NFS:
            trans.then(self._delete_nfs_share, name='delete-nfs-share')
        elif self.protocol == constants.PROTOCOL_DTFS:
            trans.then(self._delete_dataturbo_share,
                       name='delete-dataturbo-share')
        trans.then(self._delete_pairs, name='delete-pairs')
        trans.then(self._delete_qos, name='delete-qos')
        trans.then(self._delete_base_resource, name='delete-volume')
        trans.run()

        LOG.info('Delete volume %s success.', self.name)


class Expander(_Workflow):
    def __init__(self, *args, **kwargs):
        super(Expander, self).__init__(*args, **kwargs)
        self.obj = None
        self.new_capacity = None
        self.metro_ids = []
        self.replica_ids = []

    def _check_pool(self):
        pool_name = self.obj.get_string('PARENTNAME')
        pool = self.client.get_pool_by_name(pool_name)
        if not pool.exists:
            raise _not_found(_('Storage pool %(pool)s of %(name)s is not '
                               'exist.') % {'pool': pool_name,
                                            'name': self.name})

    def _expand_pairs(self):
        for pair_id in self.metro_ids:
            self.hypermetro.extend_hypermetro(pair_id, self.new_capacity,
                                              self.obj_type)
        for pair_id in self.replica_ids:
            self.replication.extend_replica(pair_id, self.new_capacity,
                                            self.obj_type)

    def _expand_base_resource(self):
        obj_id = self.obj.get_string('ID')
        if self.is_file:
            self.client.extend_filesystem(obj_id, self.new_capacity,
                                          self.vstore_id)
        else:
            self.client.extend_lun(obj_id, self.new_capacity)

    def expand(self):
        """Grow the volume to the requested capacity.

        Return True when the capacity is changed, False when the volume is
        already at that capacity.
        """
        self.new_capacity = _get_capacity(self.params)
        self._resolve_vstore()

        self.obj = self._get_base_resource()
        if not self.obj.exists:
            raise _not_found(_('Volume %s to expand does not exist.')
                             % self.name)

        cur_capacity = self.obj.get_int64('CAPACITY', 0)
        if self.new_capacity == cur_capacity:
            LOG.info('The new capacity %(new)s of %(name)s equals the '
                     'current one, nothing to do.',
                     {'new': self.new_capacity, 'name': self.name})
            return False
        if self.new_capacity < cur_capacity:
            raise _invalid(_('New capacity %(new)s of %(name)s must be '
                             'greater than current capacity %(cur)s.')
                           % {'new': self.new_capacity, 'name': self.name,
                              'cur': cur_capacity})

        self.metro_ids, self.replica_ids = self._get_pair_ids(self.obj)

        trans = self._new_transaction('expand')
        trans.then(self._check_pool, name='check-pool')
        trans.then(self._expand_pairs, name='expand-pairs')
        trans.then(self._expand_base_resource, name='expand-volume')
        trans.run()

        LOG.info('Expand volume %(name)s from %(cur)s to %(new)s success.',
                 {'name': self.name, 'cur': cur_capacity,
                  'new': self.new_capacity})
        return True


class Querier(_Workflow):
    def _check_workload_type(self, obj):
        workload_type = self.params.get('workload_type')
        if not workload_type:
            return

        workload_type_id = self.client.get_workload_type_id(workload_type)
        if not workload_type_id:
            raise _not_found(_('The workload type %s is not exist.')
                             % workload_type)

        key = 'workloadTypeId' if self.is_file else 'WORKLOADTYPEID'
        old_id = obj.get_string(key)
        if old_id is not None and old_id != workload_type_id:
            raise _invalid(_('The workload type is different between new '
                             '[%(new)s] and old [%(old)s].')
                           % {'new': workload_type_id, 'old': old_id})

    def query(self):
        self._resolve_vstore()
        obj = self._get_base_resource()
        if not obj.exists:
            raise _not_found(_('Volume %s to query does not exist.')
                             % self.name)

        self._check_workload_type(obj)

        capacity = obj.get_int64('CAPACITY')
        size = capacity * constants.CAPACITY_UNIT if capacity else None
        return Volume(self.name, size, obj.get_string('ID'),
                      obj.get_string('WWN'))


def create_volume(client, params, backend_conf=None, **kwargs):
    return Creator(client, params, backend_conf, **kwargs).create()


def delete_volume(client, params, backend_conf=None, **kwargs):
    Deleter(client, params, backend_conf, **kwargs).delete()


def expand_volume(client, params, backend_conf=None, **kwargs):
    return Expander(client, params, backend_conf, **kwargs).expand()


def query_volume(client, params, backend_conf=None, **kwargs):
    return Querier(client, params, backend_conf, **kwargs).query()
