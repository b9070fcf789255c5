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

from oslo_log import log as logging
from oslo_utils import excutils

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi.i18n import _
from huawei_csi import transaction

LOG = logging.getLogger(__name__)


class ReplicationPairOp(object):
    def __init__(self, loc_client, rmt_client):
        self.loc_client = loc_client
        self.rmt_client = rmt_client

    def get_info(self, rep_id):
        return self.loc_client.get_replication_pair_by_id(rep_id)

    def _wait_until_status(self, rep_id, expect_statuses):
        def _status_check():
            info = self.get_info(rep_id)
            if (info.get('HEALTHSTATUS') !=
                    constants.REPLICA_HEALTH_STATUS_NORMAL):
                msg = _('Replication status %s is abnormal.'
                        ) % info.get('HEALTHSTATUS')
                LOG.error(msg)
                raise exception.BackendBusinessError(data=msg)

            return info.get('RUNNINGSTATUS') in expect_statuses

        huawei_utils.wait_for_condition(_status_check,
                                        constants.DEFAULT_WAIT_INTERVAL,
                                        constants.DEFAULT_WAIT_TIMEOUT,
                                        target='replication %s' % rep_id)

    def get_by_local_res_name(self, local_name):
        return self.loc_client.get_replication_pair_by_localres_name(
            local_name)

    def create(self, params):
        return self.loc_client.create_replication_pair(params)

    def delete(self, rep_id):
        self.loc_client.delete_replication_pair(rep_id)

    def sync(self, rep_id):
        self.loc_client.sync_replication_pair(rep_id)

    def split(self, rep_id, rep_info=None):
        expect_status = (constants.REPLICA_RUNNING_STATUS_SPLIT,
                         constants.REPLICA_RUNNING_STATUS_INTERRUPTED)
        info = rep_info or self.get_info(rep_id)
        if (info.get('ISEMPTY') == 'true' or
                info.get('RUNNINGSTATUS') in expect_status):
            return

        self.loc_client.split_replication_pair(rep_id)
        self._wait_until_status(rep_id, expect_status)


class ReplicationManager(object):
    """Remote replication pairs of filesystems and LUNs.

    configs holds 'storage_pools' (remote pools) and optionally
    'sync_period'.
    """

    def __init__(self, local_client, rmt_client, configs):
        self.loc_client = local_client
        self.rmt_client = rmt_client
        self.pair_op = ReplicationPairOp(self.loc_client, self.rmt_client)
        self.configs = configs

    def _check_create_condition(self, state):
        rmt_array = self.rmt_client.get_array_info()
        rmt_sn = rmt_array.get_string('ID')
        rmt_dev = self.loc_client.get_remote_device_by_sn(rmt_sn)
        if not rmt_dev.exists:
            msg = _("Remote device %s doesn't exist.") % rmt_sn
            LOG.error(msg)
            raise exception.NotFound(reason=msg)

        rmt_pool = self.configs['storage_pools'][0]
        pool = self.rmt_client.get_pool_by_name(rmt_pool)
        if not pool.exists:
            msg = _('Remote pool %s for replication not exist.') % rmt_pool
            LOG.error(msg)
            raise exception.NotFound(reason=msg)

        state['rmt_dev_id'] = rmt_dev.get_string('ID')
        state['remote_pool_id'] = pool.get_string('ID')

    def _create_pair(self, state, local_id, local_name, obj_type,
                     replica_model):
        pair = self.pair_op.get_by_local_res_name(local_name)
        if pair.exists:
            LOG.info('Replication pair %(id)s of %(name)s already exists, '
                     'reuse it.', {'id': pair.get('ID'), 'name': local_name})
            state['pair_id'] = pair.get_string('ID')
            return

        params = {
            "LOCALRESID": local_id,
            "LOCALRESTYPE": constants.REPLICATION_RESOURCE_TYPES[obj_type],
            "REMOTEDEVICEID": state['rmt_dev_id'],
            "REMOTERESID": state['remote_obj_id'],
            "REPLICATIONMODEL": replica_model,
            "SPEED": constants.REPLICA_SPEED_HIGHEST,
        }
        if replica_model == constants.REPLICA_ASYNC_MODEL:
            params['SYNCHRONIZETYPE'] = '2'
            params['TIMINGVAL'] = self.configs.get('sync_period',
                                                   constants.REPLICA_PERIOD)

        pair_info = self.pair_op.create(params)
        pair_id = pair_info.get_string('ID')
        try:
            self.pair_op.sync(pair_id)
        except exception.HuaweiCsiException:
            with excutils.save_and_reraise_exception():
                self.pair_op.delete(pair_id)
        state['pair_id'] = pair_id
        state['created'] = True

    def create_replica(self, local_id, obj_params, obj_type,
                       replica_model=constants.REPLICA_ASYNC_MODEL):
        """Create remote filesystem or LUN and replication pair.

        Purpose:
            1. create remote object
            2. create replication pair
            3. sync replication pair

        A pair or remote object that already exists is reused and never
        deleted on failure. Return a dict with 'pair_id', 'created' and
        'remote_obj_created'.
        """
        LOG.info(('Create replication, local %(type)s: %(local_id)s, '
                  'replication model: %(model)s.'),
                 {'type': obj_type, 'local_id': local_id,
                  'model': replica_model})

        state = {'created': False, 'remote_obj_created': False}

        def _create_remote():
            state['remote_obj_id'], state['remote_obj_created'] = (
                huawei_utils.create_remote_obj(
                    self.rmt_client, obj_type, obj_params,
                    state['remote_pool_id']))

        def _delete_remote():
            if state['remote_obj_created']:
                huawei_utils.delete_obj(self.rmt_client, obj_type,
                                        state['remote_obj_id'])

        trans = transaction.Transaction(name='create-replication')
        trans.then(lambda: self._check_create_condition(state),
                   name='check-create-condition')
        trans.then(_create_remote, _delete_remote, name='create-remote-obj')
        trans.then(lambda: self._create_pair(state, local_id,
                                             obj_params['NAME'], obj_type,
                                             replica_model),
                   name='create-replication-pair')
        trans.run()

        return {'pair_id': state['pair_id'],
                'created': state['created'],
                'remote_obj_created': state['remote_obj_created']}

    def delete_replica(self, pair_id, obj_type, delete_remote=True):
        LOG.info('Delete replication pair %s.', pair_id)
        pair_info = self.pair_op.get_info(pair_id)
        if not pair_info.exists:
            LOG.warning('Replication pair %s to delete not exist.', pair_id)
            return

        self.pair_op.split(pair_id, pair_info)
        self.pair_op.delete(pair_id)
        if delete_remote:
            huawei_utils.delete_obj(self.rmt_client, obj_type,
                                    pair_info.get_string('REMOTERESID'))

    def extend_replica(self, pair_id, new_size, obj_type):
        LOG.info('Extend replication pair %s', pair_id)
        pair_info = self.pair_op.get_info(pair_id)
        if not pair_info.exists:
            msg = _('Replication pair %s to extend not exist.') % pair_id
            LOG.error(msg)
            raise exception.NotFound(reason=msg)

        self.pair_op.split(pair_id, pair_info)
        try:
            huawei_utils.extend_obj(self.rmt_client, obj_type,
                                    pair_info.get_string('REMOTERESID'),
                                    new_size)
        finally:
            self.pair_op.sync(pair_id)
