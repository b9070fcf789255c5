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


class HuaweiHyperMetro(object):
    """HyperMetro pairs between a local and a remote array.

    configs holds 'metro_domain', 'storage_pools' (remote pools) and
    optionally 'sync_speed' and 'metro_sync_completed'.
    """

    def __init__(self, local_cli, remote_cli, configs):
        self.local_cli = local_cli
        self.remote_cli = remote_cli
        self.configs = configs

    def _check_create_condition(self, state):
        domain_name = self.configs['metro_domain']
        domain_id = self.local_cli.get_hypermetro_domain_id(domain_name)
        if not domain_id:
            msg = _("Hypermetro domain %s doesn't exist.") % domain_name
            LOG.error(msg)
            raise exception.NotFound(reason=msg)

        hypermetro_pool = self.configs['storage_pools'][0]
        pool = self.remote_cli.get_pool_by_name(hypermetro_pool)
        if not pool.exists:
            msg = _("Remote pool %s does not exist.") % hypermetro_pool
            LOG.error(msg)
            raise exception.NotFound(reason=msg)

        state['domain_id'] = domain_id
        state['remote_pool_id'] = pool.get_string('ID')

    def _is_sync_completed(self, metro_id):
        metro_info = self.local_cli.get_hypermetro_by_id(metro_id)
        if ((metro_info.get('HEALTHSTATUS') !=
                constants.METRO_HEALTH_NORMAL) or
                metro_info.get('RUNNINGSTATUS') not in (
                    constants.METRO_RUNNING_NORMAL,
                    constants.METRO_RUNNING_SYNC,
                    constants.METRO_RUNNING_TO_BE_SYNC)):
            msg = _("HyperMetro pair %(id)s is not in a available status, "
                    "RunningStatus is: %(run)s, HealthStatus is: %(health)s"
                    ) % {"id": metro_id,
                         "run": metro_info.get('RUNNINGSTATUS'),
                         "health": metro_info.get("HEALTHSTATUS")}
            LOG.error(msg)
            raise exception.BackendBusinessError(data=msg)

        return metro_info.get('RUNNINGSTATUS') == constants.METRO_RUNNING_NORMAL

    def _create_pair(self, state, local_obj_id, obj_type, is_sync):
        pair = self.local_cli.get_hypermetro_by_local_obj_id(local_obj_id)
        if pair.exists:
            LOG.info('Hypermetro %(id)s of %(type)s %(obj)s already exists, '
                     'reuse it.', {'id': pair.get('ID'), 'type': obj_type,
                                   'obj': local_obj_id})
            state['hypermetro_id'] = pair.get_string('ID')
            return

        hypermetro_param = {
            "DOMAINID": state['domain_id'],
            "HCRESOURCETYPE": constants.HYPERMETRO_RESOURCE_TYPES[obj_type],
            "ISFIRSTSYNC": is_sync,
            "LOCALOBJID": local_obj_id,
            "REMOTEOBJID": state['remote_obj_id'],
            "SPEED": self.configs.get('sync_speed',
                                      constants.METRO_SYNC_SPEED_DEFAULT),
        }
        pair = self.local_cli.create_hypermetro(hypermetro_param)
        metro_id = pair.get_string('ID')

        if is_sync:
            try:
                self.local_cli.sync_hypermetro(metro_id)
                if self.configs.get('metro_sync_completed'):
                    huawei_utils.wait_for_condition(
                        lambda: self._is_sync_completed(metro_id),
                        constants.DEFAULT_WAIT_INTERVAL,
                        constants.DEFAULT_WAIT_INTERVAL * 10)
            except exception.HuaweiCsiException:
                with excutils.save_and_reraise_exception():
                    self.local_cli.delete_hypermetro(metro_id)

        state['hypermetro_id'] = metro_id
        state['created'] = True

    def create_hypermetro(self, local_obj_id, obj_params, obj_type,
                          is_sync=False):
        """Create the remote peer and the HyperMetro pair of a local object.

        A pair or remote peer that already exists is reused and never
        deleted on failure. Return a dict with 'hypermetro_id', 'created'
        (the pair is new) and 'remote_obj_created'.
        """
        LOG.info('To create hypermetro for local %(type)s %(id)s',
                 {'type': obj_type, 'id': local_obj_id})

        state = {'created': False, 'remote_obj_created': False}

        def _create_remote():
            state['remote_obj_id'], state['remote_obj_created'] = (
                huawei_utils.create_remote_obj(
                    self.remote_cli, obj_type, obj_params,
                    state['remote_pool_id']))

        def _delete_remote():
            if state['remote_obj_created']:
                huawei_utils.delete_obj(self.remote_cli, obj_type,
                                        state['remote_obj_id'])

        trans = transaction.Transaction(name='create-hypermetro')
        trans.then(lambda: self._check_create_condition(state),
                   name='check-create-condition')
        trans.then(_create_remote, _delete_remote, name='create-remote-obj')
        trans.then(lambda: self._create_pair(state, local_obj_id, obj_type,
                                             is_sync),
                   name='create-hypermetro-pair')
        trans.run()

        return {'hypermetro_id': state['hypermetro_id'],
                'created': state['created'],
                'remote_obj_created': state['remote_obj_created']}

    def delete_hypermetro(self, metro_id, obj_type, delete_remote=True):
        metro_info = self.local_cli.get_hypermetro_by_id(metro_id)
        if not metro_info.exists:
            LOG.warning('Hypermetro %s to delete not exist.', metro_id)
            return

        if metro_info.get('RUNNINGSTATUS') in (
                constants.METRO_RUNNING_NORMAL,
                constants.METRO_RUNNING_SYNC):
            self.local_cli.stop_hypermetro(metro_id)

        self.local_cli.delete_hypermetro(metro_id)
        if delete_remote:
            huawei_utils.delete_obj(self.remote_cli, obj_type,
                                    metro_info.get_string('REMOTEOBJID'))

    def extend_hypermetro(self, metro_id, new_size, obj_type):
        LOG.info('Extend hypermetro pair %s', metro_id)
        metro_info = self.local_cli.get_hypermetro_by_id(metro_id)
        if not metro_info.exists:
            msg = _('Hypermetro %s to extend not exist.') % metro_id
            LOG.error(msg)
            raise exception.NotFound(reason=msg)

        if ((metro_info.get('HEALTHSTATUS') == constants.METRO_HEALTH_NORMAL)
                and metro_info.get('RUNNINGSTATUS') in (
                    constants.METRO_RUNNING_NORMAL,
                    constants.METRO_RUNNING_SYNC)):
            self.local_cli.stop_hypermetro(metro_id)

        try:
            huawei_utils.extend_obj(self.remote_cli, obj_type,
                                    metro_info.get_string('REMOTEOBJID'),
                                    new_size)
        finally:
            self.local_cli.sync_hypermetro(metro_id)

    def sync_hypermetro(self, metro_id):
        self.local_cli.sync_hypermetro(metro_id)
