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

import ipaddress
import time

from oslo_log import log as logging

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi.i18n import _
from huawei_csi import transaction

LOG = logging.getLogger(__name__)

MULTIPATH_TYPE_DEFAULT = '0'
ISCSI_IQN_FIELDS = 6

INITIATOR_KEYS = (ISCSI_INITIATOR_KEY,
                  FC_INITIATORS_KEY,
                  ROCE_INITIATOR_KEY) = ('iscsi_initiator', 'fc_initiators',
                                         'roce_initiator')


def _error(msg):
    LOG.error(msg)
    return exception.BackendBusinessError(data=msg)


def _invalid(msg):
    LOG.error(msg)
    return exception.InvalidInput(reason=msg)


def _get_single_initiator(params, key):
    initiator = params.get(key)
    if not initiator or not isinstance(initiator, str):
        raise _invalid(_('No %(key)s of host %(host)s is given.')
                       % {'key': key, 'host': params.get('HostName')})
    return initiator


def _get_multiple_initiators(params, key):
    initiators = params.get(key)
    if isinstance(initiators, str):
        initiators = [initiators]
    if not initiators:
        raise _invalid(_('No %(key)s of host %(host)s is given.')
                       % {'key': key, 'host': params.get('HostName')})
    return list(initiators)


def _normalize_ip(portal):
    try:
        return str(ipaddress.ip_address(str(portal).strip()))
    except ValueError:
        LOG.warning('Portal %s is not a valid IP address.', portal)
        return None


def get_lun_unique_id(protocol, lun):
    """NVMe protocols address a LUN by NGUID, SCSI ones by WWN."""
    if protocol in (constants.PROTOCOL_ROCE, constants.PROTOCOL_FC_NVME):
        if not lun.has('NGUID'):
            raise _error(_('The LUN %s does not contain key NGUID.')
                         % lun.get('NAME'))
        return lun.get_string('NGUID')
    return lun.get_string('WWN')


def get_mapping_properties(protocol, unique_id, host_lun_id, targets):
    """Build the properties a node needs to log in to the mapped LUN.

    targets is the list of target portals for iscsi and roce, the list of
    target WWNs for fc, and the list of (initiator, target) WWN pairs for
    fc-nvme. Every target gets the same host LUN id.
    """
    if protocol == constants.PROTOCOL_ISCSI:
        return {
            'tgtPortals': ['%s:%s' % (ip, constants.ISCSI_PORT)
                           for ip, _iqn in targets],
            'tgtIQNs': [iqn for _ip, iqn in targets],
            'tgtHostLUNs': [host_lun_id] * len(targets),
            'tgtLunWWN': unique_id,
        }
    if protocol == constants.PROTOCOL_FC:
        return {
            'tgtLunWWN': unique_id,
            'tgtWWNs': list(targets),
            'tgtHostLUNs': [host_lun_id] * len(targets),
        }
    if protocol == constants.PROTOCOL_FC_NVME:
        return {
            'portWWNList': [{'initiatorPortWWN': ini, 'targetPortWWN': tgt}
                            for ini, tgt in targets],
            'tgtLunGuid': unique_id,
        }
    if protocol == constants.PROTOCOL_ROCE:
        return {
            'tgtPortals': list(targets),
            'tgtLunGuid': unique_id,
        }
    raise _invalid(_('Unsupported protocol %s for attaching.') % protocol)


class AttachmentManager(object):
    """Map LUNs to the host of a kubernetes node and back.

    The host, host group, LUN group and mapping view of a node are found by
    their derived names and created when absent, so attaching the same LUN
    twice is harmless.
    """

    def __init__(self, client, protocol, invoker='csi', portals=None,
                 alua=None, cancel_event=None):
        self.client = client
        self.protocol = (protocol or '').lower()
        self.invoker = invoker
        self.portals = portals or []
        self.alua = alua or {}
        self.cancel_event = cancel_event

        if self.protocol not in constants.BLOCK_PROTOCOLS:
            raise _invalid(_('Invalid attach protocol %(protocol)s, protocol '
                             'must be in %(valid)s.')
                           % {'protocol': protocol,
                              'valid': constants.BLOCK_PROTOCOLS})

    def _get_hostgroup_name(self, host_id):
        return 'k8s_%s_hostgroup_%s' % (self.invoker, host_id)

    def _get_lungroup_name(self, host_id):
        return 'k8s_%s_lungroup_%s' % (self.invoker, host_id)

    def _get_mapping_name(self, host_id):
        return 'k8s_%s_mapping_%s' % (self.invoker, host_id)

    def get_host(self, params, to_create=False):
        host_name = params.get('HostName')
        if not host_name:
            raise _invalid(_('HostName must be given to find the host.'))

        host_to_query = huawei_utils.encode_host_name(host_name)
        host = self.client.get_host_by_name(host_to_query)
        if not host.exists and to_create:
            host = self.client.create_host(host_to_query, host_name)

        if host.exists:
            return host

        if to_create:
            raise _error(_('Cannot create host %s.') % host_to_query)
        return None

    def create_mapping(self, host_id):
        mapping_name = self._get_mapping_name(host_id)
        mapping = self.client.get_mappingview_by_name(mapping_name)
        if not mapping.exists:
            mapping = self.client.create_mappingview(mapping_name)
        return mapping.get_string('ID')

    @staticmethod
    def _find_group(groups, name):
        for group in groups:
            if group.get('NAME') == name:
                return group
        return None

    def create_host_group(self, host_id, mapping_id):
        hostgroup_name = self._get_hostgroup_name(host_id)
        group = self._find_group(
            self.client.get_associated_hostgroups(constants.HOST_TYPE,
                                                  host_id),
            hostgroup_name)
        if group is not None:
            hostgroup_id = group['ID']
        else:
            hostgroup = self.client.get_hostgroup_by_name(hostgroup_name)
            if not hostgroup.exists:
                hostgroup = self.client.create_hostgroup(hostgroup_name)
            hostgroup_id = hostgroup.get_string('ID')
            self.client.associate_host_to_hostgroup(hostgroup_id, host_id)

        mapped = self.client.get_associated_hostgroups(
            constants.MAPPINGVIEW_TYPE, mapping_id)
        if self._find_group(mapped, hostgroup_name) is None:
            self.client.associate_hostgroup_to_mappingview(mapping_id,
                                                           hostgroup_id)
        return hostgroup_id

    def create_lun_group(self, lun_id, host_id, mapping_id):
        """Put the LUN into the LUN group of the host.

        Return the LUN group id and whether the LUN was added by this call.
        """
        lungroup_name = self._get_lungroup_name(host_id)
        added = False
        group = self._find_group(
            self.client.get_associated_lungroups(constants.LUN_OBJ_TYPE,
                                                 lun_id),
            lungroup_name)
        if group is not None:
            lungroup_id = group['ID']
        else:
            lungroup = self.client.get_lungroup_by_name(lungroup_name)
            if not lungroup.exists:
                lungroup = self.client.create_lungroup(lungroup_name)
            lungroup_id = lungroup.get_string('ID')
            self.client.associate_lun_to_lungroup(lungroup_id, lun_id)
            added = True

        mapped = self.client.get_associated_lungroups(
            constants.MAPPINGVIEW_TYPE, mapping_id)
        if self._find_group(mapped, lungroup_name) is None:
            self.client.associate_lungroup_to_mappingview(mapping_id,
                                                          lungroup_id)
        return lungroup_id, added

    def _check_initiator_owner(self, initiator, name, host_id):
        """Return True if the initiator is free and must be associated."""
        if initiator.get('ISFREE') == 'true':
            return True

        parent = initiator.get('PARENTID')
        if parent is not None and parent != host_id:
            msg = (_('%(protocol)s initiator %(ini)s is already associated '
                     'to another host %(parent)s.')
                   % {'protocol': self.protocol,
                      'ini': huawei_utils.mask_initiator_sensitive_info(name),
                      'parent': parent})
            LOG.error(msg)
            raise exception.ConflictError(reason=msg)
        return False

    def attach_iscsi(self, host_id, params):
        name = _get_single_initiator(params, ISCSI_INITIATOR_KEY)
        initiator = self.client.get_iscsi_initiator(name)
        if not initiator.exists:
            initiator = self.client.add_iscsi_initiator(name)

        if self._check_initiator_owner(initiator, name, host_id):
            self.client.associate_iscsi_initiator_to_host(name, host_id)
        return initiator

    def attach_roce(self, host_id, params):
        name = _get_single_initiator(params, ROCE_INITIATOR_KEY)
        initiator = self.client.get_roce_initiator(name)
        if not initiator.exists:
            initiator = self.client.add_roce_initiator(name)

        if self._check_initiator_owner(initiator, name, host_id):
            self.client.associate_roce_initiator_to_host(name, host_id)
        return initiator

    def attach_fc(self, host_id, params):
        """Associate the online FC initiators of the node to the host.

        Ownership of every initiator is checked before any of them is
        associated.
        """
        wwns = _get_multiple_initiators(params, FC_INITIATORS_KEY)
        to_add = []
        host_initiators = []
        for wwn in wwns:
            initiator = self.client.get_fc_initiator(wwn)
            if not initiator.exists:
                LOG.warning('FC initiator %s does not exist.',
                            huawei_utils.mask_initiator_sensitive_info(wwn))
                continue
            if initiator.get('RUNNINGSTATUS') != constants.STATUS_FC_ONLINE:
                LOG.warning('FC initiator %s is not online.',
                            huawei_utils.mask_initiator_sensitive_info(wwn))
                continue

            if self._check_initiator_owner(initiator, wwn, host_id):
                to_add.append(wwn)
            host_initiators.append(initiator)

        for wwn in to_add:
            self.client.associate_fc_initiator_to_host(wwn, host_id)
        return host_initiators

    @staticmethod
    def need_update_initiator_alua(initiator, host_alua):
        if not host_alua or 'MULTIPATHTYPE' not in host_alua:
            return False

        if host_alua['MULTIPATHTYPE'] != initiator.get('MULTIPATHTYPE'):
            return True
        if initiator.get('MULTIPATHTYPE') == MULTIPATH_TYPE_DEFAULT:
            return False

        for key in ('FAILOVERMODE', 'SPECIALMODETYPE', 'PATHTYPE'):
            if key in host_alua and host_alua[key] != initiator.get(key):
                return True
        return False

    def attach_initiators(self, host, params):
        host_id = host.get_string('ID')
        host_alua = huawei_utils.find_alua_info(self.alua, host.get('NAME'))

        if self.protocol == constants.PROTOCOL_ISCSI:
            initiator = self.attach_iscsi(host_id, params)
            if self.need_update_initiator_alua(initiator, host_alua):
                self.client.update_iscsi_initiator(
                    initiator.get_string('ID'), host_alua)
        elif self.protocol in (constants.PROTOCOL_FC,
                               constants.PROTOCOL_FC_NVME):
            for initiator in self.attach_fc(host_id, params):
                if self.need_update_initiator_alua(initiator, host_alua):
                    self.client.update_fc_initiator(
                        initiator.get_string('ID'), host_alua)
        elif self.protocol == constants.PROTOCOL_ROCE:
            self.attach_roce(host_id, params)

    def get_host_lun_id(self, host_id, lun):
        for i in range(constants.HOST_LUN_ID_RETRY_TIMES):
            host_lun_id = self.client.get_lun_host_lun_id(host_id, lun)
            if host_lun_id is not None:
                return host_lun_id
            LOG.info('Host lun id of lun %s is not ready, the %s time.',
                     lun.get('ID'), i + 1)
            time.sleep(constants.LUN_ONLINE_WAIT_INTERVAL)

        raise _error(_('Can not get hostlun id of lun %s. Maybe the storage '
                       'is busy, please try it later.') % lun.get('ID'))

    def get_target_iscsi_portals(self):
        """Return (ip, iqn) of the configured portals found on the array."""
        ports = self.client.get_iscsi_tgt_ports()
        if not ports:
            raise _error(_('No iSCSI target port exists.'))

        iqns = {}
        for port in ports:
            # ID looks like 0+iqn.2006-08.com.huawei:oceanstor:...:ip,t,0x01
            try:
                iqn = port['ID'].split(',')[0].split('+')[1]
            except (KeyError, IndexError, AttributeError):
                LOG.warning('Invalid iSCSI target port %s.', port)
                continue
            fields = iqn.split(':')
            if len(fields) < ISCSI_IQN_FIELDS:
                continue
            iqns[fields[ISCSI_IQN_FIELDS - 1]] = iqn

        targets = []
        for portal in self.portals:
            ip = _normalize_ip(portal)
            if ip not in iqns:
                LOG.warning('iSCSI portal %s is not valid.', portal)
                continue
            targets.append((ip, iqns[ip]))

        if not targets:
            raise _error(_('All config portals %s are not valid.')
                         % self.portals)
        return targets

    def get_target_roce_portals(self):
        portals = []
        for portal in self.portals:
            ip = _normalize_ip(portal)
            if ip is None:
                continue
            roce_portal = self.client.get_roce_portal_by_ip(ip)
            if not roce_portal.exists:
                LOG.warning('The config portal %s does not exist.', ip)
                continue
            if not roce_portal.has('SUPPORTPROTOCOL'):
                raise _error(_('Current storage does not support NVMe.'))
            if (roce_portal.get_string('SUPPORTPROTOCOL') !=
                    constants.ROCE_SUPPORT_PROTOCOL):
                LOG.warning('The config portal %s does not support NVMe.',
                            ip)
                continue
            portals.append(ip)

        if not portals:
            raise _error(_('All config portals %s are not valid.')
                         % self.portals)
        return portals

    def get_target_fc_wwns(self, params):
        wwns = _get_multiple_initiators(params, FC_INITIATORS_KEY)
        targets = []
        for wwn in wwns:
            for tgt_wwn in self.client.get_fc_target_wwpns(wwn):
                if tgt_wwn not in targets:
                    targets.append(tgt_wwn)

        if not targets:
            raise _error(_('There is no available target wwn of host '
                           'initiators %s in storage.')
                         % huawei_utils.mask_initiator_sensitive_info(wwns))
        return targets

    def get_target_fc_nvme_pairs(self, params):
        wwns = _get_multiple_initiators(params, FC_INITIATORS_KEY)
        pairs = []
        for wwn in wwns:
            for tgt_wwn in self.client.get_fc_target_wwpns(wwn):
                pairs.append((wwn, tgt_wwn))
        LOG.info('Get %s target fc-nvme port pairs.', len(pairs))
        return pairs

    def get_targets(self, params):
        if self.protocol == constants.PROTOCOL_ISCSI:
            return self.get_target_iscsi_portals()
        if self.protocol == constants.PROTOCOL_FC:
            return self.get_target_fc_wwns(params)
        if self.protocol == constants.PROTOCOL_FC_NVME:
            return self.get_target_fc_nvme_pairs(params)
        return self.get_target_roce_portals()

    def get_lun(self, lun_name):
        lun = self.client.get_lun_info_by_name(lun_name)
        return lun if lun.exists else None

    def controller_attach(self, lun_name, params):
        """Map the LUN to the node host and return the mapping properties.

        A LUN added to the host LUN group by this call is removed again when
        a later step fails.
        """
        state = {}

        def _get_host():
            state['host'] = self.get_host(params, to_create=True)
            state['host_id'] = state['host'].get_string('ID')

        def _get_lun():
            lun = self.get_lun(lun_name)
            if lun is None:
                raise exception.NotFound(
                    reason=_('Lun %s not exist for attaching.') % lun_name)
            state['lun'] = lun
            state['lun_id'] = lun.get_string('ID')

        def _attach_initiators():
            self.attach_initiators(state['host'], params)

        def _create_mapping():
            state['mapping_id'] = self.create_mapping(state['host_id'])

        def _create_host_group():
            self.create_host_group(state['host_id'], state['mapping_id'])

        def _create_lun_group():
            state['lungroup_id'], state['lun_added'] = self.create_lun_group(
                state['lun_id'], state['host_id'], state['mapping_id'])

        def _remove_lun_from_group():
            if state.get('lun_added'):
                self.client.remove_lun_from_lungroup(state['lungroup_id'],
                                                     state['lun_id'])

        def _get_properties():
            unique_id = get_lun_unique_id(self.protocol, state['lun'])
            host_lun_id = self.get_host_lun_id(state['host_id'],
                                               state['lun'])
            state['properties'] = get_mapping_properties(
                self.protocol, unique_id, host_lun_id,
                self.get_targets(params))

        trans = transaction.Transaction(
            name='attach-%s' % lun_name, cancel_event=self.cancel_event)
        trans.then(_get_host, name='get-host')
        trans.then(_attach_initiators, name='attach-initiators')
        trans.then(_get_lun, name='get-lun')
        trans.then(_create_mapping, name='create-mapping')
        trans.then(_create_host_group, name='create-host-group')
        trans.then(_create_lun_group, _remove_lun_from_group,
                   name='create-lun-group')
        trans.then(_get_properties, name='get-mapping-properties')
        trans.run()

        LOG.info('Attach lun %(lun)s to host %(host)s, properties: '
                 '%(prop)s.', {'lun': lun_name, 'host': state['host_id'],
                               'prop': state['properties']})
        return state['properties']

    def controller_detach(self, lun_name, params):
        """Remove the LUN from the host LUN group.

        Return the LUN unique id, or None when the host or the LUN is gone.
        """
        host = self.get_host(params, to_create=False)
        if host is None:
            LOG.info("Host doesn't exist while detaching %s.", lun_name)
            return None

        lun = self.get_lun(lun_name)
        if lun is None:
            LOG.info("LUN %s doesn't exist while detaching.", lun_name)
            return None

        host_id = host.get_string('ID')
        lun_id = lun.get_string('ID')
        lungroup_name = self._get_lungroup_name(host_id)
        for group in self.client.get_associated_lungroups(
                constants.LUN_OBJ_TYPE, lun_id):
            if group.get('NAME') == lungroup_name:
                self.client.remove_lun_from_lungroup(group['ID'], lun_id)

        return get_lun_unique_id(self.protocol, lun)
