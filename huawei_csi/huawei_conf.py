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

"""
Set Huawei private configuration into Configuration object.

For conveniently get private configuration. We parse Huawei config file
and set every property into Configuration object as an attribute.
"""

import base64
import os
import re

from defusedxml import ElementTree as ET
from oslo_config import cfg
from oslo_log import log as logging

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi.i18n import _

LOG = logging.getLogger(__name__)

DEFAULT_CONF_GROUP = 'huawei_backend'

huawei_opts = [
    cfg.StrOpt('huawei_csi_conf_file',
               default='/etc/huawei/csi_huawei_conf.xml',
               help='The configuration file for the Huawei storage backend.'),
    cfg.StrOpt('backend_id',
               help='Identity of the storage backend, used to key the '
                    'connection semaphore of the backend.'),
    cfg.IntOpt('max_client_threads',
               help='Maximum concurrent REST requests sent to the backend. '
                    'Overrides Storage/MaxClientThreads of the XML file.'),
]

CONF = cfg.CONF


class Configuration(object):
    """Backend scoped view of an oslo.config ConfigOpts object.

    Options are read from the backend group. Attributes set on the object
    shadow the options, which is how HuaweiConf publishes XML values.
    """

    def __init__(self, opts=None, config_group=DEFAULT_CONF_GROUP,
                 conf=None):
        self.config_group = config_group
        self.local_conf = conf if conf is not None else CONF
        self.append_config_values(opts or huawei_opts)

    def _safe_register(self, opt):
        try:
            self.local_conf.register_opt(opt, group=self.config_group)
        except cfg.DuplicateOptError:
            pass

    def append_config_values(self, opts):
        for opt in opts:
            self._safe_register(opt)

    def safe_get(self, value):
        try:
            return self.__getattr__(value)
        except (cfg.NoSuchOptError, AttributeError):
            return None

    def __getattr__(self, value):
        local_conf = object.__getattribute__(self, 'local_conf')
        group = object.__getattribute__(self, 'config_group')
        return getattr(getattr(local_conf, group), value)


class HuaweiConf(object):
    def __init__(self, conf):
        self.conf = conf
        self.last_modify_time = None

    def update_config_value(self):
        conf_file = self.conf.huawei_csi_conf_file
        file_time = os.stat(conf_file).st_mtime
        if self.last_modify_time == file_time:
            return

        self.last_modify_time = file_time
        tree = ET.parse(conf_file)
        xml_root = tree.getroot()
        self._encode_authentication(tree, xml_root)

        attr_funcs = (
            self._san_address,
            self._san_user,
            self._san_password,
            self._san_vstore,
            self._san_product,
            self._ssl_cert_path,
            self._ssl_cert_verify,
            self._max_client_threads,
            self._protocol,
            self._storage_pools,
            self._qos,
            self._workload_type,
            self._auth_clients,
            self._auth_users,
            self._target_portals,
            self._alua_info,
        )

        for f in attr_funcs:
            f(xml_root)

    def _encode_authentication(self, tree, xml_root):
        need_encode = False
        for path in ('Storage/UserName', 'Storage/UserPassword',
                     'Storage/vStoreName'):
            node = xml_root.find(path)
            if (node is not None and node.text and
                    not node.text.startswith('!$$$')):
                encoded = base64.b64encode(node.text.encode()).decode()
                node.text = '!$$$' + encoded
                need_encode = True

        if need_encode:
            tree.write(self.conf.huawei_csi_conf_file, 'UTF-8')

    @staticmethod
    def _decode(text):
        return base64.b64decode(text[4:].encode()).decode()

    def _san_address(self, xml_root):
        text = xml_root.findtext('Storage/RestURL')
        if not text:
            msg = _("RestURL is not configured.")
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        addrs = []
        for addr in text.split(';'):
            addr = addr.strip()
            if addr and addr not in addrs:
                addrs.append(addr)
        setattr(self.conf, 'san_address', addrs)

    def _san_user(self, xml_root):
        text = xml_root.findtext('Storage/UserName')
        if not text:
            msg = _("UserName is not configured.")
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        setattr(self.conf, 'san_user', self._decode(text))

    def _san_password(self, xml_root):
        text = xml_root.findtext('Storage/UserPassword')
        if not text:
            msg = _("UserPassword is not configured.")
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        setattr(self.conf, 'san_password', self._decode(text))

    def _san_vstore(self, xml_root):
        vstore = None
        text = xml_root.findtext('Storage/vStoreName')
        if text:
            vstore = self._decode(text)
        setattr(self.conf, 'vstore_name', vstore)

    def _san_product(self, xml_root):
        text = xml_root.findtext('Storage/Product')
        if not text:
            msg = _("SAN product is not configured.")
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        product = text.strip()
        if product not in constants.VALID_PRODUCT:
            msg = _("Invalid SAN product %(text)s, SAN product must be "
                    "in %(valid)s.") % {'text': product,
                                        'valid': constants.VALID_PRODUCT}
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        setattr(self.conf, 'san_product', product)

    def _ssl_cert_path(self, xml_root):
        text = xml_root.findtext('Storage/SSLCertPath')
        setattr(self.conf, 'ssl_cert_path', text)

    def _ssl_cert_verify(self, xml_root):
        value = False
        text = xml_root.findtext('Storage/SSLCertVerify')
        if text:
            if text.lower() in ('true', 'false'):
                value = text.lower() == 'true'
            else:
                msg = _("SSLCertVerify configured error.")
                LOG.error(msg)
                raise exception.InvalidInput(reason=msg)

        setattr(self.conf, 'ssl_cert_verify', value)

    def _max_client_threads(self, xml_root):
        value = self.conf.safe_get('max_client_threads')
        if value is None:
            value = xml_root.findtext('Storage/MaxClientThreads')

        if self.conf.san_product == constants.PRODUCT_A_SERIES:
            default = constants.DEFAULT_DME_PARALLEL_COUNT
        else:
            default = constants.DEFAULT_PARALLEL_COUNT
        setattr(self.conf, 'parallel_count',
                huawei_utils.get_parallel_count(value, default))

    def _protocol(self, xml_root):
        text = xml_root.findtext('Storage/Protocol')
        if not text:
            msg = _("Protocol is not configured.")
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        protocol = text.strip().lower()
        if protocol not in constants.PROTOCOLS:
            msg = _("Invalid protocol %(text)s, protocol must be "
                    "in %(valid)s.") % {'text': protocol,
                                        'valid': constants.PROTOCOLS}
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        setattr(self.conf, 'protocol', protocol)

    def _storage_pools(self, xml_root):
        text = xml_root.findtext('Volume/StoragePool')
        if not text:
            msg = _('Storage pool is not configured.')
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        pools = []
        for pool in text.split(';'):
            pool = pool.strip()
            if pool and pool not in pools:
                pools.append(pool)
        if not pools:
            msg = _('No valid storage pool configured.')
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)

        setattr(self.conf, 'storage_pools', pools)

    def _qos(self, xml_root):
        text = xml_root.findtext('Volume/QoS')
        setattr(self.conf, 'qos', text.strip() if text else None)

    def _workload_type(self, xml_root):
        text = xml_root.findtext('Volume/WorkloadType')
        setattr(self.conf, 'workload_type', text.strip() if text else None)

    @staticmethod
    def _split_list(text):
        if not text:
            return []
        return [x.strip() for x in re.split('[;,]', text) if x.strip()]

    def _auth_clients(self, xml_root):
        clients = self._split_list(xml_root.findtext('Volume/AuthClients'))
        if self.conf.protocol == constants.PROTOCOL_NFS and not clients:
            LOG.warning('No AuthClients is configured for nfs protocol.')
        setattr(self.conf, 'auth_clients', clients)

    def _auth_users(self, xml_root):
        users = self._split_list(xml_root.findtext('Volume/AuthUsers'))
        setattr(self.conf, 'auth_users', users)

    def _target_portals(self, xml_root):
        text = xml_root.findtext('Storage/TargetPortal')
        portals = [ip.strip() for ip in (text or '').split() if ip.strip()]
        if (self.conf.protocol in (constants.PROTOCOL_ISCSI,
                                   constants.PROTOCOL_ROCE)
                and not portals):
            msg = _("TargetPortal must be configured for %s protocol."
                    ) % self.conf.protocol
            LOG.error(msg)
            raise exception.InvalidInput(reason=msg)
        setattr(self.conf, 'portals', portals)

    def _alua_info(self, xml_root):
        alua = {}
        for node in xml_root.findall('ALUA/Host') or []:
            if 'HostName' not in node.attrib:
                msg = _("HostName must be set for ALUA configuration.")
                LOG.error(msg)
                raise exception.InvalidInput(reason=msg)

            host_name = node.attrib['HostName']
            if host_name != '*':
                try:
                    re.compile(host_name)
                except re.error as err:
                    msg = _('Invalid ALUA configuration. '
                            'Reason: %s.') % err
                    LOG.error(msg)
                    raise exception.InvalidInput(reason=msg)

            alua[host_name] = {k: v for k, v in node.attrib.items()
                               if k in constants.ALUA_KEYS}

        setattr(self.conf, 'alua', alua)


def to_backend_config(conf):
    """Flatten a loaded Configuration into the dict the clients consume."""
    backend_id = conf.safe_get('backend_id') or conf.san_address[0]
    return {
        'backend_id': backend_id,
        'san_address': list(conf.san_address),
        'san_user': conf.san_user,
        'san_password': conf.san_password,
        'vstore_name': conf.vstore_name,
        'san_product': conf.san_product,
        'ssl_cert_verify': conf.ssl_cert_verify,
        'ssl_cert_path': conf.ssl_cert_path,
        'parallel_count': conf.parallel_count,
        'protocol': conf.protocol,
        'storage_pools': conf.storage_pools,
        'qos': conf.qos,
        'workload_type': conf.workload_type,
        'auth_clients': conf.auth_clients,
        'auth_users': conf.auth_users,
        'portals': conf.portals,
        'alua': conf.alua,
    }
