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
import time

from oslo_concurrency import lockutils
from oslo_log import log as logging
from oslo_utils import excutils

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi.i18n import _


LOG = logging.getLogger(__name__)

KILO = 1000
SECONDS_PER_DAY = 24 * 60 * 60


def _in_range(low, high):
    return lambda value: low <= value <= high


_DORADO_V6_VALIDATORS = {
    constants.QOS_IOTYPE: lambda value: value == 2,
    constants.QOS_MAXBANDWIDTH: _in_range(1, constants.QOS_MAX_VALUE),
    constants.QOS_MINBANDWIDTH: _in_range(1, constants.QOS_MAX_VALUE),
    constants.QOS_MAXIOPS: _in_range(100, constants.QOS_MAX_VALUE),
    constants.QOS_MINIOPS: _in_range(100, constants.QOS_MAX_VALUE),
    constants.QOS_LATENCY: lambda value: value in constants.QOS_LATENCY_VALUES,
}

_DORADO_VALIDATORS = {
    constants.QOS_IOTYPE: lambda value: value == 2,
    constants.QOS_MAXBANDWIDTH: lambda value: value > 0,
    constants.QOS_MAXIOPS: lambda value: value > 99,
}

_V3_V5_VALIDATORS = {
    constants.QOS_IOTYPE: lambda value: value in (0, 1, 2),
    constants.QOS_MAXBANDWIDTH: lambda value: value > 0,
    constants.QOS_MINBANDWIDTH: lambda value: value > 0,
    constants.QOS_MAXIOPS: lambda value: value > 0,
    constants.QOS_MINIOPS: lambda value: value > 0,
    constants.QOS_LATENCY: lambda value: value > 0,
}

QOS_VALIDATORS = {
    constants.PRODUCT_DORADO_V6: _DORADO_V6_VALIDATORS,
    constants.PRODUCT_V6: _DORADO_V6_VALIDATORS,
    constants.PRODUCT_A_SERIES: _DORADO_V6_VALIDATORS,
    constants.PRODUCT_DORADO: _DORADO_VALIDATORS,
    constants.PRODUCT_V3: _V3_V5_VALIDATORS,
    constants.PRODUCT_V5: _V3_V5_VALIDATORS,
}

# Products accepting a lower and an upper limit in the same policy.
BOTH_LIMITS_PRODUCTS = (constants.PRODUCT_DORADO_V6, constants.PRODUCT_V6,
                        constants.PRODUCT_A_SERIES)

# Products whose LATENCY is given in milliseconds and sent in microseconds.
LATENCY_MS_PRODUCTS = (constants.PRODUCT_DORADO_V6, constants.PRODUCT_V6,
                       constants.PRODUCT_A_SERIES)


def _invalid(msg):
    LOG.error(msg)
    return exception.InvalidInput(reason=msg)


def _is_lower_limit(key):
    return key.startswith('MIN') or key.startswith('LATENCY')


def extract_qos_parameters(product, qos_config):
    """Decode a QoS JSON string into a dict of float values.

    LATENCY is scaled from milliseconds to microseconds for the products
    that take microseconds.
    """
    try:
        raw = json.loads(qos_config)
    except (TypeError, ValueError) as err:
        raise _invalid(_('Failed to decode qos parameters %(qos)s: %(err)s.')
                       % {'qos': qos_config, 'err': err})

    if not isinstance(raw, dict):
        raise _invalid(_('Qos parameters %s must be a JSON object.')
                       % qos_config)

    params = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _invalid(_('Invalid QoS parameter %(key)s with value type '
                             '%(type)s for OceanStor %(product)s.')
                           % {'key': key, 'type': type(value).__name__,
                              'product': product})

        value = float(value)
        if key == constants.QOS_LATENCY and product in LATENCY_MS_PRODUCTS:
            value *= KILO
        params[key] = value

    return params


def check_qos_parameters_support(product, qos_params):
    validators = QOS_VALIDATORS.get(product)
    if validators is None:
        raise _invalid(_('QoS is currently not supported for OceanStor %s.')
                       % product)

    lower_limit = upper_limit = False
    for key, value in qos_params.items():
        validator = validators.get(key)
        if validator is None:
            raise _invalid(_('%(key)s is a invalid key for OceanStor '
                             '%(product)s QoS.')
                           % {'key': key, 'product': product})

        if not validator(int(value)):
            raise _invalid(_('%(key)s of qos parameter has invalid value '
                             '%(value)s.') % {'key': key, 'value': value})

        if _is_lower_limit(key):
            lower_limit = True
        elif key.startswith('MAX'):
            upper_limit = True

    if (product not in BOTH_LIMITS_PRODUCTS and
            lower_limit and upper_limit):
        raise _invalid(_('Cannot specify both lower and upper limits in qos '
                         'for OceanStor %s.') % product)


def validate_qos_parameters(product, qos_params):
    """Check mandatory keys and convert whole number values to int."""
    if product == constants.PRODUCT_DORADO:
        mandatory = constants.DORADO_V3_QOS_MANDATORY_KEYS
    else:
        mandatory = constants.QOS_MANDATORY_KEYS

    if not any(key in qos_params for key in mandatory):
        raise _invalid(_('Missing one of QoS parameter %(keys)s, now: '
                         '%(qos)s.') % {'keys': list(mandatory),
                                        'qos': qos_params})

    validated = {}
    for key, value in qos_params.items():
        if not float(value).is_integer():
            raise _invalid(_('QoS parameter %(key)s has invalid value '
                             '%(value)s. It should be integer.')
                           % {'key': key, 'value': value})
        validated[key] = int(value)

    return validated


def get_qos_parameters(product, qos_config):
    """Full QoS pipeline: decode, range check, then integer conversion."""
    qos_params = extract_qos_parameters(product, qos_config)
    check_qos_parameters_support(product, qos_params)
    return validate_qos_parameters(product, qos_params)


def _qos_list_key(obj_type):
    if obj_type == constants.FILESYSTEM_TYPE:
        return 'FSLIST'
    return 'LUNLIST'


class SmartQos(object):
    def __init__(self, client):
        self.client = client

    def _is_high_priority(self, qos):
        """Check QoS priority."""
        for key in qos:
            if _is_lower_limit(key):
                return True

        return False

    def _raise_priority(self, obj_type, obj_id, vstore_id):
        data = {"IOPRIORITY": constants.QOS_HIGH_PRIORITY}
        if obj_type == constants.FILESYSTEM_TYPE:
            self.client.update_filesystem(obj_id, data, vstore_id)
        else:
            self.client.update_lun(obj_id, data)

    @staticmethod
    def _get_qos_name(obj_type, obj_id):
        return '%s%s%s_%s' % (constants.QOS_NAME_PREFIX, obj_type, obj_id,
                              time.strftime('%Y%m%d%H%M%S'))

    def _get_schedule_start_time(self):
        utc_time = self.client.get_system_utc_time()
        return utc_time - utc_time % SECONDS_PER_DAY

    @lockutils.synchronized('huawei_qos')
    def add(self, qos, obj_type, obj_id, vstore_id=None):
        """Create a QoS policy for the object and activate it.

        Return the id of the policy.
        """
        if self._is_high_priority(qos):
            self._raise_priority(obj_type, obj_id, vstore_id)

        name = self._get_qos_name(obj_type, obj_id)
        policy = self.client.create_qos_policy(
            name, obj_type, obj_id, qos, self._get_schedule_start_time(),
            vstore_id)
        policy_id = policy.get_string('ID')
        if not policy_id:
            msg = _('Create QoS policy %s returned no id.') % name
            LOG.error(msg)
            raise exception.BackendBusinessError(data=msg)

        if policy.get_string('ENABLESTATUS') == 'false':
            try:
                self.client.activate_deactivate_qos(policy_id, True,
                                                    vstore_id)
            except exception.HuaweiCsiException:
                with excutils.save_and_reraise_exception():
                    self.client.delete_qos_policy(policy_id, vstore_id)

        return policy_id

    @lockutils.synchronized('huawei_qos')
    def remove(self, qos_id, obj_type, obj_id, vstore_id=None):
        qos_info = self.client.get_qos_by_id(qos_id, vstore_id)
        if not qos_info.exists:
            LOG.warning('QoS policy %s to remove not exist.', qos_id)
            return

        list_key = _qos_list_key(obj_type)
        obj_list = [x for x in qos_info.get_list(list_key) if x != obj_id]
        if obj_list:
            self.client.update_qos_policy(qos_id, {list_key: obj_list},
                                          vstore_id)
            return

        if (qos_info.get_string('RUNNINGSTATUS') !=
                constants.STATUS_QOS_INACTIVATED):
            self.client.activate_deactivate_qos(qos_id, False, vstore_id)
        self.client.delete_qos_policy(qos_id, vstore_id)
