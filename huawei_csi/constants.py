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

DATA = 'data'
ERROR = 'error'
ID_UPPER = 'ID'

SUCCESS = 0

ERROR_CONNECT_TO_SERVER = -403
ERROR_UNAUTHORIZED_TO_SERVER = -401
ERROR_USER_OFFLINE = 1077949069
ERROR_IP_LOCKED = 1077949071
RELOGIN_ERROR_CODE = (ERROR_UNAUTHORIZED_TO_SERVER, ERROR_USER_OFFLINE)
WRONG_PASSWORD_CODES = (1077987870, 1077949081, 1077949061)
ACCOUNT_LOCKED_CODES = (1077949070, 1077987871)

SYSTEM_BUSY = 1077949006
MSG_TIMEOUT = 1077949001
RETRY_ERROR_CODES = (SYSTEM_BUSY, MSG_TIMEOUT)

OBJECT_NAME_ALREADY_EXIST = 1077948993
OBJECT_NOT_EXIST = 1077948996
OBJECT_ID_NOT_UNIQUE = 1077948997
ERROR_PARAMETER_ERROR = 50331651

FILESYSTEM_NOT_EXIST = 1073752065
FS_CAPACITY_LOWER_THAN_LIMIT = 1073844376
FS_CAPACITY_EXCEED_LIMIT = 1073844377

SHARE_NOT_EXIST = 1077939717
SHARE_ALREADY_EXIST = 1077939724
NFS_SHARE_NOT_EXIST = 1077939726
CLIENT_ALREADY_EXIST = 1077939727
SHARE_PATH_INVALID = 1077939729
SHARE_PATH_ALREADY_EXIST = 1077940500

LUN_NOT_EXIST = 1077936859
LUN_ALREADY_IN_LUNGROUP = 1077936862
HOSTGROUP_NOT_EXIST = 1077937500
HOST_ALREADY_IN_HOSTGROUP = 1077937501
HOST_NOT_IN_HOSTGROUP = 1073745412
HOSTGROUP_NOT_IN_MAPPINGVIEW = 1073804552
LUNGROUP_NOT_IN_MAPPINGVIEW = 1073804554
HOSTGROUP_ALREADY_IN_MAPPINGVIEW = 1073804556
LUNGROUP_ALREADY_IN_MAPPINGVIEW = 1073804560
MAPPINGVIEW_NOT_EXIST = 1077951819

HYPERMETRO_NOT_EXIST = 1077674242
HYPERMETRO_ALREADY_EXIST = 1077674256
REPLICATION_PAIR_NOT_EXIST = 1077937923

STATUS_HEALTH = '1'
STATUS_RUNNING = '27'
STATUS_FC_ONLINE = '27'
STATUS_QOS_ACTIVE = '2'
STATUS_QOS_INACTIVATED = '45'
STATUS_INITIALIZE = '53'
LUN_INITIALIZING = '53'

FS_SPLIT_STATUSES = (FS_SPLIT_NOT_START,
                     FS_SPLIT_SPLITTING,
                     FS_SPLIT_QUEUING,
                     FS_SPLIT_ABNORMAL) = ('1', '2', '3', '4')

PWD_EXPIRED_OR_INITIAL = (3, 4)

SOCKET_TIMEOUT = 60
LOGIN_SOCKET_TIMEOUT = 32
GET_PATCH_NUM = 100
GET_INFO_WAIT_INTERVAL = 10
GET_INFO_RETRY_TIMES = 10
DEFAULT_WAIT_INTERVAL = 5
DEFAULT_WAIT_TIMEOUT = 6 * 60 * 60
LUN_ONLINE_WAIT_INTERVAL = 3
HOST_LUN_ID_RETRY_TIMES = 3

DEFAULT_PARALLEL_COUNT = 30
DEFAULT_DME_PARALLEL_COUNT = 5
MAX_PARALLEL_COUNT = 30
MIN_PARALLEL_COUNT = 1
MAX_STORAGE_THREADS = 100

DEFAULT_VSTORE = 'System_vStore'
DEFAULT_VSTORE_ID = '0'

UNCONNECTED = 'unconnected'

MAX_NAME_LENGTH = 31
HOST_NAME_PREFIX = 'k8s_'
QOS_NAME_PREFIX = 'k8s_'

PRODUCT_TYPES = (PRODUCT_V3,
                 PRODUCT_V5,
                 PRODUCT_V6,
                 PRODUCT_DORADO,
                 PRODUCT_DORADO_V6,
                 PRODUCT_A_SERIES) = ('V3', 'V5', 'V6', 'Dorado',
                                      'DoradoV6', 'A-series')
VALID_PRODUCT = PRODUCT_TYPES
DORADO_V6_AND_V6_PRODUCT = (PRODUCT_DORADO_V6, PRODUCT_V6)

PROTOCOLS = (PROTOCOL_NFS,
             PROTOCOL_DTFS,
             PROTOCOL_ISCSI,
             PROTOCOL_FC,
             PROTOCOL_ROCE,
             PROTOCOL_FC_NVME) = ('nfs', 'dtfs', 'iscsi', 'fc', 'roce',
                                  'fc-nvme')
FILE_PROTOCOLS = (PROTOCOL_NFS, PROTOCOL_DTFS)
BLOCK_PROTOCOLS = (PROTOCOL_ISCSI, PROTOCOL_FC, PROTOCOL_ROCE,
                   PROTOCOL_FC_NVME)

QOS_KEYS = (QOS_IOTYPE,
            QOS_MAXBANDWIDTH,
            QOS_MINBANDWIDTH,
            QOS_MAXIOPS,
            QOS_MINIOPS,
            QOS_LATENCY) = ('IOTYPE', 'MAXBANDWIDTH', 'MINBANDWIDTH',
                            'MAXIOPS', 'MINIOPS', 'LATENCY')
QOS_LOWER_LIMIT = ('MINIOPS', 'LATENCY', 'MINBANDWIDTH')
QOS_UPPER_LIMIT = ('MAXIOPS', 'MAXBANDWIDTH')
QOS_MANDATORY_KEYS = ('MAXBANDWIDTH', 'MINBANDWIDTH', 'MAXIOPS', 'MINIOPS',
                      'LATENCY')
DORADO_V3_QOS_MANDATORY_KEYS = ('MAXBANDWIDTH', 'MAXIOPS')
QOS_LATENCY_VALUES = (500, 1500)
QOS_MAX_VALUE = 999999999
QOS_HIGH_PRIORITY = '3'
QOS_DURATION = 86400
QOS_START_TIME = '00:00'
QOS_SCHEDULE_POLICY = 1

OBJ_TYPES = (FILESYSTEM_TYPE, LUN_TYPE) = ('fs', 'lun')

ASSOCIATE_TYPES = (HOST_TYPE,
                   HOSTGROUP_TYPE,
                   LUN_OBJ_TYPE,
                   LUNGROUP_TYPE,
                   MAPPINGVIEW_TYPE) = ('21', '14', '11', '256', '245')

INITIATOR_TYPE_ISCSI = '222'
INITIATOR_TYPE_FC = '223'
ROCE_INITIATOR_TYPE = '57870'
ROCE_SUPPORT_PROTOCOL = '64'
ISCSI_PORT = '3260'

ALUA_KEYS = ('MULTIPATHTYPE', 'FAILOVERMODE', 'SPECIALMODETYPE', 'PATHTYPE')

ACCESS_NFS_RW = 1
DATATURBO_PERMISSION_RW = 1
NFS_SYNC = 0
NFS_NO_ALL_SQUASH = 1
NFS_NO_ROOT_SQUASH = 1

CAPACITY_UNIT = 512

SENSITIVE_KEYS = ('password', 'san_password', 'iBaseToken', 'CHAPPASSWORD')

FS_ALLOC_TYPE_THIN = 1
FS_SPLIT_SPEED_DEFAULT = 2
NFS_SHARE_PATH_FORMAT = '/%s/'

METRO_HEALTH_NORMAL = '1'
METRO_RUNNING_NORMAL = '1'
METRO_RUNNING_SYNC = '23'
METRO_RUNNING_TO_BE_SYNC = '100'
METRO_SYNC_SPEED_DEFAULT = '2'
HYPERMETRO_RESOURCE_TYPES = {LUN_TYPE: '1', FILESYSTEM_TYPE: '2'}

REPLICA_HEALTH_STATUS_NORMAL = '1'
REPLICA_RUNNING_STATUS_NORMAL = '1'
REPLICA_RUNNING_STATUS_SYNC = '23'
REPLICA_RUNNING_STATUS_SPLIT = '26'
REPLICA_RUNNING_STATUS_INTERRUPTED = '34'
REPLICA_SYNC_MODEL = '1'
REPLICA_ASYNC_MODEL = '2'
REPLICA_PERIOD = '3600'
REPLICA_SPEED_HIGHEST = '4'
REPLICATION_RESOURCE_TYPES = {LUN_TYPE: 11, FILESYSTEM_TYPE: 40}
