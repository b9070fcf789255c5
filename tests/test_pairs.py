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

from unittest import mock

import pytest

from huawei_csi import constants
from huawei_csi import exception
from huawei_csi import huawei_utils
from huawei_csi import hypermetro
from huawei_csi import replication

Handle = huawei_utils.StorageObjectHandle

FS_PARAMS = {'NAME': 'pvc-1', 'CAPACITY': 2097152, 'workloadTypeId': '1'}


@pytest.fixture
def local_cli():
    cli = mock.Mock()
    cli.get_hypermetro_domain_id.return_value = 'domain1'
    cli.create_hypermetro.return_value = Handle({'ID': 'm1'})
    cli.get_remote_device_by_sn.return_value = Handle({'ID': 'dev1'})
    cli.create_replication_pair.return_value = Handle({'ID': 'p1'})
    cli.get_hypermetro_by_local_obj_id.return_value = Handle()
    cli.get_replication_pair_by_localres_name.return_value = Handle()
    return cli


@pytest.fixture
def remote_cli():
    cli = mock.Mock()
    cli.get_pool_by_name.return_value = Handle({'ID': '9', 'NAME': 'rpool'})
    cli.create_filesystem.return_value = Handle({'ID': 'r1'})
    cli.get_array_info.return_value = Handle({'ID': 'sn1'})
    cli.get_filesystem_by_name.return_value = Handle()
    cli.get_lun_info_by_name.return_value = Handle()
    return cli


class TestHyperMetro(object):
    @pytest.fixture
    def metro(self, local_cli, remote_cli):
        return hypermetro.HuaweiHyperMetro(
            local_cli, remote_cli,
            {'metro_domain': 'domain', 'storage_pools': ['rpool']})

    def test_create(self, metro, local_cli, remote_cli):
        info = metro.create_hypermetro('7', FS_PARAMS,
                                       constants.FILESYSTEM_TYPE)

        assert info == {'hypermetro_id': 'm1', 'created': True,
                        'remote_obj_created': True}
        remote_cli.get_filesystem_by_name.assert_called_once_with('pvc-1')
        remote_cli.create_filesystem.assert_called_once_with(
            {'NAME': 'pvc-1', 'CAPACITY': 2097152, 'PARENTID': '9'})
        param = local_cli.create_hypermetro.call_args[0][0]
        assert param['LOCALOBJID'] == '7'
        assert param['REMOTEOBJID'] == 'r1'
        assert param['DOMAINID'] == 'domain1'
        assert param['HCRESOURCETYPE'] == '2'
        local_cli.sync_hypermetro.assert_not_called()

    def test_missing_domain(self, metro, local_cli, remote_cli):
        local_cli.get_hypermetro_domain_id.return_value = None

        with pytest.raises(exception.NotFound):
            metro.create_hypermetro('7', FS_PARAMS,
                                    constants.FILESYSTEM_TYPE)
        remote_cli.create_filesystem.assert_not_called()

    def test_pair_failure_deletes_remote(self, metro, local_cli,
                                         remote_cli):
        error = exception.BackendBusinessError(data='pair')
        local_cli.create_hypermetro.side_effect = error

        with pytest.raises(exception.BackendBusinessError) as exc_info:
            metro.create_hypermetro('7', FS_PARAMS,
                                    constants.FILESYSTEM_TYPE)

        assert exc_info.value is error
        remote_cli.delete_filesystem.assert_called_once_with('r1')

    def test_sync_failure_deletes_pair(self, metro, local_cli, remote_cli):
        local_cli.sync_hypermetro.side_effect = (
            exception.BackendBusinessError(data='sync'))

        with pytest.raises(exception.BackendBusinessError):
            metro.create_hypermetro('7', FS_PARAMS,
                                    constants.FILESYSTEM_TYPE, is_sync=True)

        local_cli.delete_hypermetro.assert_called_once_with('m1')
        remote_cli.delete_filesystem.assert_called_once_with('r1')

    def test_existing_pair_is_reused(self, metro, local_cli, remote_cli):
        remote_cli.get_filesystem_by_name.return_value = Handle(
            {'ID': 'r1', 'NAME': 'pvc-1'})
        local_cli.get_hypermetro_by_local_obj_id.return_value = Handle(
            {'ID': 'm9'})

        info = metro.create_hypermetro('7', FS_PARAMS,
                                       constants.FILESYSTEM_TYPE,
                                       is_sync=True)

        assert info == {'hypermetro_id': 'm9', 'created': False,
                        'remote_obj_created': False}
        remote_cli.create_filesystem.assert_not_called()
        local_cli.create_hypermetro.assert_not_called()
        local_cli.sync_hypermetro.assert_not_called()

    def test_reused_remote_is_kept_on_failure(self, metro, local_cli,
                                              remote_cli):
        remote_cli.get_filesystem_by_name.return_value = Handle(
            {'ID': 'r1', 'NAME': 'pvc-1'})
        local_cli.create_hypermetro.side_effect = (
            exception.BackendBusinessError(data='pair'))

        with pytest.raises(exception.BackendBusinessError):
            metro.create_hypermetro('7', FS_PARAMS,
                                    constants.FILESYSTEM_TYPE)

        remote_cli.create_filesystem.assert_not_called()
        remote_cli.delete_filesystem.assert_not_called()

    def test_remote_lun_not_online_is_deleted(self, metro, local_cli,
                                              remote_cli):
        remote_cli.create_lun.return_value = Handle({'ID': 'r2'})
        remote_cli.get_lun_info_by_id.return_value = Handle()

        with pytest.raises(exception.NotFound):
            metro.create_hypermetro('7', {'NAME': 'pvc-1', 'CAPACITY': 2},
                                    constants.LUN_TYPE)

        remote_cli.delete_lun.assert_called_once_with('r2')
        local_cli.create_hypermetro.assert_not_called()

    def test_delete(self, metro, local_cli, remote_cli):
        local_cli.get_hypermetro_by_id.return_value = Handle(
            {'ID': 'm1', 'RUNNINGSTATUS': '1', 'REMOTEOBJID': 'r1'})

        metro.delete_hypermetro('m1', constants.LUN_TYPE)

        local_cli.stop_hypermetro.assert_called_once_with('m1')
        local_cli.delete_hypermetro.assert_called_once_with('m1')
        remote_cli.delete_lun.assert_called_once_with('r1')

    def test_delete_keeps_remote(self, metro, local_cli, remote_cli):
        local_cli.get_hypermetro_by_id.return_value = Handle(
            {'ID': 'm1', 'RUNNINGSTATUS': '41', 'REMOTEOBJID': 'r1'})

        metro.delete_hypermetro('m1', constants.LUN_TYPE,
                                delete_remote=False)

        local_cli.delete_hypermetro.assert_called_once_with('m1')
        remote_cli.delete_lun.assert_not_called()

    def test_delete_absent(self, metro, local_cli, remote_cli):
        local_cli.get_hypermetro_by_id.return_value = Handle()

        metro.delete_hypermetro('m1', constants.LUN_TYPE)

        local_cli.delete_hypermetro.assert_not_called()
        remote_cli.delete_lun.assert_not_called()

    def test_extend_resyncs_after_failure(self, metro, local_cli,
                                          remote_cli):
        local_cli.get_hypermetro_by_id.return_value = Handle(
            {'ID': 'm1', 'HEALTHSTATUS': '1', 'RUNNINGSTATUS': '1',
             'REMOTEOBJID': 'r1'})
        remote_cli.extend_filesystem.side_effect = (
            exception.BackendBusinessError(data='extend'))

        with pytest.raises(exception.BackendBusinessError):
            metro.extend_hypermetro('m1', 4194304, constants.FILESYSTEM_TYPE)

        local_cli.stop_hypermetro.assert_called_once_with('m1')
        local_cli.sync_hypermetro.assert_called_once_with('m1')

    def test_extend_absent(self, metro, local_cli):
        local_cli.get_hypermetro_by_id.return_value = Handle()

        with pytest.raises(exception.NotFound):
            metro.extend_hypermetro('m1', 4194304, constants.FILESYSTEM_TYPE)


class TestReplication(object):
    @pytest.fixture
    def manager(self, local_cli, remote_cli):
        return replication.ReplicationManager(
            local_cli, remote_cli, {'storage_pools': ['rpool']})

    def test_create_async(self, manager, local_cli, remote_cli):
        info = manager.create_replica('7', FS_PARAMS,
                                      constants.FILESYSTEM_TYPE)

        assert info == {'pair_id': 'p1', 'created': True,
                        'remote_obj_created': True}
        local_cli.get_remote_device_by_sn.assert_called_once_with('sn1')
        params = local_cli.create_replication_pair.call_args[0][0]
        assert params['LOCALRESID'] == '7'
        assert params['REMOTERESID'] == 'r1'
        assert params['REMOTEDEVICEID'] == 'dev1'
        assert params['LOCALRESTYPE'] == 40
        assert params['TIMINGVAL'] == constants.REPLICA_PERIOD
        local_cli.sync_replication_pair.assert_called_once_with('p1')

    def test_create_sync_model(self, manager, local_cli):
        manager.create_replica('7', FS_PARAMS, constants.FILESYSTEM_TYPE,
                               replica_model=constants.REPLICA_SYNC_MODEL)

        params = local_cli.create_replication_pair.call_args[0][0]
        assert 'TIMINGVAL' not in params

    def test_missing_remote_device(self, manager, local_cli, remote_cli):
        local_cli.get_remote_device_by_sn.return_value = Handle()

        with pytest.raises(exception.NotFound):
            manager.create_replica('7', FS_PARAMS, constants.FILESYSTEM_TYPE)
        remote_cli.create_filesystem.assert_not_called()

    def test_sync_failure_rolls_back(self, manager, local_cli, remote_cli):
        local_cli.sync_replication_pair.side_effect = (
            exception.BackendBusinessError(data='sync'))

        with pytest.raises(exception.BackendBusinessError):
            manager.create_replica('7', FS_PARAMS, constants.FILESYSTEM_TYPE)

        local_cli.delete_replication_pair.assert_called_once_with('p1')
        remote_cli.delete_filesystem.assert_called_once_with('r1')

    def test_existing_pair_is_reused(self, manager, local_cli, remote_cli):
        remote_cli.get_filesystem_by_name.return_value = Handle(
            {'ID': 'r1', 'NAME': 'pvc-1'})
        local_cli.get_replication_pair_by_localres_name.return_value = (
            Handle({'ID': 'p9'}))

        info = manager.create_replica('7', FS_PARAMS,
                                      constants.FILESYSTEM_TYPE)

        assert info == {'pair_id': 'p9', 'created': False,
                        'remote_obj_created': False}
        local_cli.get_replication_pair_by_localres_name \
            .assert_called_once_with('pvc-1')
        local_cli.create_replication_pair.assert_not_called()
        local_cli.sync_replication_pair.assert_not_called()

    def test_sync_failure_keeps_reused_remote(self, manager, local_cli,
                                              remote_cli):
        remote_cli.get_filesystem_by_name.return_value = Handle(
            {'ID': 'r1', 'NAME': 'pvc-1'})
        local_cli.sync_replication_pair.side_effect = (
            exception.BackendBusinessError(data='sync'))

        with pytest.raises(exception.BackendBusinessError):
            manager.create_replica('7', FS_PARAMS, constants.FILESYSTEM_TYPE)

        local_cli.delete_replication_pair.assert_called_once_with('p1')
        remote_cli.create_filesystem.assert_not_called()
        remote_cli.delete_filesystem.assert_not_called()

    def test_delete_splits_first(self, manager, local_cli, remote_cli):
        local_cli.get_replication_pair_by_id.side_effect = [
            Handle({'ID': 'p1', 'HEALTHSTATUS': '1', 'RUNNINGSTATUS': '1',
                    'REMOTERESID': 'r1'}),
            Handle({'ID': 'p1', 'HEALTHSTATUS': '1', 'RUNNINGSTATUS': '26'}),
        ]

        manager.delete_replica('p1', constants.FILESYSTEM_TYPE)

        local_cli.split_replication_pair.assert_called_once_with('p1')
        local_cli.delete_replication_pair.assert_called_once_with('p1')
        remote_cli.delete_filesystem.assert_called_once_with('r1')

    def test_delete_already_split(self, manager, local_cli):
        local_cli.get_replication_pair_by_id.return_value = Handle(
            {'ID': 'p1', 'RUNNINGSTATUS': '26', 'REMOTERESID': 'r1'})

        manager.delete_replica('p1', constants.FILESYSTEM_TYPE)

        local_cli.split_replication_pair.assert_not_called()
        local_cli.delete_replication_pair.assert_called_once_with('p1')

    def test_delete_absent(self, manager, local_cli):
        local_cli.get_replication_pair_by_id.return_value = Handle()

        manager.delete_replica('p1', constants.FILESYSTEM_TYPE)

        local_cli.delete_replication_pair.assert_not_called()

    def test_delete_keeps_remote(self, manager, local_cli, remote_cli):
        local_cli.get_replication_pair_by_id.return_value = Handle(
            {'ID': 'p1', 'RUNNINGSTATUS': '26', 'REMOTERESID': 'r1'})

        manager.delete_replica('p1', constants.FILESYSTEM_TYPE,
                               delete_remote=False)

        local_cli.delete_replication_pair.assert_called_once_with('p1')
        remote_cli.delete_filesystem.assert_not_called()
