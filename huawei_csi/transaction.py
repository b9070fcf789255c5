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

"""Ordered steps with reverse order compensation.

A Transaction is built for one logical operation, committed once, and rolled
back when the commit fails. Only the steps whose forward action completed
are compensated, last completed first. A failing compensation is logged and
reported to ``on_compensation_failure``, then the rollback moves on.

Transactions are not thread safe. Each one belongs to the thread running
the operation that built it.
"""

from oslo_log import log as logging
from oslo_utils import excutils

from huawei_csi import exception


LOG = logging.getLogger(__name__)


class Step(object):
    def __init__(self, forward, compensate=None, name=None):
        self.forward = forward
        self.compensate = compensate
        self.name = name or getattr(forward, '__name__', 'step')

    def __repr__(self):
        return '<Step %s>' % self.name


class Transaction(object):
    def __init__(self, name=None, on_compensation_failure=None,
                 cancel_event=None):
        self.name = name or 'transaction'
        self.on_compensation_failure = on_compensation_failure
        self.cancel_event = cancel_event
        self.steps = []
        self.cursor = 0

    def then(self, forward, compensate=None, name=None):
        self.steps.append(Step(forward, compensate, name))
        return self

    def commit(self):
        """Run the forward actions from the cursor on, in append order.

        The first exception stops the commit and propagates. The cursor is
        left one past the last step that completed.
        """
        while self.cursor < len(self.steps):
            if self.cancel_event is not None and self.cancel_event.is_set():
                LOG.warning('Transaction %s is cancelled before step %s.',
                            self.name, self.steps[self.cursor].name)
                raise exception.Cancelled(operation=self.name)

            step = self.steps[self.cursor]
            LOG.debug('Transaction %s runs step %s.', self.name, step.name)
            step.forward()
            self.cursor += 1

    def rollback(self):
        while self.cursor > 0:
            self.cursor -= 1
            step = self.steps[self.cursor]
            if step.compensate is None:
                continue

            LOG.info('Transaction %s compensates step %s.',
                     self.name, step.name)
            try:
                step.compensate()
            except Exception as err:
                LOG.warning('Transaction %(trans)s failed to compensate step '
                            '%(step)s: %(err)s. The remote object may need '
                            'manual cleanup.',
                            {'trans': self.name, 'step': step.name,
                             'err': err},
                            extra={'transaction': self.name,
                                   'step': step.name,
                                   'compensation_error': str(err)})
                self._notify_compensation_failure(step, err)

    def _notify_compensation_failure(self, step, err):
        if self.on_compensation_failure is None:
            return

        try:
            self.on_compensation_failure(step.name, err)
        except Exception:
            LOG.exception('Compensation failure hook of transaction %s '
                          'raised.', self.name)

    def run(self):
        """Commit, and roll back completed steps if the commit fails.

        The commit error is re-raised unchanged. A cancelled transaction is
        not rolled back.
        """
        try:
            self.commit()
        except exception.Cancelled:
            raise
        except Exception:
            with excutils.save_and_reraise_exception():
                self.rollback()
