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

"""Huawei CSI core exceptions.

Every exception carries a printf-style ``message`` template that is
rendered with the keyword arguments given to the constructor.
"""

from oslo_log import log as logging

from huawei_csi.i18n import _


LOG = logging.getLogger(__name__)


class HuaweiCsiException(Exception):
    """Base Huawei CSI Exception

    To correctly use this class, inherit from it and define
    a 'message' property. That message will get printf'd
    with the keyword arguments provided to the constructor.

    """
    message = _("An unknown exception occurred.")
    code = 500

    def __init__(self, message=None, **kwargs):
        self.kwargs = kwargs
        self.kwargs['message'] = message

        if 'code' not in self.kwargs:
            self.kwargs['code'] = self.code

        for k, v in self.kwargs.items():
            if isinstance(v, Exception):
                self.kwargs[k] = str(v)

        if self._should_format():
            try:
                message = self.message % kwargs
            except Exception:
                self._log_exception()
                message = self.message
        elif isinstance(message, Exception):
            message = str(message)

        # 'message' is shadowed by the class attribute, keep the rendered
        # text in 'msg'.
        self.msg = message
        super(HuaweiCsiException, self).__init__(message)
        self.kwargs.pop('message', None)

    def _log_exception(self):
        LOG.exception('Exception in string format operation:')
        for name, value in self.kwargs.items():
            LOG.error("%(name)s: %(value)s",
                      {'name': name, 'value': value})

    def _should_format(self):
        return self.kwargs['message'] is None or '%(message)' in self.message


class TransportError(HuaweiCsiException):
    message = _("Failed to reach storage backend %(url)s: %(reason)s")


class ProtocolError(HuaweiCsiException):
    message = _("Unexpected response from storage backend %(url)s: "
                "%(reason)s")


class DecodeError(HuaweiCsiException):
    message = _("Field %(field)s of %(obj)s has unexpected type %(type)s, "
                "value: %(value)s")


class BackendBusinessError(HuaweiCsiException):
    message = _("Bad or unexpected response from the storage backend API: "
                "%(data)s")

    def __init__(self, message=None, **kwargs):
        self.error_code = kwargs.pop('error_code', None)
        self.description = kwargs.pop('description', None)
        super(BackendBusinessError, self).__init__(message, **kwargs)


class Invalid(HuaweiCsiException):
    message = _("Unacceptable parameters.")
    code = 400


class InvalidInput(Invalid):
    message = _("Invalid input received: %(reason)s")


ValidationError = InvalidInput


class ConflictError(Invalid):
    message = _("Conflicting ownership: %(reason)s")
    code = 409


class AuthError(HuaweiCsiException):
    message = _("Failed to authenticate with storage backend: %(reason)s")
    code = 401


class NotFound(HuaweiCsiException):
    message = _("Resource could not be found: %(reason)s")
    code = 404


class WaitTimeout(HuaweiCsiException):
    message = _("Timed out after %(timeout)s seconds waiting for "
                "%(target)s.")


class Cancelled(HuaweiCsiException):
    message = _("Operation %(operation)s was cancelled.")
