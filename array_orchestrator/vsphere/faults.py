"""
vSphere Fault Mapping

Maps vSphere/vModl fault types to operator-facing messages for storage
provisioning operations.
"""

import re
from typing import Any, Dict, Optional, Tuple

VSPHERE_FAULT_MESSAGES: Dict[str, Dict[str, Any]] = {
    'vim.fault.InvalidLogin': {
        'title': 'Authentication Failed',
        'message': 'Invalid credentials for the ESXi host.',
        'is_recoverable': False,
    },
    'vim.fault.NoPermission': {
        'title': 'Permission Denied',
        'message': 'Insufficient permissions to perform this operation.',
        'is_recoverable': False,
    },
    'vim.fault.DuplicateName': {
        'title': 'Duplicate Name',
        'message': 'A datastore with this name already exists.',
        'is_recoverable': True,
    },
    'vim.fault.AlreadyExists': {
        'title': 'Already Exists',
        'message': 'The object already exists on the host.',
        'is_recoverable': True,
    },
    'vim.fault.ResourceInUse': {
        'title': 'Resource In Use',
        'message': 'The datastore is in use and cannot be removed.',
        'is_recoverable': True,
    },
    'vim.fault.HostConfigFault': {
        'title': 'Host Configuration Fault',
        'message': 'The host rejected the storage configuration change.',
        'is_recoverable': True,
    },
    'vim.fault.Timedout': {
        'title': 'Operation Timeout',
        'message': 'The host did not finish the operation in time.',
        'is_recoverable': True,
    },
    'vmodl.fault.HostCommunication': {
        'title': 'Host Unreachable',
        'message': 'Lost communication with the ESXi host.',
        'is_recoverable': True,
    },
    'vim.fault.NotFound': {
        'title': 'Not Found',
        'message': 'The requested device or object was not found on the host.',
        'is_recoverable': False,
    },
    'vmodl.fault.NotSupported': {
        'title': 'Operation Not Supported',
        'message': 'This operation is not supported on the target host.',
        'is_recoverable': False,
    },
}

_MSG_RE = re.compile(r"msg\s*=\s*['\"]([^'\"]+)['\"]")


def describe_vim_fault(error: Exception) -> Tuple[str, Optional[Dict[str, Any]]]:
    """
    Parse a pyVmomi exception and return a user-friendly message.

    Returns:
        Tuple of (friendly_message, fault_info_dict or None)
    """
    error_str = str(error)
    error_type = type(error).__name__
    actual_msg = getattr(error, 'msg', None)
    if not actual_msg:
        msg_match = _MSG_RE.search(error_str)
        actual_msg = msg_match.group(1) if msg_match else None

    for fault_pattern, info in VSPHERE_FAULT_MESSAGES.items():
        short_name = fault_pattern.rsplit('.', 1)[-1]
        if fault_pattern in error_str or error_type == short_name:
            return f"{info['title']}: {info['message']}", {
                'title': info['title'],
                'is_recoverable': info['is_recoverable'],
                'original_message': actual_msg,
                'fault_type': fault_pattern,
            }

    if actual_msg:
        return actual_msg, None

    return error_str or error_type, None
