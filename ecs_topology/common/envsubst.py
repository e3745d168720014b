#  -*- coding: utf-8 -*-
# SPDX-License-Identifier: MPL-2.0
# Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Environment variables interpolation of the topology files.

Supports ``$VAR``, ``${VAR}``, ``${VAR:-default}`` and ``${VAR:+alternative}``.
``${AWS::...}`` pseudo parameters are CloudFormation's and never expanded.
"""

import os
import re

ESCAPED_VAR_RE = re.compile(
    r"(?<!\\)\$(?:(?P<bare>\w+)|\{(?!AWS::)(?P<braced>[^}]*)\})"
)
VAR_RE = re.compile(r"\$(?:(?P<bare>\w+)|\{(?!AWS::)(?P<braced>[^}]*)\})")
MODIFIER_RE = re.compile(r"^(?P<name>\w+):(?P<operator>[-+])(?P<value>.*)$", re.S)
IF_UNDEFINED = "-"
IF_DEFINED = "+"


def expandvars(text, default=None, skip_escaped=True, environ=None):
    """
    Expands the environment variables found in text.

    :param str text: the string to interpolate
    :param str default: value of unknown variables. When None, they are left unchanged.
    :param bool skip_escaped: do not expand ``\\$VAR`` references
    :param dict environ: variables to use instead of os.environ
    :rtype: str
    """
    environ = os.environ if environ is None else environ

    def replace_var(match):
        name = match.group("bare") or match.group("braced")
        modifier = MODIFIER_RE.match(name)
        if not modifier:
            return environ.get(name, match.group(0) if default is None else default)
        value = environ.get(modifier.group("name"))
        if modifier.group("operator") == IF_UNDEFINED:
            return value or expandvars(
                modifier.group("value"), default, skip_escaped, environ
            )
        if value:
            return expandvars(modifier.group("value"), default, skip_escaped, environ)
        return ""

    pattern = ESCAPED_VAR_RE if skip_escaped else VAR_RE
    return pattern.sub(replace_var, text)


def interpolate_content(content, environ=None):
    """Returns a copy of the loaded topology content with every string interpolated"""
    if isinstance(content, dict):
        return {
            key: interpolate_content(value, environ) for key, value in content.items()
        }
    elif isinstance(content, list):
        return [interpolate_content(item, environ) for item in content]
    elif isinstance(content, str):
        return expandvars(content, environ=environ)
    return content
