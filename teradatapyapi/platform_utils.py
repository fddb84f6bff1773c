"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.

Platform detection utilities for teradatapyapi.

The native driver is distributed as one shared library per platform and
architecture. This module computes the file name the library loader looks for.
"""

import platform
import struct
import sys

LIBRARY_BASENAME = "teradatasql"

FIPS_ENABLED_PATH = "/proc/sys/crypto/fips_enabled"


def _pointer_bits() -> int:
    return struct.calcsize("P") * 8


def _is_fips_enabled() -> bool:
    """Return True when the Linux kernel reports FIPS mode."""
    try:
        with open(FIPS_ENABLED_PATH, encoding="ascii") as f:
            return f.read().strip() == "1"
    except OSError:
        return False


def get_library_extension() -> str:
    """
    Get the file extension of the native driver build for this process.

    Returns:
        str: Extension such as "so", "arm.so", "fips.so", "dylib" or "dll".
    """
    machine = platform.machine().lower()
    is_arm = machine.startswith("arm") or machine.startswith("aarch")
    is_power = machine == "ppc64le"
    bits = _pointer_bits()

    if sys.platform.startswith("win"):
        return "x86.dll" if bits == 32 else "dll"

    if sys.platform.startswith("darwin"):
        return "dylib"

    if sys.platform.startswith("aix"):
        return "aix.so"

    is_fips = sys.platform.startswith("linux") and _is_fips_enabled()

    if is_arm and is_fips:
        return "arm.fips.so"
    elif is_arm:
        return "arm.so"
    elif is_power:
        return "power.so"
    elif bits == 32:
        return "x86.so"
    elif is_fips:
        return "fips.so"
    return "so"


def get_library_filename() -> str:
    """Return the native driver file name, e.g. ``teradatasql.so``."""
    return f"{LIBRARY_BASENAME}.{get_library_extension()}"
