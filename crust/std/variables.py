"""Builtin variables: read-only names computed each time they are read.

A binding made with ``let`` shadows any of them.
"""

import getpass
import os
import platform
import random
import shutil
import socket
from importlib import metadata
from typing import Any, Callable, Dict

from crust.types import I64_MAX


def populate_variables() -> Dict[str, Callable[[Any], Any]]:
    def var_null(shell):
        return None

    def var_pid(shell):
        return os.getpid()

    def var_home(shell):
        return shell.environ.get('HOME') or os.path.expanduser('~')

    def var_user(shell):
        try:
            return getpass.getuser()
        except (KeyError, OSError):
            return shell.environ.get('USER', '')

    def var_hostname(shell):
        return socket.gethostname()

    def var_os(shell):
        return platform.system().lower()

    def var_family(shell):
        return 'windows' if os.name == 'nt' else 'unix'

    def var_arch(shell):
        return platform.machine()

    def var_distro(shell):
        try:
            release = platform.freedesktop_os_release()
        except OSError:
            return platform.platform(terse=True)
        return release.get('PRETTY_NAME') or release.get('NAME', '')

    def var_desktop(shell):
        return shell.environ.get('XDG_CURRENT_DESKTOP', 'unknown')

    def var_status(shell):
        return shell.status

    def var_pwd(shell):
        return os.getcwd()

    def var_version(shell):
        try:
            return metadata.version('crust-shell')
        except metadata.PackageNotFoundError:
            return 'unknown'

    def var_random(shell):
        return random.randrange(I64_MAX)

    def var_lines(shell):
        return shutil.get_terminal_size().lines

    def var_columns(shell):
        return shutil.get_terminal_size().columns

    return {
        'null': var_null,
        'pid': var_pid,
        'home': var_home,
        'user': var_user,
        'hostname': var_hostname,
        'os': var_os,
        'family': var_family,
        'arch': var_arch,
        'distro': var_distro,
        'desktop': var_desktop,
        'status': var_status,
        'pwd': var_pwd,
        'version': var_version,
        'random': var_random,
        'lines': var_lines,
        'columns': var_columns,
    }
