"""
The Supervisor package.
Spawns, watches and stops the embedded server's child processes.

This package contains the ManagedProcess class and its helper modules, which
together handle argument assembly, console output scanning, termination and
the process-wide exit guard.
"""
from .process import ManagedProcess, ManagedProcessBuilder, ProcessState
from .output import OutputMatcher, RegexMatcher, SubstringMatcher

__all__ = [
    'ManagedProcess', 'ManagedProcessBuilder', 'ProcessState',
    'OutputMatcher', 'RegexMatcher', 'SubstringMatcher',
]
