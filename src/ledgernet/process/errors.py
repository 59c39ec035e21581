# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ledgernet/process/errors.py
class CommandError(RuntimeError):
    """Base class for external command failures."""

class CommandNotFoundError(CommandError):
    """Raised when the program (or its working directory) does not exist."""

class CommandStateError(CommandError):
    """Raised when a command is used out of order (e.g. started twice)."""
