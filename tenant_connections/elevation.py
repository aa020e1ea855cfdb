"""
Scoped elevated execution for certificate private-key operations.

Signing a client assertion needs access to the certificate's private key,
which the interactive caller's own identity may not be allowed to use. The
connection test therefore prepares credentials and requests its token inside
ElevatedContext.elevated(), which switches to the service identity for the
duration of the block and always switches back.
"""

import logging
import os
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CALLER_IDENTITY = "caller"

_current_identity: ContextVar[str] = ContextVar(
    "tenant_connections_execution_identity", default=CALLER_IDENTITY
)


def current_identity() -> str:
    """Return the execution identity in effect for the running code."""
    return _current_identity.get()


class ElevatedContext:
    """
    Runs code under a higher-privileged execution identity.

    Attributes:
        identity: Name of the elevated identity, recorded for the duration of the block
        uid: Optional POSIX user id to switch the effective uid to while elevated.
            Switching requires the process to be allowed to set that euid.
    """

    def __init__(self, identity: str = "service", uid: Optional[int] = None) -> None:
        if not identity:
            raise ValueError("Elevated identity name is required")
        self.identity = identity
        self.uid = uid

    @contextmanager
    def elevated(self) -> Iterator[str]:
        """
        Enter the elevated identity; restore the caller's identity on exit.

        Yields:
            The elevated identity name
        """
        caller = current_identity()
        token = _current_identity.set(self.identity)
        previous_euid: Optional[int] = None
        try:
            if self.uid is not None:
                previous_euid = os.geteuid()
                if previous_euid != self.uid:
                    os.seteuid(self.uid)
                    logger.debug(f"Effective uid switched {previous_euid} -> {self.uid}")
                else:
                    previous_euid = None
            logger.debug(f"Entered elevated context '{self.identity}' from '{caller}'")
            yield self.identity
        finally:
            if previous_euid is not None:
                os.seteuid(previous_euid)
                logger.debug(f"Effective uid restored to {previous_euid}")
            _current_identity.reset(token)
            logger.debug(f"Left elevated context '{self.identity}', back to '{caller}'")

    def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Call fn inside the elevated identity and return its result."""
        with self.elevated():
            return fn(*args, **kwargs)
