"""Type aliases using modern PEP 695 syntax.

This module defines type aliases for common type patterns throughout the
application, using Python 3.13+ type statement syntax.
"""

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime

# Provider configuration type
# Unvalidated provider settings as read from YAML; each plugin validates
# its own section with a Pydantic model at load time
type ProviderConfig = Mapping[str, object]

# Injectable clock returning a timezone-aware datetime
type Clock = Callable[[], datetime]

# Injectable async sleep used by retry loops and scheduler triggers
type Sleeper = Callable[[float], Awaitable[None]]

# Factory for correlation and job identifiers
type IdentifierFactory = Callable[[], str]
