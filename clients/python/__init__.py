"""Python client stubs for interacting with the command gate API."""

from .client import CommandGateClient, CommandCheckRequest, PolicyFacts
from .async_client import AsyncCommandGateClient

__all__ = ["CommandGateClient", "CommandCheckRequest", "PolicyFacts", "AsyncCommandGateClient"]
