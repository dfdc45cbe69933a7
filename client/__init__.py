"""Client-side vehicle list sync and optimistic mutations."""

from client.api_client import (
    ApiError,
    ConfigError,
    NetworkError,
    RequestTimeoutError,
    VehicleApiClient,
    get_error_message,
)
from client.broadcast import VehicleListChannel, get_vehicle_list_channel, read_snapshot, write_snapshot
from client.mutations import Mutation, MutationState, OptimisticMutations
from client.sync import VehicleSync

__all__ = [
    "ApiError",
    "ConfigError",
    "NetworkError",
    "RequestTimeoutError",
    "VehicleApiClient",
    "get_error_message",
    "VehicleListChannel",
    "get_vehicle_list_channel",
    "read_snapshot",
    "write_snapshot",
    "Mutation",
    "MutationState",
    "OptimisticMutations",
    "VehicleSync",
]
