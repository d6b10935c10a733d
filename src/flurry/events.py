"""Handler-map keys and their classification.

Every key a module puts in its handler map falls in exactly one of three
closed sets:

* native events are delivered by the platform client (pycord gateway events),
* lifecycle events are emitted by :class:`flurry.client.FlurryClient` itself,
* directed events are never attached to an emitter; the engine calls them
  and uses their return value.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

type EventKind = Literal["native", "lifecycle", "directed"]

NATIVE_EVENTS: frozenset[str] = frozenset(
    {
        # connection
        "connect",
        "disconnect",
        "ready",
        "resumed",
        "error",
        "shard_connect",
        "shard_disconnect",
        "shard_ready",
        "shard_resumed",
        "socket_event_type",
        "socket_raw_receive",
        "socket_raw_send",
        # interactions
        "interaction",
        "application_command",
        "application_command_completion",
        "application_command_error",
        "unknown_application_command",
        "application_command_permissions_update",
        # messages
        "message",
        "message_edit",
        "message_delete",
        "bulk_message_delete",
        "raw_message_edit",
        "raw_message_delete",
        "raw_bulk_message_delete",
        "typing",
        "raw_typing",
        # reactions
        "reaction_add",
        "reaction_remove",
        "reaction_clear",
        "reaction_clear_emoji",
        "raw_reaction_add",
        "raw_reaction_remove",
        "raw_reaction_clear",
        "raw_reaction_clear_emoji",
        # channels and threads
        "private_channel_update",
        "private_channel_pins_update",
        "guild_channel_create",
        "guild_channel_delete",
        "guild_channel_update",
        "guild_channel_pins_update",
        "thread_create",
        "thread_join",
        "thread_update",
        "thread_delete",
        "thread_remove",
        "raw_thread_update",
        "raw_thread_delete",
        "thread_member_join",
        "thread_member_remove",
        "raw_thread_member_remove",
        "webhooks_update",
        # members and users
        "member_join",
        "member_remove",
        "raw_member_remove",
        "member_update",
        "presence_update",
        "user_update",
        "member_ban",
        "member_unban",
        # guilds
        "guild_join",
        "guild_remove",
        "guild_update",
        "guild_available",
        "guild_unavailable",
        "guild_role_create",
        "guild_role_delete",
        "guild_role_update",
        "guild_emojis_update",
        "guild_stickers_update",
        "guild_integrations_update",
        "integration_create",
        "integration_update",
        "raw_integration_delete",
        "invite_create",
        "invite_delete",
        "audit_log_entry",
        "raw_audit_log_entry",
        # voice and stages
        "voice_state_update",
        "stage_instance_create",
        "stage_instance_delete",
        "stage_instance_update",
        # scheduled events
        "scheduled_event_create",
        "scheduled_event_update",
        "scheduled_event_delete",
        "scheduled_event_user_add",
        "scheduled_event_user_remove",
        "raw_scheduled_event_user_add",
        "raw_scheduled_event_user_remove",
        # automod
        "auto_moderation_rule_create",
        "auto_moderation_rule_update",
        "auto_moderation_rule_delete",
        "auto_moderation_action_execution",
        # monetization
        "entitlement_create",
        "entitlement_update",
        "entitlement_delete",
    }
)

LIFECYCLE_EVENTS: frozenset[str] = frozenset(
    {
        "load",
        "unload",
        "load_module",
        "unload_module",
        "run_module",
        "event_handled",
        "event_skipped",
        "autocomplete_interaction_error",
        "application_interaction_error",
        "framework_error",
        "framework_warn",
        "framework_debug",
    }
)

DIRECTED_EVENTS: frozenset[str] = frozenset(
    {
        "run",
        "autocomplete",
        "should_skip_event",
    }
)


def is_native_event(key: str) -> bool:
    return key in NATIVE_EVENTS


def is_lifecycle_event(key: str) -> bool:
    return key in LIFECYCLE_EVENTS


def is_directed_event(key: str) -> bool:
    return key in DIRECTED_EVENTS


def classify_event(key: str) -> EventKind | None:
    """Return which set ``key`` belongs to, or ``None`` if it is unknown."""
    if key in NATIVE_EVENTS:
        return "native"
    if key in LIFECYCLE_EVENTS:
        return "lifecycle"
    if key in DIRECTED_EVENTS:
        return "directed"
    return None


@dataclass(frozen=True, slots=True)
class EventDetails:
    name: str
    arguments: tuple[Any, ...] = field(default=())


@dataclass(frozen=True, slots=True)
class SkipReason:
    """Why a module was skipped for an event.

    ``message`` is shown to the user when the skipped event is an interaction.
    """

    message: str
    ephemeral: bool = False
