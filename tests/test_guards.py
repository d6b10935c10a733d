import discord
import pytest

from flurry.errors import PreRunError
from flurry.guards import (
    has_permissions_guard,
    in_guild_guard,
    is_owner_guard,
    missing_permissions,
)
from tests.flurry_fakes import FakeInteraction


def test_in_guild_guard() -> None:
    in_guild_guard(FakeInteraction("x", guild_id=1))
    with pytest.raises(PreRunError, match="only be used in a server"):
        in_guild_guard(FakeInteraction("x", guild_id=None))


def test_has_permissions_guard_lists_missing_permissions() -> None:
    granted = discord.Permissions(kick_members=True).value
    interaction = FakeInteraction("x", permissions=granted)

    has_permissions_guard(interaction, ["kick_members"])
    with pytest.raises(PreRunError, match="Ban Members, Manage Guild"):
        has_permissions_guard(interaction, ["kick_members", "ban_members", "manage_guild"])


def test_administrator_implies_everything() -> None:
    interaction = FakeInteraction("x", permissions=discord.Permissions(administrator=True).value)
    assert missing_permissions(interaction, ["ban_members"]) == []


def test_has_permissions_guard_requires_guild() -> None:
    with pytest.raises(PreRunError, match="server"):
        has_permissions_guard(FakeInteraction("x", guild_id=None), ["ban_members"])


def test_unknown_permission_flag() -> None:
    with pytest.raises(ValueError, match="fly"):
        missing_permissions(FakeInteraction("x"), ["fly"])


def test_is_owner_guard() -> None:
    is_owner_guard(FakeInteraction("x", user_id=42), [42])
    is_owner_guard(FakeInteraction("x", user_id=42), ["42"])
    with pytest.raises(PreRunError, match="owner"):
        is_owner_guard(FakeInteraction("x", user_id=7), [42])
    with pytest.raises(PreRunError):
        is_owner_guard(FakeInteraction("x", user_id=None), [42])
