from __future__ import annotations

import collections
import itertools
import logging
import unittest.mock
from asyncio import AbstractEventLoop
from collections.abc import Iterable
from functools import cached_property

import discord
from aiohttp import ClientSession
from discord.ext.commands import Context
from pydis_core.async_stats import AsyncStatsClient

from gatekeeper.bot import Bot

for logger in logging.Logger.manager.loggerDict.values():
    # Keep test output readable; individual tests opt back in with assertLogs.

    if not isinstance(logger, logging.Logger):
        # There might be some logging.PlaceHolder objects in there
        continue

    logger.setLevel(logging.CRITICAL)


class HashableMixin(discord.mixins.EqualityComparable):
    """
    Mixin giving mocks the hashing and equality behaviour of discord.py's `Hashable` mixin.

    discord.py shifts `self.id` right by 22 bits when hashing. The small ids used in tests would
    all collide after that shift, so the id is used as-is.
    """

    def __hash__(self):
        return self.id


class ColourMixin:
    """Alias `color` to `colour` on mocks the same way discord.py does."""

    @property
    def color(self) -> discord.Colour:
        return self.colour

    @color.setter
    def color(self, color: discord.Colour) -> None:
        self.colour = color


class CustomMockMixin:
    """
    Shared behaviour for the discord.py mocks below.

    `spec_set` is the object a mock imitates. Coroutine methods of it are mocked with an AsyncMock,
    and `additional_spec_asyncs` lists further attribute names that should be mocked that way, for
    synchronous methods that return awaitables.
    """

    child_mock_type = unittest.mock.MagicMock
    discord_id = itertools.count(0)
    spec_set = None
    additional_spec_asyncs = None

    def __init__(self, **kwargs):
        name = kwargs.pop("name", None)  # `name` means something else to Mock, so it's set afterwards.
        super().__init__(spec_set=self.spec_set, **kwargs)

        if self.additional_spec_asyncs:
            self._spec_asyncs.extend(self.additional_spec_asyncs)

        if name:
            self.name = name

    def _get_child_mock(self, **kw):
        """
        Create children as `child_mock_type` instead of the type of the parent.

        The attributes of a mocked `discord.Guild` are not guilds themselves, so they shouldn't be
        `MockGuild` instances either.
        """
        _new_name = kw.get("_new_name")
        if _new_name in self.__dict__["_spec_asyncs"]:
            return unittest.mock.AsyncMock(**kw)

        _type = type(self)
        if issubclass(_type, unittest.mock.MagicMock) and _new_name in unittest.mock._async_method_magics:
            klass = unittest.mock.AsyncMock
        else:
            klass = self.child_mock_type

        if self._mock_sealed:
            attribute = "." + kw["name"] if "name" in kw else "()"
            mock_name = self._extract_mock_name() + attribute
            raise AttributeError(mock_name)

        return klass(**kw)


# A real `discord.Guild` for `MockGuild` to take its spec from.
guild_data = {
    "id": 1,
    "name": "guild",
    "verification_level": 2,
    "default_notications": 1,
    "afk_timeout": 100,
    "icon": "icon.png",
    "banner": "banner.png",
    "mfa_level": 1,
    "splash": "splash.png",
    "system_channel_id": 464033278631084042,
    "description": "mocking is fun",
    "max_presences": 10_000,
    "max_members": 100_000,
    "preferred_locale": "UTC",
    "owner_id": 1,
    "afk_channel_id": 464033278631084042,
}
guild_instance = discord.Guild(data=guild_data, state=unittest.mock.MagicMock())


class MockGuild(CustomMockMixin, unittest.mock.Mock, HashableMixin):
    """
    A `Mock` subclass to mock `discord.Guild` objects.

    Accessing an attribute a real guild doesn't have raises an `AttributeError`, and the mock passes
    `isinstance(guild, discord.Guild)`.

    By default the bot member (`guild.me`) can manage roles and its highest role sits at position 10,
    and the guild has an `owner` whose DMs go through.
    """
    spec_set = guild_instance

    def __init__(self, roles: Iterable[MockRole] | None = None, **kwargs) -> None:
        default_kwargs = {"id": next(self.discord_id), "name": "guild", "members": [], "chunked": True}
        super().__init__(**collections.ChainMap(kwargs, default_kwargs))

        if roles:
            self.roles = [
                MockRole(name="@everyone", position=1, id=0),
                *roles
            ]

        if "me" not in kwargs:
            self.me = MockMember(
                name="gatekeeper",
                roles=[MockRole(name="gatekeeper", position=10)],
                guild_permissions=discord.Permissions(manage_roles=True),
            )
        if "owner" not in kwargs:
            self.owner = MockMember(name="owner")
            self.owner_id = self.owner.id

    @cached_property
    def roles(self) -> list[MockRole]:
        """Cached roles property."""
        return [MockRole(name="@everyone", position=1, id=0)]

    def get_role(self, role_id: int) -> MockRole | None:
        return discord.utils.get(self.roles, id=role_id)


# A real `discord.Role` for `MockRole` to take its spec from.
role_data = {"name": "role", "id": 1}
role_instance = discord.Role(guild=guild_instance, state=unittest.mock.MagicMock(), data=role_data)


class MockRole(CustomMockMixin, unittest.mock.Mock, ColourMixin, HashableMixin):
    """A Mock subclass to mock `discord.Role` objects. See `MockGuild` for how the spec is applied."""
    spec_set = role_instance

    def __init__(self, **kwargs) -> None:
        default_kwargs = {
            "id": next(self.discord_id),
            "name": "role",
            "position": 1,
            "colour": discord.Colour(0xdeadbf),
            "permissions": discord.Permissions(),
        }
        super().__init__(**collections.ChainMap(kwargs, default_kwargs))

        if isinstance(self.colour, int):
            self.colour = discord.Colour(self.colour)

        if "mention" not in kwargs:
            self.mention = f"&{self.name}"

    def __lt__(self, other):
        """Compare by position, like `discord.Role` does."""
        return self.position < other.position

    def __ge__(self, other):
        """Compare by position, like `discord.Role` does."""
        return self.position >= other.position


# A real `discord.Member` for `MockMember` to take its spec from.
member_data = {"user": "lemon", "roles": [1], "flags": 2}
state_mock = unittest.mock.MagicMock()
member_instance = discord.Member(data=member_data, guild=guild_instance, state=state_mock)


class MockMember(CustomMockMixin, unittest.mock.Mock, ColourMixin, HashableMixin):
    """A Mock subclass to mock `discord.Member` objects. See `MockGuild` for how the spec is applied."""
    spec_set = member_instance

    def __init__(self, roles: Iterable[MockRole] | None = None, **kwargs) -> None:
        default_kwargs = {"name": "member", "id": next(self.discord_id), "bot": False, "nick": None}
        super().__init__(**collections.ChainMap(kwargs, default_kwargs))

        self.roles = [MockRole(name="@everyone", position=1, id=0)]
        if roles:
            self.roles.extend(roles)
        self.top_role = max(self.roles)

        if "mention" not in kwargs:
            self.mention = f"@{self.name}"

    def get_role(self, role_id: int) -> MockRole | None:
        return discord.utils.get(self.roles, id=role_id)


# A real `discord.User` for `MockUser` to take its spec from.
_user_data_mock = collections.defaultdict(unittest.mock.MagicMock, {
    "accent_color": 0
})
user_instance = discord.User(
    data=unittest.mock.MagicMock(get=unittest.mock.Mock(side_effect=_user_data_mock.get)),
    state=unittest.mock.MagicMock()
)


class MockUser(CustomMockMixin, unittest.mock.Mock, ColourMixin, HashableMixin):
    """A Mock subclass to mock `discord.User` objects. See `MockGuild` for how the spec is applied."""
    spec_set = user_instance

    def __init__(self, **kwargs) -> None:
        default_kwargs = {"name": "user", "id": next(self.discord_id), "bot": False}
        super().__init__(**collections.ChainMap(kwargs, default_kwargs))

        if "mention" not in kwargs:
            self.mention = f"@{self.name}"


def _get_mock_loop() -> unittest.mock.Mock:
    """Return a mocked asyncio.AbstractEventLoop."""
    loop = unittest.mock.create_autospec(spec=AbstractEventLoop, spec_set=True)

    # Nothing runs the coroutines handed to the mocked loop, so close them to avoid
    # "coroutine was never awaited" warnings.
    def mock_create_task(coroutine, **kwargs):
        coroutine.close()
        return unittest.mock.Mock()
    loop.create_task.side_effect = mock_create_task

    return loop


class MockBot(CustomMockMixin, unittest.mock.MagicMock):
    """A MagicMock subclass to mock `gatekeeper.bot.Bot` objects. See `MockGuild` for how the spec is applied."""
    spec_set = Bot(
        command_prefix=unittest.mock.MagicMock(),
        loop=_get_mock_loop(),
        http_session=unittest.mock.MagicMock(),
        allowed_roles=[],
        guild_id=1,
        intents=discord.Intents.all(),
    )
    additional_spec_asyncs = ("wait_for",)

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)

        self.add_cog = unittest.mock.AsyncMock()

    @cached_property
    def loop(self) -> unittest.mock.Mock:
        """Cached loop property."""
        return _get_mock_loop()

    @cached_property
    def http_session(self) -> unittest.mock.Mock:
        """Cached http_session property."""
        return unittest.mock.create_autospec(spec=ClientSession, spec_set=True)

    @cached_property
    def stats(self) -> unittest.mock.Mock:
        """Cached stats property."""
        return unittest.mock.create_autospec(spec=AsyncStatsClient, spec_set=True)


# A real `discord.TextChannel` for `MockTextChannel` to take its spec from.
channel_data = {
    "id": 1,
    "type": "TextChannel",
    "name": "channel",
    "parent_id": 1234567890,
    "topic": "topic",
    "position": 1,
    "nsfw": False,
    "last_message_id": 1,
}
text_channel_instance = discord.TextChannel(
    state=unittest.mock.MagicMock(), guild=unittest.mock.MagicMock(), data=channel_data
)


class MockTextChannel(CustomMockMixin, unittest.mock.Mock, HashableMixin):
    """A Mock subclass to mock `discord.TextChannel` objects. See `MockGuild` for how the spec is applied."""
    spec_set = text_channel_instance

    def __init__(self, **kwargs) -> None:
        default_kwargs = {"id": next(self.discord_id), "name": "channel"}
        super().__init__(**collections.ChainMap(kwargs, default_kwargs))

        if "mention" not in kwargs:
            self.mention = f"#{self.name}"

    @cached_property
    def guild(self) -> MockGuild:
        """Cached guild property."""
        return MockGuild()


# A real `discord.Message` for `MockMessage` to take its spec from.
message_data = {
    "id": 1,
    "webhook_id": 431341013479718912,
    "attachments": [],
    "embeds": [],
    "application": {"id": 4, "description": "A verification bot", "name": "Gatekeeper", "icon": None},
    "activity": "mocking",
    "channel": unittest.mock.MagicMock(),
    "edited_timestamp": "2019-10-14T15:33:48+00:00",
    "type": "message",
    "pinned": False,
    "mention_everyone": False,
    "tts": None,
    "content": "content",
    "nonce": None,
}
_message_channel = unittest.mock.MagicMock()
_message_channel.type = discord.ChannelType.text
message_instance = discord.Message(state=unittest.mock.MagicMock(), channel=_message_channel, data=message_data)


class MockMessage(CustomMockMixin, unittest.mock.MagicMock):
    """
    A MagicMock subclass to mock `discord.Message` objects. See `MockGuild` for how the spec is applied.

    Unless given, the author is a `MockMember` and the message is sent in a `MockTextChannel` of the
    message's guild.
    """
    spec_set = message_instance

    def __init__(self, **kwargs) -> None:
        default_kwargs = {"attachments": []}
        super().__init__(**collections.ChainMap(kwargs, default_kwargs))
        self.author = kwargs.get("author", MockMember())
        self.channel = kwargs.get("channel", MockTextChannel())
        if "guild" not in kwargs:
            self.guild = self.channel.guild


# A real `Context` for `MockContext` to take its spec from.
context_instance = Context(
    message=unittest.mock.MagicMock(),
    prefix="!",
    bot=MockBot(),
    view=None
)
context_instance.invoked_from_error_handler = None


class MockContext(CustomMockMixin, unittest.mock.MagicMock):
    """A MagicMock subclass to mock `Context` objects. See `MockGuild` for how the spec is applied."""
    spec_set = context_instance

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.me = kwargs.get("me", MockMember())
        self.bot = kwargs.get("bot", MockBot())

        self.guild = kwargs.get("guild", MockGuild())
        self.channel = kwargs.get("channel", MockTextChannel(guild=self.guild))
        self.message = kwargs.get("message", MockMessage(guild=self.guild, channel=self.channel))
        self.author = kwargs.get("author", self.message.author)

        self.invoked_from_error_handler = kwargs.get("invoked_from_error_handler", False)


class MockInteraction(CustomMockMixin, unittest.mock.MagicMock):
    """
    A MagicMock subclass to mock `discord.Interaction` objects.

    There is no spec, since building a real interaction takes a full gateway payload. The response
    and followup methods the gate awaits are AsyncMocks.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.client = kwargs.get("client", MockBot())
        self.user = kwargs.get("user", MockMember())
        self.guild = kwargs.get("guild", MockGuild())

        self.response.defer = unittest.mock.AsyncMock()
        self.response.send_message = unittest.mock.AsyncMock()
        self.followup.send = unittest.mock.AsyncMock()
        self.edit_original_response = unittest.mock.AsyncMock()
