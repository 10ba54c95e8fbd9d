"""Scope-aware command registry.

Commands are indexed twice: by visibility scope, to publish the remote
command menu, and by name, to find a handler at dispatch time. A command
name always maps to exactly one handler no matter how many scopes list it.
"""
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Union

from core.context import Handler
from core.errors import ConfigurationError
from core.methods import get_my_commands, set_my_commands
from utils.matching import normalize_command

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 256
_NAME_RE = re.compile(r"^[a-z0-9_]{1,32}$")
_LOCALE_RE = re.compile(r"^[a-z]{2}$")

SCOPE_DEFAULT = "default"
SCOPE_ALL_PRIVATE_CHATS = "all_private_chats"
SCOPE_ALL_GROUP_CHATS = "all_group_chats"
SCOPE_ALL_CHAT_ADMINISTRATORS = "all_chat_administrators"
SCOPE_CHAT = "chat"
SCOPE_CHAT_ADMINISTRATORS = "chat_administrators"
SCOPE_CHAT_MEMBER = "chat_member"

_SCOPES_WITH_CHAT = {SCOPE_CHAT, SCOPE_CHAT_ADMINISTRATORS, SCOPE_CHAT_MEMBER}
_ALL_SCOPES = {
    SCOPE_DEFAULT,
    SCOPE_ALL_PRIVATE_CHATS,
    SCOPE_ALL_GROUP_CHATS,
    SCOPE_ALL_CHAT_ADMINISTRATORS,
} | _SCOPES_WITH_CHAT


@dataclass(frozen=True)
class ScopeKey:
    """Where a command is visible, optionally qualified by a locale.

    Attributes:
        type: One of the scope kinds, e.g. "default" or "chat"
        chat_id: Target chat for chat-bound scopes
        user_id: Target member for the "chat_member" scope
        language_code: Two-letter locale, empty for all locales
    """
    type: str = SCOPE_DEFAULT
    chat_id: Optional[Union[int, str]] = None
    user_id: Optional[int] = None
    language_code: str = ""

    @classmethod
    def default(cls) -> "ScopeKey":
        return cls(SCOPE_DEFAULT)

    @classmethod
    def all_private_chats(cls) -> "ScopeKey":
        return cls(SCOPE_ALL_PRIVATE_CHATS)

    @classmethod
    def all_group_chats(cls) -> "ScopeKey":
        return cls(SCOPE_ALL_GROUP_CHATS)

    @classmethod
    def all_chat_administrators(cls) -> "ScopeKey":
        return cls(SCOPE_ALL_CHAT_ADMINISTRATORS)

    @classmethod
    def chat(cls, chat_id: Union[int, str]) -> "ScopeKey":
        return cls(SCOPE_CHAT, chat_id=chat_id)

    @classmethod
    def chat_administrators(cls, chat_id: Union[int, str]) -> "ScopeKey":
        return cls(SCOPE_CHAT_ADMINISTRATORS, chat_id=chat_id)

    @classmethod
    def chat_member(cls, chat_id: Union[int, str], user_id: int) -> "ScopeKey":
        return cls(SCOPE_CHAT_MEMBER, chat_id=chat_id, user_id=user_id)

    def with_locale(self, language_code: str) -> "ScopeKey":
        return replace(self, language_code=language_code)

    def to_api(self) -> Dict[str, Any]:
        """Scope object as sent to the command-menu methods (locale excluded)."""
        scope: Dict[str, Any] = {"type": self.type}
        if self.chat_id is not None:
            scope["chat_id"] = self.chat_id
        if self.user_id is not None:
            scope["user_id"] = self.user_id
        return scope

    def problems(self) -> List[str]:
        found = []
        if self.type not in _ALL_SCOPES:
            found.append(f"unknown command scope {self.type!r}")
        if self.type in _SCOPES_WITH_CHAT and self.chat_id is None:
            found.append(f"scope {self.type!r} requires a chat_id")
        if self.type == SCOPE_CHAT_MEMBER and self.user_id is None:
            found.append("scope 'chat_member' requires a user_id")
        if self.language_code and not _LOCALE_RE.match(self.language_code):
            found.append(f"invalid language code {self.language_code!r}")
        return found


@dataclass
class Command:
    name: str
    description: str
    handler: Handler

    def to_api(self) -> Dict[str, str]:
        return {"command": self.name, "description": self.description}


@dataclass
class _Registration:
    handler: Handler
    scopes: Set[ScopeKey] = field(default_factory=set)


class CommandRegistry:
    """Commands indexed by scope and by name.

    Validation problems are collected in ``errors`` rather than raised, so
    every registration can be attempted before startup fails.
    """

    def __init__(self) -> None:
        self._by_scope: Dict[ScopeKey, Dict[str, Command]] = {}
        self._by_name: Dict[str, _Registration] = {}
        self.errors: List[str] = []

    def __len__(self) -> int:
        return len(self._by_name)

    def add_command(
        self, name: str, description: str, handler: Handler, *scopes: ScopeKey
    ) -> None:
        """Register a command under every given scope.

        Re-registering a name merges the new scopes into the old ones; the
        latest handler replaces the previous one in every scope.

        Args:
            name: Command name, with or without the leading slash
            description: Menu text, 1 to 256 characters
            handler: Coroutine function called with the update Context
            scopes: Visibility scopes; the default scope when none are given
        """
        key = normalize_command(name)
        scopes = scopes or (ScopeKey.default(),)

        problems = []
        if not _NAME_RE.match(key):
            problems.append(
                f"command {name!r}: name must be 1-32 lowercase letters, digits or underscores"
            )
        if not description.strip() or len(description) > MAX_DESCRIPTION_LENGTH:
            problems.append(
                f"command {name!r}: description must be 1-{MAX_DESCRIPTION_LENGTH} characters"
            )
        for scope in scopes:
            problems.extend(f"command {name!r}: {p}" for p in scope.problems())
        if problems:
            self.errors.extend(problems)
            return

        reg = self._by_name.get(key)
        if reg is None:
            reg = self._by_name[key] = _Registration(handler)
        elif reg.handler is not handler:
            reg.handler = handler
            for scope in reg.scopes:
                cmds = self._by_scope[scope]
                cmds[key] = replace(cmds[key], handler=handler)

        for scope in scopes:
            self._by_scope.setdefault(scope, {})[key] = Command(key, description, handler)
            reg.scopes.add(scope)

    def add_localized_command(
        self,
        name: str,
        descriptions: Dict[str, str],
        handler: Handler,
        *scopes: ScopeKey,
    ) -> None:
        """Register one command with a description per locale.

        Args:
            name: Command name
            descriptions: Locale code to description; "" means every locale
            handler: Coroutine function called with the update Context
            scopes: Visibility scopes; the default scope when none are given
        """
        scopes = scopes or (ScopeKey.default(),)
        for locale, description in descriptions.items():
            self.add_command(
                name, description, handler, *(s.with_locale(locale) for s in scopes)
            )

    def get_handler(self, name: str) -> Optional[Handler]:
        """Resolve a handler by command name irrespective of scope."""
        reg = self._by_name.get(normalize_command(name))
        return reg.handler if reg else None

    def get_commands(self, scope: ScopeKey) -> List[Command]:
        """List the commands visible for exactly this scope."""
        return list(self._by_scope.get(scope, {}).values())

    def scopes(self) -> List[ScopeKey]:
        """Scopes that have at least one registered command."""
        return [scope for scope, cmds in self._by_scope.items() if cmds]

    def raise_for_errors(self) -> None:
        if self.errors:
            raise ConfigurationError(self.errors)

    async def sync(self, client: Any) -> List[ScopeKey]:
        """Bring the remote command menus in line with the registry.

        Each scope is compared order-independently by name and description;
        only scopes that differ are written.

        Args:
            client: Object with an async ``send(ApiMethod)`` method

        Returns:
            Scopes for which a set-commands call was issued
        """
        written = []
        for scope in self.scopes():
            local = self.get_commands(scope)
            res = await client.send(get_my_commands(scope.to_api(), scope.language_code))
            remote = {(c.get("command"), c.get("description")) for c in res.result or []}
            if remote == {(c.name, c.description) for c in local}:
                logger.debug("Commands for scope %s are up to date", scope)
                continue

            await client.send(
                set_my_commands(
                    [c.to_api() for c in local], scope.to_api(), scope.language_code
                )
            )
            logger.info("Published %d commands for scope %s", len(local), scope)
            written.append(scope)
        return written
