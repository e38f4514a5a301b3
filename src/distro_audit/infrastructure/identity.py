"""Account lookups on the host being verified, via ``pwd`` and ``grp``."""
from __future__ import annotations

import grp
import pwd

from distro_audit.domain.repositories import ServerIdentity


class LocalServerIdentity(ServerIdentity):
    """Resolves ids through the host's name service.

    Lookups are cached for the lifetime of the instance; create one per
    verification run.
    """

    def __init__(self) -> None:
        self._users: dict[int, str | None] = {}
        self._groups: dict[int, str | None] = {}

    def username_for_uid(self, uid: int) -> str | None:
        if uid not in self._users:
            try:
                self._users[uid] = pwd.getpwuid(uid).pw_name
            except KeyError:
                self._users[uid] = None
        return self._users[uid]

    def groupname_for_gid(self, gid: int) -> str | None:
        if gid not in self._groups:
            try:
                self._groups[gid] = grp.getgrgid(gid).gr_name
            except KeyError:
                self._groups[gid] = None
        return self._groups[gid]

    def uid_for_username(self, username: str) -> int | None:
        try:
            return pwd.getpwnam(username).pw_uid
        except KeyError:
            return None

    def gid_for_groupname(self, groupname: str) -> int | None:
        try:
            return grp.getgrnam(groupname).gr_gid
        except KeyError:
            return None


class StaticServerIdentity(ServerIdentity):
    """Fixed id/name tables, for verifying a mounted image or in tests."""

    def __init__(self, users: dict[int, str], groups: dict[int, str]) -> None:
        self._users = dict(users)
        self._groups = dict(groups)
        self._uids = {name: uid for uid, name in reversed(list(users.items()))}
        self._gids = {name: gid for gid, name in reversed(list(groups.items()))}

    def username_for_uid(self, uid: int) -> str | None:
        return self._users.get(uid)

    def groupname_for_gid(self, gid: int) -> str | None:
        return self._groups.get(gid)

    def uid_for_username(self, username: str) -> int | None:
        return self._uids.get(username)

    def gid_for_groupname(self, groupname: str) -> int | None:
        return self._gids.get(groupname)
