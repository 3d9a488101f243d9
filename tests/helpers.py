"""Test doubles and helpers shared by the test modules."""

import asyncio
import fnmatch
import itertools

from redis.exceptions import NoPermissionError, ResponseError
from sqlalchemy import event

from isolation_service.database import DatabaseConfig


class FakeRedisBroker:
    """In-memory Redis holding streams, consumer groups and plain keys.

    Users are registered with key patterns the way ``ACL SETUSER ... ~pattern``
    does; a client authenticated as a user touching any other key gets NOPERM.
    The default (anonymous) user may touch everything.
    """

    def __init__(self):
        self.streams = {}
        self.groups = {}
        self.pending = {}
        self.kv = {}
        self.acl = {None: ["*"]}
        self._ids = itertools.count(1)

    def add_user(self, username, *patterns):
        self.acl[username] = list(patterns)

    def client(self, username=None):
        return FakeRedis(self, username)

    def entries(self, stream):
        return list(self.streams.get(stream, []))

    def next_id(self):
        return f"{next(self._ids)}-0"


class FakeRedis:
    def __init__(self, broker, username=None):
        self.broker = broker
        self.username = username
        self.closed = False

    def _check(self, key):
        patterns = self.broker.acl.get(self.username, [])
        if not any(fnmatch.fnmatchcase(key, p) for p in patterns):
            raise NoPermissionError(
                "NOPERM this user has no permissions to access one of the keys used as arguments"
            )

    # Streams

    async def xadd(self, stream, fields):
        self._check(stream)
        entry_id = self.broker.next_id()
        self.broker.streams.setdefault(stream, []).append((entry_id, {k: str(v) for k, v in fields.items()}))
        return entry_id

    async def xgroup_create(self, stream, group, id="$", mkstream=False):
        self._check(stream)
        if stream not in self.broker.streams:
            if not mkstream:
                raise ResponseError("The XGROUP subcommand requires the key to exist")
            self.broker.streams[stream] = []
        if (stream, group) in self.broker.groups:
            raise ResponseError("BUSYGROUP Consumer Group name already exists")
        start = 0 if id == "0" else len(self.broker.streams[stream])
        self.broker.groups[(stream, group)] = start
        return True

    async def xreadgroup(self, group, consumer, streams, count=None, block=None):
        response = []
        for stream in streams:
            self._check(stream)
            if (stream, group) not in self.broker.groups:
                raise ResponseError(f"NOGROUP No such key '{stream}' or consumer group '{group}'")
            position = self.broker.groups[(stream, group)]
            entries = self.broker.streams.get(stream, [])[position:]
            if count:
                entries = entries[:count]
            if entries:
                self.broker.groups[(stream, group)] = position + len(entries)
                pending = self.broker.pending.setdefault((stream, group), set())
                pending.update(entry_id for entry_id, _ in entries)
                response.append([stream, [(entry_id, dict(fields)) for entry_id, fields in entries]])
        if not response and block is not None:
            await asyncio.sleep(0.01)
        return response

    async def xack(self, stream, group, *entry_ids):
        self._check(stream)
        pending = self.broker.pending.get((stream, group), set())
        acked = [entry_id for entry_id in entry_ids if entry_id in pending]
        pending.difference_update(acked)
        return len(acked)

    # Keys

    async def get(self, key):
        self._check(key)
        return self.broker.kv.get(key)

    async def set(self, key, value, ex=None):
        self._check(key)
        self.broker.kv[key] = value
        return True

    async def delete(self, *keys):
        for key in keys:
            self._check(key)
        return sum(1 for key in keys if self.broker.kv.pop(key, None) is not None)

    async def scan_iter(self, match="*"):
        self._check(match)
        for key in list(self.broker.kv):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


def install_session_settings(engine):
    """Give sqlite connections ``set_config`` / ``current_setting`` like PostgreSQL."""

    @event.listens_for(engine.sync_engine, "connect")
    def _register(dbapi_connection, connection_record):
        settings = {}

        def set_config(name, value, is_local):
            settings[name] = value
            return value

        def current_setting(name, missing_ok):
            return settings.get(name)

        dbapi_connection.create_function("set_config", 3, set_config)
        dbapi_connection.create_function("current_setting", 2, current_setting)


def sqlite_config(tmp_path, name):
    prefix = f"{name.upper()}_"
    return DatabaseConfig(prefix, env={f"{prefix}DATABASE_URL": f"sqlite+aiosqlite:///{tmp_path / name}.db"}, name=name)
