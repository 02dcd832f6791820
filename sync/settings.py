"""Runtime configuration read from environment variables."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class Settings:
    feed_connections_table: str = 'feed-connections'
    events_table: str = 'events'
    profiles_table: str = 'profiles'
    user_settings_table: str = 'user-settings'
    log_level: str = 'INFO'
    timeout_seconds: int = 30
    deadline_seconds: int = 60
    lock_seconds: int = 300
    max_workers: int = 4

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ
        return cls(
            feed_connections_table=env.get('FEED_CONNECTIONS_TABLE', cls.feed_connections_table),
            events_table=env.get('EVENTS_TABLE', cls.events_table),
            profiles_table=env.get('PROFILES_TABLE', cls.profiles_table),
            user_settings_table=env.get('USER_SETTINGS_TABLE', cls.user_settings_table),
            log_level=env.get('LOG_LEVEL', cls.log_level),
            timeout_seconds=int(env.get('TIMEOUT_SECONDS', cls.timeout_seconds)),
            deadline_seconds=int(env.get('SYNC_DEADLINE_SECONDS', cls.deadline_seconds)),
            lock_seconds=int(env.get('SYNC_LOCK_SECONDS', cls.lock_seconds)),
            max_workers=int(env.get('MAX_WORKERS', cls.max_workers))
        )
